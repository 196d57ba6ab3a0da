import unittest

from locale_sync.translation_validator import (
    check_placeholder_parity,
    check_tree_placeholders,
    find_placeholders
)


class TestTranslationValidator(unittest.TestCase):
    def test_find_placeholders(self):
        self.assertEqual(find_placeholders("Hello {name}, you have {count} messages"), ["name", "count"])
        self.assertEqual(find_placeholders("No placeholders"), [])

    def test_placeholder_parity_success(self):
        self.assertTrue(check_placeholder_parity("Hello {name}.", "Bonjour {name}."))

    def test_placeholder_parity_missing_placeholder(self):
        self.assertFalse(check_placeholder_parity("Hello {name}, welcome to {site}.", "Bonjour, bienvenue sur {site}."))

    def test_placeholder_parity_translated_placeholder(self):
        self.assertFalse(check_placeholder_parity("Hello {name}.", "Bonjour {nom}."))

    def test_placeholder_parity_reordered_placeholders(self):
        # Word order differs between languages, so reordering is allowed.
        self.assertTrue(check_placeholder_parity("{count} files in {folder}", "Dans {folder}, {count} fichiers"))

    def test_placeholder_parity_repeated_placeholders(self):
        self.assertFalse(check_placeholder_parity("{a} and {a}", "{a}"))
        self.assertTrue(check_placeholder_parity("{a} and {a}", "{a} et {a}"))

    def test_check_tree_placeholders_reports_dotted_paths(self):
        source = {"greeting": "Hi {name}", "nav": {"inbox": "{count} messages", "home": "Home"}}
        generated = {"greeting": "Salut {name}", "nav": {"inbox": "messages", "home": "Accueil"}}

        self.assertEqual(check_tree_placeholders(source, generated), ["nav.inbox"])

    def test_check_tree_placeholders_ignores_missing_keys(self):
        self.assertEqual(check_tree_placeholders({"a": "{x}"}, {}), [])


if __name__ == '__main__':
    unittest.main()
