"""
Integration tests for the translation pipeline.

The OpenAI provider is replaced by an in-memory fake that "translates" by
prefixing every leaf with the target locale, so whole runs can be checked
against real files in a temporary directory.
"""
import os
import tempfile
import unittest
from unittest.mock import ANY, AsyncMock, patch

from locale_sync.app_config import AppConfig
from locale_sync.discovery import MissingTranslation
from locale_sync.git_gate import GitError, StagedDiff
from locale_sync.orchestrator import BatchResult, TaskOutcome, TaskStatus
from locale_sync.translation_provider import ProviderConnectionError
from locale_sync.translator import (
    TranslationAcceptanceError,
    sync_missing_translations,
    sync_staged_changes,
    translate_file,
    write_failure_report
)
from tests.helpers import read_json, write_json


def _prefix_leaves(tree, locale):
    return {
        key: _prefix_leaves(value, locale) if isinstance(value, dict) else f"[{locale}] {value}"
        for key, value in tree.items()
    }


class FakeProvider:
    def __init__(self, drop_keys=()):
        self.calls = []
        self.drop_keys = set(drop_keys)

    async def translate(self, locale, tree, default_locale, custom_prompt=None):
        self.calls.append((locale, tree, default_locale, custom_prompt))
        return {k: v for k, v in _prefix_leaves(tree, locale).items() if k not in self.drop_keys}


class PipelineTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._temp_dir = tempfile.TemporaryDirectory()
        self.root = os.path.join(self._temp_dir.name, 'locales')
        self.source = os.path.join(self.root, 'en', 'common.json')
        write_json(self.source, {"title": "Hello {name}", "nav": {"home": "Home", "about": "About"}})
        self.config = AppConfig(
            config_path=os.path.join(self._temp_dir.name, 'locale-sync.config.json'),
            translations_path=self.root,
            default_locale='en',
            locales=['fr', 'de'],
        )

    def tearDown(self):
        self._temp_dir.cleanup()

    def task(self, locale='fr', file=None):
        return MissingTranslation(file=file or self.source, locale=locale, default_locale='en')


class TestTranslateFile(PipelineTestCase):
    async def test_full_generation_when_translation_is_absent(self):
        provider = FakeProvider()

        outcome = await translate_file(self.task(), provider)

        target = os.path.join(self.root, 'fr', 'common.json')
        self.assertEqual(outcome.status, TaskStatus.SUCCESS)
        self.assertEqual(outcome.written_path, target)
        self.assertEqual(read_json(target), {
            "title": "[fr] Hello {name}", "nav": {"home": "[fr] Home", "about": "[fr] About"}
        })
        self.assertEqual(provider.calls[0][1], read_json(self.source))

    async def test_only_missing_keys_are_sent_and_merged(self):
        target = os.path.join(self.root, 'fr', 'common.json')
        write_json(target, {"title": "Bonjour {name}", "nav": {"home": "Accueil"}})
        provider = FakeProvider()

        outcome = await translate_file(self.task(), provider)

        self.assertEqual(outcome.status, TaskStatus.SUCCESS)
        self.assertEqual(provider.calls[0][1], {"nav": {"about": "About"}})
        self.assertEqual(read_json(target), {
            "title": "Bonjour {name}", "nav": {"home": "Accueil", "about": "[fr] About"}
        })

    async def test_in_sync_translation_is_skipped_without_provider_call(self):
        target = os.path.join(self.root, 'fr', 'common.json')
        write_json(target, {"title": "Bonjour {name}", "nav": {"home": "Accueil", "about": "À propos"}})
        provider = FakeProvider()

        outcome = await translate_file(self.task(), provider)

        self.assertEqual(outcome.status, TaskStatus.SKIPPED)
        self.assertEqual(provider.calls, [])

    async def test_custom_prompt_is_forwarded(self):
        with open(os.path.join(self.root, 'en', 'common.md'), 'w', encoding='utf-8') as f:
            f.write("This is a banking app.")
        provider = FakeProvider()

        await translate_file(self.task(), provider)

        self.assertEqual(provider.calls[0][3], "This is a banking app.")

    async def test_acceptance_failure_writes_nothing(self):
        provider = FakeProvider(drop_keys={"nav"})

        with self.assertRaises(TranslationAcceptanceError) as ctx:
            await translate_file(self.task(), provider)

        self.assertIn("common.json", str(ctx.exception))
        self.assertFalse(os.path.exists(os.path.join(self.root, 'fr', 'common.json')))

    async def test_provider_error_propagates(self):
        provider = AsyncMock()
        provider.translate.side_effect = ProviderConnectionError("api.openai.com", "chat.completions.create")

        with self.assertRaises(ProviderConnectionError):
            await translate_file(self.task(), provider)


class TestSyncMissingTranslations(PipelineTestCase):
    async def test_generates_every_missing_locale(self):
        provider = FakeProvider()

        result = await sync_missing_translations(self.config, provider=provider, show_progress=False)

        self.assertEqual(len(result.succeeded), 2)
        self.assertTrue(os.path.exists(os.path.join(self.root, 'fr', 'common.json')))
        self.assertTrue(os.path.exists(os.path.join(self.root, 'de', 'common.json')))

    async def test_second_run_is_up_to_date(self):
        provider = FakeProvider()
        await sync_missing_translations(self.config, provider=provider, show_progress=False)

        result = await sync_missing_translations(self.config, provider=provider, show_progress=False)

        self.assertIsNone(result)
        self.assertEqual(len(provider.calls), 2)

    async def test_locale_filter(self):
        provider = FakeProvider()

        result = await sync_missing_translations(self.config, provider=provider, locales=['de'], show_progress=False)

        self.assertEqual([o.task.locale for o in result.outcomes], ['de'])
        self.assertFalse(os.path.exists(os.path.join(self.root, 'fr', 'common.json')))

    async def test_one_failing_file_does_not_block_the_others(self):
        write_json(os.path.join(self.root, 'en', 'broken.json'), {"nav": {"home": "Home"}})
        write_json(os.path.join(self.root, 'en', 'errors.json'), {"notFound": "Not found"})
        provider = FakeProvider(drop_keys={"nav"})
        config = AppConfig(
            config_path=self.config.config_path, translations_path=self.root, default_locale='en', locales=['fr']
        )

        result = await sync_missing_translations(config, provider=provider, show_progress=False)

        self.assertEqual(len(result.outcomes), 3)
        self.assertEqual(len(result.failed), 2)
        self.assertEqual([o.task.file for o in result.succeeded], [os.path.join(self.root, 'en', 'errors.json')])


class TestSyncStagedChanges(PipelineTestCase):
    async def test_nothing_staged_skips_discovery_and_orchestrator(self):
        with patch('locale_sync.translator.get_staged_diff', return_value=None) as mock_gate, \
                patch('locale_sync.translator.find_missing_translations') as mock_discovery, \
                patch('locale_sync.translator.run_tasks') as mock_run_tasks, \
                patch('locale_sync.translator.build_provider') as mock_build_provider:
            result = await sync_staged_changes(self.config)

        self.assertIsNone(result)
        mock_gate.assert_called_once_with(os.path.join(self.root, 'en'), exclude=ANY)
        mock_discovery.assert_not_called()
        mock_run_tasks.assert_not_called()
        mock_build_provider.assert_not_called()

    async def test_staged_source_files_are_translated_and_restaged(self):
        staged = StagedDiff(files=[self.source, os.path.join(self.root, 'en', 'README.md')], diff="diff --git ...")
        provider = FakeProvider()

        with patch('locale_sync.translator.get_staged_diff', return_value=staged), \
                patch('locale_sync.translator.stage_files') as mock_stage:
            result = await sync_staged_changes(self.config, provider=provider, show_progress=False)

        self.assertEqual(len(result.succeeded), 2)
        mock_stage.assert_called_once_with([
            os.path.join(self.root, 'fr', 'common.json'),
            os.path.join(self.root, 'de', 'common.json'),
        ])

    async def test_restaging_happens_even_when_a_task_fails(self):
        staged = StagedDiff(files=[self.source], diff="")
        provider = AsyncMock()
        provider.translate.side_effect = [
            {"title": "Bonjour {name}", "nav": {"home": "Accueil", "about": "À propos"}},
            ProviderConnectionError("api.openai.com", "chat.completions.create"),
        ]
        config = AppConfig(
            config_path=self.config.config_path, translations_path=self.root, default_locale='en',
            locales=['fr', 'de'], max_concurrent_tasks=1
        )

        with patch('locale_sync.translator.get_staged_diff', return_value=staged), \
                patch('locale_sync.translator.stage_files') as mock_stage:
            result = await sync_staged_changes(config, provider=provider, show_progress=False)

        self.assertEqual([o.status for o in result.outcomes], [TaskStatus.SUCCESS, TaskStatus.FAILED])
        self.assertIn("api.openai.com", result.failed[0].reason)
        mock_stage.assert_called_once_with([os.path.join(self.root, 'fr', 'common.json')])

    async def test_staged_file_already_translated_is_not_sent_again(self):
        write_json(os.path.join(self.root, 'fr', 'common.json'),
                   {"title": "Bonjour {name}", "nav": {"home": "Accueil", "about": "À propos"}})
        staged = StagedDiff(files=[self.source], diff="")
        provider = FakeProvider()

        with patch('locale_sync.translator.get_staged_diff', return_value=staged), \
                patch('locale_sync.translator.stage_files') as mock_stage:
            result = await sync_staged_changes(self.config, provider=provider, show_progress=False)

        self.assertEqual([o.task.locale for o in result.outcomes], ['de'])
        self.assertEqual([call[0] for call in provider.calls], ['de'])
        mock_stage.assert_called_once_with([os.path.join(self.root, 'de', 'common.json')])

    async def test_staged_files_with_complete_translations_are_up_to_date(self):
        for locale in ('fr', 'de'):
            write_json(os.path.join(self.root, locale, 'common.json'),
                       {"title": f"{locale} {{name}}", "nav": {"home": locale, "about": locale}})
        staged = StagedDiff(files=[self.source], diff="")

        with patch('locale_sync.translator.get_staged_diff', return_value=staged), \
                patch('locale_sync.translator.run_tasks') as mock_run_tasks, \
                patch('locale_sync.translator.stage_files') as mock_stage:
            result = await sync_staged_changes(self.config, provider=FakeProvider(), show_progress=False)

        self.assertIsNone(result)
        mock_run_tasks.assert_not_called()
        mock_stage.assert_not_called()

    async def test_staged_target_locale_files_only(self):
        staged = StagedDiff(files=[os.path.join(self.root, 'fr', 'common.json')], diff="")

        with patch('locale_sync.translator.get_staged_diff', return_value=staged), \
                patch('locale_sync.translator.find_missing_translations') as mock_discovery, \
                patch('locale_sync.translator.run_tasks') as mock_run_tasks:
            result = await sync_staged_changes(self.config, provider=FakeProvider(), show_progress=False)

        self.assertIsNone(result)
        mock_discovery.assert_not_called()
        mock_run_tasks.assert_not_called()

    async def test_staged_diff_size_is_logged(self):
        staged = StagedDiff(files=[self.source], diff="+a\n+b\n-c\n")

        with patch('locale_sync.translator.get_staged_diff', return_value=staged), \
                patch('locale_sync.translator.stage_files'), \
                self.assertLogs('locale_sync.translator', level='DEBUG') as logs:
            await sync_staged_changes(self.config, provider=FakeProvider(), show_progress=False)

        self.assertTrue(any("1 file(s), 3 line(s)" in line for line in logs.output))

    async def test_staging_failure_keeps_the_batch_result(self):
        staged = StagedDiff(files=[self.source], diff="")

        with patch('locale_sync.translator.get_staged_diff', return_value=staged), \
                patch('locale_sync.translator.stage_files', side_effect=GitError("index.lock exists")), \
                self.assertLogs('locale_sync.translator', level='ERROR') as logs:
            result = await sync_staged_changes(self.config, provider=FakeProvider(), show_progress=False)

        self.assertEqual(len(result.succeeded), 2)
        self.assertTrue(os.path.exists(os.path.join(self.root, 'fr', 'common.json')))
        self.assertIn("index.lock exists", logs.output[0])


class TestFailureReport(unittest.TestCase):
    def test_report_lists_failures_and_is_removed_when_clean(self):
        task = MissingTranslation(file='locales/en/common.json', locale='fr', default_locale='en')
        with tempfile.TemporaryDirectory() as temp_dir:
            report_path = os.path.join(temp_dir, 'logs', 'failures.md')

            written = write_failure_report(
                BatchResult(outcomes=[TaskOutcome(task=task, status=TaskStatus.FAILED, reason="invalid JSON")]),
                report_path
            )
            self.assertEqual(written, report_path)
            with open(report_path, 'r', encoding='utf-8') as f:
                content = f.read()
            self.assertIn("`locales/en/common.json` (fr)", content)
            self.assertIn("invalid JSON", content)

            self.assertIsNone(write_failure_report(BatchResult(outcomes=[]), report_path))
            self.assertFalse(os.path.exists(report_path))


if __name__ == '__main__':
    unittest.main()
