from typing import Any, List, Mapping
import re
from collections import Counter

# Placeholders like {name}, {count}, {0}
PLACEHOLDER_REGEX = re.compile(r'\{([^{}]+)\}')


def find_placeholders(text: str) -> List[str]:
    """Return the placeholder names found in ``text``, in order of appearance, repeats included."""
    return PLACEHOLDER_REGEX.findall(text)


def check_placeholder_parity(base_string: str, target_string: str) -> bool:
    """
    Checks if the set of placeholders is identical between a base and a target string.
    Reordering is allowed, but every placeholder must appear as many times as in the base.

    Args:
        base_string: The default-locale string.
        target_string: The translated string.

    Returns:
        True if the placeholders in both strings are identical, False otherwise.
    """
    return Counter(find_placeholders(base_string)) == Counter(find_placeholders(target_string))


def check_tree_placeholders(source: Mapping[str, Any], generated: Mapping[str, Any], prefix: str = '') -> List[str]:
    """
    Compares the placeholders of every string leaf present in both trees.

    Args:
        source: The tree that was sent for translation.
        generated: The tree returned by the provider.

    Returns:
        The dotted key paths whose placeholders differ. An empty list means the trees agree.
    """
    mismatches = []
    for key, source_value in source.items():
        if key not in generated:
            continue
        path = f"{prefix}.{key}" if prefix else str(key)
        generated_value = generated[key]
        if isinstance(source_value, Mapping) and isinstance(generated_value, Mapping):
            mismatches.extend(check_tree_placeholders(source_value, generated_value, path))
        elif isinstance(source_value, str) and isinstance(generated_value, str):
            if not check_placeholder_parity(source_value, generated_value):
                mismatches.append(path)
    return mismatches
