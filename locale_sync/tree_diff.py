"""Structural (keys-only) comparison of locale trees."""
from typing import Any, Dict, Mapping, Set


def _is_tree(value: Any) -> bool:
    return isinstance(value, Mapping)


def keys_match(base: Mapping[str, Any], candidate: Mapping[str, Any]) -> bool:
    """
    Check that two locale trees have the same shape.

    Leaf values are ignored. A mapping on one side and a leaf on the other
    counts as a mismatch; lists are leaves.

    Args:
        base: The reference tree (usually the default-locale content).
        candidate: The tree to compare against it.

    Returns:
        True if every key path of one tree exists in the other.
    """
    if base.keys() != candidate.keys():
        return False
    for key, base_value in base.items():
        candidate_value = candidate[key]
        if _is_tree(base_value) != _is_tree(candidate_value):
            return False
        if _is_tree(base_value) and not keys_match(base_value, candidate_value):
            return False
    return True


def extract_patch(base: Mapping[str, Any], candidate: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return the part of ``candidate`` whose key paths are new relative to ``base``.

    Keys missing from ``base`` are taken whole, including nested sub-trees.
    Keys present on both sides are recursed into when both are mappings and
    kept only if something below them is new; a mapping on one side and a leaf
    on the other takes the candidate value. Leaf values that merely differ are
    not part of the patch, and keys present only in ``base`` are ignored.

    Args:
        base: The tree already on disk (e.g. an existing translation).
        candidate: The tree that defines the wanted shape (e.g. the source file).

    Returns:
        A new tree, empty when there is nothing to add.
    """
    patch: Dict[str, Any] = {}
    for key, candidate_value in candidate.items():
        if key not in base:
            patch[key] = candidate_value
            continue
        base_value = base[key]
        if _is_tree(candidate_value) and _is_tree(base_value):
            nested = extract_patch(base_value, candidate_value)
            if nested:
                patch[key] = nested
        elif _is_tree(candidate_value) != _is_tree(base_value):
            patch[key] = candidate_value
    return patch


def flatten_keys(tree: Mapping[str, Any], prefix: str = '') -> Set[str]:
    """Dotted key paths of every leaf in ``tree``. Empty mappings count as a leaf."""
    keys: Set[str] = set()
    for key, value in tree.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if _is_tree(value) and value:
            keys |= flatten_keys(value, path)
        else:
            keys.add(path)
    return keys
