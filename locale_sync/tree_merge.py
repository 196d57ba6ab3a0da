"""Reconciliation of an existing translation with freshly generated content."""
from typing import Any, Dict, Mapping


def _is_blank(value: Any) -> bool:
    # "" is the conflict marker written by a previous merge
    return value is None or value == ''


def merge_trees(existing: Mapping[str, Any], generated: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Combine an existing translation tree with generated content.

    The result covers the union of keys:

    - both sides are mappings: merged recursively;
    - both sides hold the same value: kept;
    - the values differ: replaced by an empty string so the conflict stays
      visible in the written file instead of one side silently winning;
    - only one side has a (non-blank) value: that value is used.

    Neither input is modified.
    """
    result: Dict[str, Any] = {}
    for key in list(existing.keys()) + [k for k in generated.keys() if k not in existing]:
        in_existing = key in existing and not _is_blank(existing[key])
        in_generated = key in generated and not _is_blank(generated[key])

        if in_existing and in_generated:
            existing_value = existing[key]
            generated_value = generated[key]
            if isinstance(existing_value, Mapping) and isinstance(generated_value, Mapping):
                result[key] = merge_trees(existing_value, generated_value)
            elif existing_value == generated_value:
                result[key] = _copy(existing_value)
            else:
                result[key] = ''
        elif in_existing:
            result[key] = _copy(existing[key])
        elif in_generated:
            result[key] = _copy(generated[key])
        else:
            result[key] = existing.get(key, generated.get(key))
    return result


def _copy(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_copy(v) for v in value]
    return value
