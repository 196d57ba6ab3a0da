import json
import os
import tempfile
from typing import Any, Dict, Optional

JSON_INDENT = 2
CUSTOM_PROMPT_EXTENSION = '.md'


def file_exists(file_path: str) -> bool:
    """
    Check whether a path exists.

    Uses lstat so a symlinked translation file counts as present even when
    its target is missing.
    """
    try:
        os.lstat(file_path)
    except OSError:
        return False
    return True


def load_json_tree(file_path: str) -> Dict[str, Any]:
    """
    Load a locale tree from a JSON file.

    Raises:
        OSError: The file cannot be read.
        ValueError: The file is not valid JSON or its top level is not an object.
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        tree = json.load(f)
    if not isinstance(tree, dict):
        raise ValueError(f"'{file_path}' must contain a JSON object at the top level.")
    return tree


def load_custom_prompt(file_path: str) -> Optional[str]:
    """
    Load the optional free-text instruction stored next to a locale file.

    ``locales/en/common.json`` is paired with ``locales/en/common.md``.

    Returns:
        The stripped instruction text, or None if there is no such file or it is blank.
    """
    prompt_path = os.path.splitext(file_path)[0] + CUSTOM_PROMPT_EXTENSION
    if not os.path.isfile(prompt_path):
        return None
    with open(prompt_path, 'r', encoding='utf-8') as f:
        content = f.read().strip()
    return content or None


def write_json_tree(file_path: str, tree: Dict[str, Any]) -> None:
    """
    Write a locale tree to disk, replacing the file atomically.

    Parent directories are created. The content is serialized before anything
    touches the target, then written to a temporary file in the same directory
    and moved into place, so an interrupted run never leaves a half-written
    translation behind.
    """
    content = json.dumps(tree, ensure_ascii=False, indent=JSON_INDENT) + '\n'

    target_dir = os.path.dirname(os.path.abspath(file_path))
    os.makedirs(target_dir, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(dir=target_dir, prefix='.locale-sync-', suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(temp_path, file_path)
    except BaseException:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise
