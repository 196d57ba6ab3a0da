"""Discovery of (file, locale) pairs whose translation is missing or out of shape."""
import glob
import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from locale_sync.locale_files import file_exists, load_json_tree
from locale_sync.tree_diff import keys_match

logger = logging.getLogger(__name__)

# Separators allowed after the locale code in a locale-named file, e.g. en.json, en_common.json
_NAME_SEPARATORS = ('.', '_', '-')


@dataclass(frozen=True)
class MissingTranslation:
    """One file that must be (re)generated for one locale."""
    file: str
    locale: str
    default_locale: str

    @property
    def target_path(self) -> str:
        return localize_path(self.file, self.default_locale, self.locale)

    def __str__(self) -> str:
        return f"{self.file} for {self.locale}"


def _is_locale_file_name(file_name: str, locale: str) -> bool:
    stem = os.path.splitext(file_name)[0]
    if stem == locale:
        return True
    return stem.startswith(locale) and stem[len(locale):len(locale) + 1] in _NAME_SEPARATORS


def localize_path(file_path: str, default_locale: str, locale: str) -> str:
    """
    Map a default-locale file path to the same file for another locale.

    ``locales/en/common.json`` becomes ``locales/fr/common.json`` and
    ``locales/en.json`` becomes ``locales/fr.json``. A directory named after
    the default locale takes precedence over the file name.

    Raises:
        ValueError: The path carries no default-locale marker.
    """
    directory, file_name = os.path.split(file_path)
    parts = directory.split(os.sep) if directory else []
    for index in range(len(parts) - 1, -1, -1):
        if parts[index] == default_locale:
            parts[index] = locale
            return os.path.join(os.sep.join(parts), file_name)

    if _is_locale_file_name(file_name, default_locale):
        return os.path.join(directory, locale + file_name[len(default_locale):])

    raise ValueError(f"'{file_path}' does not belong to the default locale '{default_locale}'.")


def _is_default_locale_file_name(file_name: str, default_locale: str, locales: Iterable[str]) -> bool:
    """
    True when the file name belongs to the default locale rather than to a
    configured locale sharing its prefix. With ``en`` as default and ``en-GB``
    configured, ``en-GB.json`` is a target file, not a source.
    """
    if not _is_locale_file_name(file_name, default_locale):
        return False
    return not any(
        len(locale) > len(default_locale) and _is_locale_file_name(file_name, locale)
        for locale in locales
    )


def is_source_file(file_path: str, default_locale: str, locales: Iterable[str] = ()) -> bool:
    """True for JSON files laid out under either default-locale naming convention."""
    if not file_path.endswith('.json'):
        return False
    directory, file_name = os.path.split(file_path)
    if default_locale in directory.split(os.sep):
        return True
    return _is_default_locale_file_name(file_name, default_locale, locales)


def find_source_files(translations_path: str, default_locale: str, locales: Iterable[str] = ()) -> List[str]:
    """
    Enumerate the default-locale JSON files under the translations root.

    Two layouts are supported: one directory per locale
    (``<root>/en/*.json``) and locale-named files anywhere below the root
    (``<root>/**/en*.json``). A file matching both is returned once. Files
    named after a configured locale that extends the default one (``en-GB.json``)
    are left out.
    """
    subdirectory_matches = glob.glob(os.path.join(glob.escape(translations_path), glob.escape(default_locale), '*.json'))
    named_matches = [
        path for path in glob.glob(
            os.path.join(glob.escape(translations_path), '**', glob.escape(default_locale) + '*.json'),
            recursive=True
        )
        if _is_default_locale_file_name(os.path.basename(path), default_locale, locales)
    ]

    unique: Dict[str, str] = {}
    for path in subdirectory_matches + named_matches:
        unique.setdefault(os.path.normpath(path), path)
    return sorted(unique.values(), key=os.path.normpath)


def _needs_translation(source_file: str, target_file: str) -> bool:
    if not file_exists(target_file):
        return True
    try:
        source_tree = load_json_tree(source_file)
        target_tree = load_json_tree(target_file)
    except (OSError, ValueError) as exc:
        logger.warning("Could not compare '%s' with '%s': %s", source_file, target_file, exc)
        return True
    return not keys_match(source_tree, target_tree)


def find_missing_translations(
        translations_path: str,
        default_locale: str,
        locales: Iterable[str],
        files: Optional[Iterable[str]] = None,
        known_locales: Optional[Iterable[str]] = None
) -> List[MissingTranslation]:
    """
    List every (file, locale) pair that needs generation.

    A pair is reported when the locale file does not exist (full generation)
    or when its keys do not match the default-locale file (partial generation).

    Args:
        translations_path: Root directory of the locale files.
        default_locale: The source-of-truth locale.
        locales: Target locales, in the order tasks should be emitted.
        files: Optional default-locale files to restrict discovery to. All
            source files under ``translations_path`` are scanned otherwise.
        known_locales: Every configured locale, used to tell target files such as
            ``en-GB.json`` apart from default-locale ones. Defaults to ``locales``.

    Returns:
        The pending tasks, ordered by file then locale. Empty when everything is in sync.
    """
    locales = list(locales)
    known_locales = locales if known_locales is None else list(known_locales)
    if files is None:
        source_files = find_source_files(translations_path, default_locale, known_locales)
    else:
        source_files = list(files)
    target_locales = [locale for locale in dict.fromkeys(locales) if locale != default_locale]

    missing: List[MissingTranslation] = []
    seen: set[Tuple[str, str]] = set()
    for source_file in source_files:
        for locale in target_locales:
            identity = (os.path.normpath(source_file), locale)
            if identity in seen:
                continue
            seen.add(identity)

            task = MissingTranslation(file=source_file, locale=locale, default_locale=default_locale)
            if _needs_translation(source_file, task.target_path):
                logger.debug("Missing translation: %s", task)
                missing.append(task)

    logger.info("Found %d missing translation(s) across %d source file(s).", len(missing), len(source_files))
    return missing
