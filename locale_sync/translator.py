"""
Per-file translation pipeline and the two synchronization runs built on it.

``sync_staged_changes`` backs the pre-commit hook: it only works on
default-locale files that are staged and re-stages what it wrote.
``sync_missing_translations`` backs the on-demand command and scans every
locale file under the translations root.
"""
import asyncio
import logging
import os
from typing import Iterable, List, Optional, Protocol

from aiolimiter import AsyncLimiter

from locale_sync.app_config import AppConfig, create_openai_client
from locale_sync.discovery import MissingTranslation, find_missing_translations, is_source_file
from locale_sync.git_gate import LOCKFILES, GitError, get_staged_diff, resolve_diff_scope, stage_files
from locale_sync.locale_files import file_exists, load_custom_prompt, load_json_tree, write_json_tree
from locale_sync.orchestrator import BatchResult, TaskOutcome, TaskStatus, run_tasks
from locale_sync.translation_provider import OpenAITranslationProvider
from locale_sync.tree_diff import extract_patch, flatten_keys, keys_match
from locale_sync.tree_merge import merge_trees

logger = logging.getLogger(__name__)


class TranslationAcceptanceError(Exception):
    """The final tree does not have the same keys as the default-locale tree."""


class TranslationProvider(Protocol):
    async def translate(self, locale, tree, default_locale, custom_prompt=None): ...


async def translate_file(task: MissingTranslation, provider: TranslationProvider) -> TaskOutcome:
    """
    Generate or complete the translation of one file into one locale.

    When a translation already exists only its missing keys are sent to the
    provider and the answer is merged into it; otherwise the whole source
    tree is translated. The result is written only if its keys match the
    source file.

    Raises:
        TranslationAcceptanceError: The generated tree does not match the source keys.
        ProviderError: The provider call failed.
    """
    file_name = os.path.basename(task.file)
    target_path = task.target_path

    source_tree = await asyncio.to_thread(load_json_tree, task.file)
    custom_prompt = await asyncio.to_thread(load_custom_prompt, task.file)

    if await asyncio.to_thread(file_exists, target_path):
        existing_tree = await asyncio.to_thread(load_json_tree, target_path)
        patch = extract_patch(existing_tree, source_tree)
        if not patch:
            stale_keys = extract_patch(source_tree, existing_tree)
            if stale_keys:
                logger.warning(
                    "'%s' has keys missing from the %s file: %s",
                    target_path, task.default_locale, ', '.join(sorted(flatten_keys(stale_keys)))
                )
            logger.info("%s is up to date for %s, nothing to translate.", file_name, task.locale)
            return TaskOutcome(task=task, status=TaskStatus.SKIPPED)

        logger.info("Translating %d new key(s) of %s to %s.", len(flatten_keys(patch)), file_name, task.locale)
        generated_tree = await provider.translate(task.locale, patch, task.default_locale, custom_prompt)
        final_tree = merge_trees(existing_tree, generated_tree)
    else:
        logger.info("Translating %s to %s.", file_name, task.locale)
        final_tree = await provider.translate(task.locale, source_tree, task.default_locale, custom_prompt)

    if not keys_match(source_tree, final_tree):
        raise TranslationAcceptanceError(
            f"The generated translation for {file_name} ({task.locale}) doesn't match the original one."
        )

    await asyncio.to_thread(write_json_tree, target_path, final_tree)
    logger.info("Successfully stored translation for %s (%s) in '%s'.", file_name, task.locale, target_path)
    return TaskOutcome(task=task, status=TaskStatus.SUCCESS, written_path=target_path)


def write_failure_report(result: BatchResult, report_path: str) -> Optional[str]:
    """
    Write a Markdown report of the failed tasks.

    A report left by an earlier run is removed when nothing failed.

    Returns:
        The report path if one was written, else None.
    """
    if not result.has_failures:
        if os.path.exists(report_path):
            os.remove(report_path)
        return None

    report_dir = os.path.dirname(report_path)
    if report_dir:
        os.makedirs(report_dir, exist_ok=True)
    with open(report_path, 'w', encoding='utf-8') as f:
        f.write("## Translation Failures\n\n")
        f.write("The following translations could not be generated. Run locale-sync again to retry them.\n\n")
        for outcome in result.failed:
            f.write(f"### `{outcome.task.file}` ({outcome.task.locale})\n")
            f.write(f"- {outcome.reason}\n\n")
    logger.info("Some translations failed. Report written to %s", report_path)
    return report_path


def build_provider(app_config: AppConfig) -> OpenAITranslationProvider:
    return OpenAITranslationProvider(
        client=create_openai_client(app_config),
        model_name=app_config.model_name,
        rate_limiter=AsyncLimiter(max_rate=app_config.requests_per_minute, time_period=60),
        max_model_tokens=app_config.max_model_tokens
    )


def staged_source_files(files: Iterable[str], app_config: AppConfig) -> List[str]:
    """Keep the staged default-locale JSON files, dropping target-locale files and anything else."""
    sources = []
    for file in files:
        if is_source_file(file, app_config.default_locale, app_config.locales):
            sources.append(file)
        else:
            logger.debug("Ignoring staged file outside the default locale: %s", file)
    return sources


def _restage_written_files(result: BatchResult) -> None:
    # Tasks have already settled and their files are on disk; a staging
    # failure must not hide the batch result.
    try:
        stage_files(result.written_paths)
    except GitError as exc:
        logger.error("Translations were written but could not be staged, add them manually: %s", exc)


async def sync_staged_changes(
        app_config: AppConfig,
        provider: Optional[TranslationProvider] = None,
        show_progress: bool = True
) -> Optional[BatchResult]:
    """
    Pre-commit run: translate the staged default-locale files and stage the results.

    The staged files only scope discovery; a staged file whose translations
    already have the right keys produces no task.

    Returns:
        None when nothing relevant is staged or pending, otherwise the batch result.
    """
    scope = resolve_diff_scope(app_config.translations_path, app_config.default_locale)
    staged = get_staged_diff(scope, exclude=LOCKFILES)
    if staged is None:
        logger.info("Your translations are up to date, continue committing...")
        return None
    logger.debug(
        "Staged diff under '%s': %d file(s), %d line(s).", scope, len(staged.files), len(staged.diff.splitlines())
    )

    sources = staged_source_files(staged.files, app_config)
    if not sources:
        logger.info("No staged %s translation files, continue committing...", app_config.default_locale)
        return None

    tasks = find_missing_translations(
        app_config.translations_path,
        app_config.default_locale,
        app_config.locales,
        files=sources
    )
    if not tasks:
        logger.info("Your translations are up to date, continue committing...")
        return None

    provider = provider or build_provider(app_config)
    return await run_tasks(
        tasks,
        lambda task: translate_file(task, provider),
        concurrency=app_config.max_concurrent_tasks,
        on_settled=_restage_written_files,
        show_progress=show_progress
    )


async def sync_missing_translations(
        app_config: AppConfig,
        provider: Optional[TranslationProvider] = None,
        locales: Optional[Iterable[str]] = None,
        show_progress: bool = True
) -> Optional[BatchResult]:
    """
    On-demand run: discover every missing translation and generate it.

    Args:
        app_config: The run configuration.
        provider: Translation provider. An OpenAI provider is built when omitted.
        locales: Optional subset of the configured locales to work on.
        show_progress: Whether to draw a progress bar.

    Returns:
        None when everything is up to date, otherwise the batch result.
    """
    tasks = find_missing_translations(
        app_config.translations_path,
        app_config.default_locale,
        locales or app_config.locales,
        known_locales=app_config.locales
    )
    if not tasks:
        logger.info("Your translations are up to date")
        return None

    provider = provider or build_provider(app_config)
    return await run_tasks(
        tasks,
        lambda task: translate_file(task, provider),
        concurrency=app_config.max_concurrent_tasks,
        show_progress=show_progress
    )
