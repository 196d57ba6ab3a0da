"""Staged-change gate for the pre-commit path."""
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

LOCKFILES = ("package-lock.json", "yarn.lock", "pnpm-lock.yaml")


class GitError(Exception):
    """Raised when a git command fails or the working directory is not a repository."""


@dataclass
class StagedDiff:
    files: List[str]
    diff: str


def _run_git(args: Sequence[str], cwd: Optional[str] = None) -> str:
    try:
        result = subprocess.run(
            ['git', *args],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=True
        )
    except subprocess.CalledProcessError as git_exc:
        raise GitError(f"git {' '.join(args)} failed: {git_exc.stderr.strip()}") from git_exc
    except FileNotFoundError as exc:
        raise GitError("git executable not found on PATH.") from exc
    return result.stdout


def assert_git_repo(cwd: Optional[str] = None) -> None:
    """Raise GitError unless ``cwd`` is inside a git work tree."""
    try:
        output = _run_git(['rev-parse', '--is-inside-work-tree'], cwd=cwd)
    except GitError as exc:
        raise GitError("The current directory must be a Git repository!") from exc
    if output.strip() != 'true':
        raise GitError("The current directory must be a Git repository!")


def resolve_diff_scope(translations_path: str, default_locale: str) -> str:
    """Look for staged changes under the default-locale directory when there is one, else the whole root."""
    default_locale_dir = os.path.join(translations_path, default_locale)
    if os.path.isdir(default_locale_dir):
        return default_locale_dir
    return translations_path


def get_staged_diff(
        path_scope: str,
        exclude: Iterable[str] = LOCKFILES,
        cwd: Optional[str] = None
) -> Optional[StagedDiff]:
    """
    Collect the staged changes under ``path_scope``.

    Deleted files are left out since there is nothing to translate from them.

    Args:
        path_scope: Directory (or file) to restrict the diff to.
        exclude: File names to leave out of the diff, lockfiles by default.
        cwd: Directory to run git in. Defaults to the process working directory.

    Returns:
        None when nothing is staged under the scope. Otherwise the absolute
        paths of the staged files and the combined diff text.
    """
    pathspec = ['--', path_scope, *(f":(exclude){name}" for name in exclude)]

    names = _run_git(['diff', '--cached', '--name-only', '--diff-filter=ACMR', *pathspec], cwd=cwd)
    staged = [line.strip() for line in names.splitlines() if line.strip()]
    if not staged:
        return None

    # --name-only reports paths relative to the repository root
    top_level = _run_git(['rev-parse', '--show-toplevel'], cwd=cwd).strip()
    files = [os.path.join(top_level, path) for path in staged]

    diff = _run_git(['diff', '--cached', *pathspec], cwd=cwd)
    logger.debug("Staged files under '%s': %s", path_scope, files)
    return StagedDiff(files=files, diff=diff)


def stage_files(paths: Iterable[str], cwd: Optional[str] = None) -> None:
    """Add the given files to the index."""
    paths = list(paths)
    if not paths:
        return
    _run_git(['add', '--', *paths], cwd=cwd)
    logger.info("Staged %d generated translation file(s).", len(paths))
