"""CLI entry point for locale-sync."""
import asyncio
import os
from typing import Annotated, List, Optional

import typer

from locale_sync.app_config import ConfigurationError, configure_logging, load_app_config
from locale_sync.discovery import find_missing_translations
from locale_sync.git_gate import GitError, assert_git_repo
from locale_sync.orchestrator import BatchResult
from locale_sync.translator import sync_missing_translations, sync_staged_changes, write_failure_report

app = typer.Typer(
    name="locale-sync",
    help="Keep JSON locale files in sync with the default locale using OpenAI.",
    no_args_is_help=True,
)

REPORT_FILE = os.path.join('logs', 'locale_sync_failures.md')

ConfigOption = Annotated[
    Optional[str], typer.Option("--config", "-c", help="Path to locale-sync.config.json")
]


def _check_locales(requested: Optional[List[str]], configured: List[str]) -> Optional[List[str]]:
    if not requested:
        return None
    unknown = [code for code in requested if code not in configured]
    if unknown:
        raise typer.BadParameter(
            f"Unknown locale(s): {', '.join(unknown)}. Configured locales: {', '.join(configured)}",
            param_hint="'--locale'"
        )
    return requested


def _finish(result: Optional[BatchResult]) -> None:
    if result is None:
        return
    for outcome in result.failed:
        typer.secho(f"✖ {outcome.task}: {outcome.reason}", fg=typer.colors.RED, err=True)
    write_failure_report(result, REPORT_FILE)
    if result.has_failures:
        raise typer.Exit(code=1)
    typer.secho(f"✔ {len(result.succeeded)} translation(s) generated", fg=typer.colors.GREEN)


@app.command()
def hook(config: ConfigOption = None) -> None:
    """Translate staged default-locale files and stage the results (pre-commit)."""
    try:
        app_config = load_app_config(config)
        configure_logging(app_config)
        assert_git_repo()
        result = asyncio.run(sync_staged_changes(app_config))
    except (ConfigurationError, GitError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    if result is None:
        typer.secho("✔ Your translations are up to date, continue committing...", fg=typer.colors.GREEN)
    _finish(result)


@app.command()
def translate(
        config: ConfigOption = None,
        locale: Annotated[
            Optional[List[str]], typer.Option("--locale", "-l", help="Only translate this locale (repeatable)")
        ] = None,
        list_only: Annotated[
            bool, typer.Option("--list", help="Only list the missing translations")
        ] = False,
) -> None:
    """Find every missing translation and generate it."""
    try:
        app_config = load_app_config(config)
        configure_logging(app_config)
        locale = _check_locales(locale, app_config.locales)
        if list_only:
            missing = find_missing_translations(
                app_config.translations_path,
                app_config.default_locale,
                locale or app_config.locales,
                known_locales=app_config.locales
            )
            for task in missing:
                typer.echo(str(task))
            if not missing:
                typer.secho("✔ Your translations are up to date", fg=typer.colors.GREEN)
            return
        result = asyncio.run(sync_missing_translations(app_config, locales=locale))
    except ConfigurationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    if result is None:
        typer.secho("✔ Your translations are up to date", fg=typer.colors.GREEN)
    _finish(result)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
