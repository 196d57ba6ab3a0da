"""Application configuration module for locale-sync."""
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI

from locale_sync.logging_config import setup_logger

CONFIG_FILE_NAME = 'locale-sync.config.json'
REQUIRED_KEYS = ('translationsPath', 'defaultLocale', 'locales')

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when the configuration is missing or unusable. Aborts the run."""


@dataclass(frozen=True)
class AppConfig:
    """Read-only configuration built once per run and passed explicitly."""
    config_path: str

    # Locale layout
    translations_path: str
    default_locale: str
    locales: List[str]

    # Provider settings
    model_name: str = 'gpt-4o-mini'
    api_key: Optional[str] = field(default=None, repr=False)
    max_model_tokens: int = 16000
    requests_per_minute: int = 60

    # Processing settings
    max_concurrent_tasks: int = 5

    # Logging
    log_level: str = 'INFO'
    log_file_path: Optional[str] = None
    log_to_console: bool = True


def _resolve_config_path(config_path: Optional[str]) -> str:
    """Pick the config file: explicit argument, then LOCALE_SYNC_CONFIG_FILE, then the default name."""
    path = config_path or os.environ.get('LOCALE_SYNC_CONFIG_FILE', CONFIG_FILE_NAME)
    return os.path.abspath(path)


def _load_dotenv_files(base_dir: str) -> None:
    """Load a .env file sitting next to the configuration, if there is one."""
    dotenv_path = os.path.join(base_dir, '.env')
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path)


def _read_config_file(config_file: str) -> Dict[str, Any]:
    """Read the persisted configuration record. Any failure here is fatal."""
    if not os.path.exists(config_file):
        raise ConfigurationError(
            f"{os.path.basename(config_file)} not found at '{config_file}'. "
            f"Please create it with 'translationsPath', 'defaultLocale' and 'locales'."
        )

    try:
        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid configuration file '{config_file}': {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Could not read configuration file '{config_file}': {e}") from e

    if not isinstance(loaded_config, dict):
        raise ConfigurationError(f"Configuration file '{config_file}' must contain a JSON object.")
    return loaded_config


def _check_required_keys(config: Dict[str, Any], config_file: str) -> None:
    missing = [key for key in REQUIRED_KEYS if not config.get(key)]
    if missing:
        raise ConfigurationError(
            f"Configuration file '{config_file}' is missing required option(s): {', '.join(missing)}."
        )


def _resolve_api_key(config: Dict[str, Any]) -> Optional[str]:
    """Environment variables win over the key stored in the configuration."""
    return os.environ.get('OPENAI_KEY') or os.environ.get('OPENAI_API_KEY') or config.get('openaiApiKey')


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the run configuration.

    Relative ``translationsPath`` values are kept as written so that paths in
    logs and git pathspecs match what the user configured.

    Args:
        config_path: Optional explicit path to the configuration file.

    Returns:
        AppConfig: The loaded configuration.

    Raises:
        ConfigurationError: The file is absent, unreadable, malformed or lacks a required option.
    """
    config_file = _resolve_config_path(config_path)
    _load_dotenv_files(os.path.dirname(config_file))

    config = _read_config_file(config_file)
    _check_required_keys(config, config_file)

    locales = config['locales']
    if isinstance(locales, str):
        locales = [locales]

    log_config = config.get('logging') or {}

    return AppConfig(
        config_path=config_file,
        translations_path=str(config['translationsPath']),
        default_locale=str(config['defaultLocale']),
        locales=[str(locale) for locale in locales],
        model_name=os.environ.get('MODEL_NAME', config.get('modelName', 'gpt-4o-mini')),
        api_key=_resolve_api_key(config),
        max_model_tokens=int(config.get('maxModelTokens', 16000)),
        requests_per_minute=int(config.get('requestsPerMinute', 60)),
        max_concurrent_tasks=int(config.get('maxConcurrentTasks', 5)),
        log_level=str(log_config.get('logLevel', 'INFO')).upper(),
        log_file_path=log_config.get('logFilePath'),
        log_to_console=log_config.get('logToConsole', True),
    )


def configure_logging(app_config: AppConfig) -> logging.Logger:
    """Set up the package logger from the configuration."""
    return setup_logger(app_config.log_level, app_config.log_file_path, app_config.log_to_console)


def create_openai_client(app_config: AppConfig) -> AsyncOpenAI:
    """
    Create the OpenAI client for a run that actually has work to do.

    Retries are disabled: a provider call is a single fallible operation and
    a failed task is picked up again by the next discovery run.
    """
    if not app_config.api_key:
        raise ConfigurationError(
            "OpenAI API key not found. Set OPENAI_API_KEY (or OPENAI_KEY) or add 'openaiApiKey' to the configuration."
        )
    client = AsyncOpenAI(api_key=app_config.api_key, max_retries=0)
    logger.info("OpenAI client initialized for model '%s'", app_config.model_name)
    return client
