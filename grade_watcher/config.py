"""
Configuration for the Grade Watcher pipeline.

Settings come from environment variables. A ``.env`` file in the working
directory is loaded first; variables already present in the environment
take precedence over it.
"""

import os
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from grade_watcher.errors import ConfigError
from grade_watcher.utils import get_env_var, get_logger, is_truthy


logger = get_logger("config")

DEFAULT_BASE_URL = "https://gaps.heig-vd.ch"
DEFAULT_SNAPSHOT_PATH = "grades.json"

REQUIRED_VARS = ["WEBHOOK_ID", "WEBHOOK_TOKEN", "GAPS_LOGIN", "GAPS_PASSWORD"]


@dataclass
class Settings:
    """
    Process configuration.

    Attributes:
        webhook_id: Discord webhook identifier.
        webhook_token: Discord webhook token.
        login: Portal login.
        password: Portal password.
        term: Academic year passed to the grade report endpoint.
        base_url: Portal base URL.
        snapshot_path: File holding the last known grade tree.
        log_level: Logging level name.
        dry_run: When True the webhook is never called.
    """
    webhook_id: str
    webhook_token: str = field(repr=False)
    login: str
    password: str = field(repr=False)
    term: str
    base_url: str = DEFAULT_BASE_URL
    snapshot_path: str = DEFAULT_SNAPSHOT_PATH
    log_level: str = "INFO"
    dry_run: bool = False


def current_term(today: Optional[date] = None) -> str:
    """
    Return the academic year that contains ``today``.

    The academic year starts on August 1st, so January 2024 belongs to
    the 2023 term.
    """
    today = today or date.today()
    year = today.year if today.month >= 8 else today.year - 1
    return str(year)


def find_missing_variables() -> List[str]:
    """Return the names of required variables that are unset or blank."""
    missing = []
    for var in REQUIRED_VARS:
        value = os.environ.get(var)
        if not value or value.strip() == "":
            missing.append(var)
    return missing


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        dotenv_path: Optional explicit path of a .env file.

    Returns:
        Populated Settings instance.

    Raises:
        ConfigError: If any required variable is missing. All missing
                     names are reported at once.
    """
    load_dotenv(dotenv_path or find_dotenv(usecwd=True), override=False)

    missing = find_missing_variables()
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}",
            context={"missing": missing}
        )

    settings = Settings(
        webhook_id=get_env_var("WEBHOOK_ID"),
        webhook_token=get_env_var("WEBHOOK_TOKEN"),
        login=get_env_var("GAPS_LOGIN"),
        password=get_env_var("GAPS_PASSWORD"),
        term=get_env_var("GAPS_TERM", required=False, default=current_term()),
        base_url=get_env_var("GAPS_BASE_URL", required=False, default=DEFAULT_BASE_URL).rstrip("/"),
        snapshot_path=get_env_var("GRADES_PATH", required=False, default=DEFAULT_SNAPSHOT_PATH),
        log_level=get_env_var("LOG_LEVEL", required=False, default="INFO").upper(),
        dry_run=is_truthy(os.environ.get("DRY_RUN", ""))
    )

    logger.debug(f"Loaded settings: {settings}")
    return settings
