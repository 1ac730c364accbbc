"""
Utility functions for the Grade Watcher pipeline.

This module provides:
- Central logging configuration
- JSON read/write helpers with atomic writes
- Environment variable access
- Text cleanup shared by the parser and notifier
"""

import json
import logging
import math
import os
import re
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from grade_watcher.errors import ConfigError, SnapshotError


APP_LOGGER = "grade_watcher"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

TRUTHY_VALUES = ("true", "1", "yes", "on")


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Send log records to stdout at the given level.

    Calling it again replaces the previous handlers, so the level read from
    the configuration always takes effect. Unknown level names fall back
    to INFO.

    Args:
        level: Level name such as DEBUG or WARNING.

    Returns:
        The application logger.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True
    )

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.setLevel(log_level)
    return app_logger


def get_logger(name: str) -> logging.Logger:
    """Child of the application logger, e.g. ``grade_watcher.fetch``."""
    return logging.getLogger(f"{APP_LOGGER}.{name}")


def read_json(filepath: str, default: Optional[Any] = None) -> Any:
    """
    Read JSON data from a file.

    A missing file is not an error and yields ``default``. Invalid JSON is
    reported to the caller as ``json.JSONDecodeError``.

    Args:
        filepath: Path to the JSON file.
        default: Value returned when the file does not exist.

    Returns:
        Parsed JSON data or the default value.
    """
    logger = get_logger("utils")

    path = Path(filepath)
    if not path.exists():
        logger.debug(f"File does not exist: {filepath}, returning default")
        return default

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    logger.debug(f"Successfully read JSON from {filepath}")
    return data


def write_json_atomic(filepath: str, data: Any, indent: int = 2) -> None:
    """
    Replace ``filepath`` with ``data`` serialized as JSON.

    The document is written to a sibling temporary file first and then moved
    over the target, so readers see either the old file or the new one.
    Missing parent directories are created.

    Args:
        filepath: Destination path.
        data: JSON-serializable value.
        indent: JSON indentation level.

    Raises:
        SnapshotError: If the data cannot be serialized or the file cannot
                       be written. The target is left as it was.
    """
    logger = get_logger("utils")
    target = Path(filepath)
    temp_path = None

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(suffix=".json", prefix="grades_", dir=target.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
        shutil.move(temp_path, filepath)
    except (OSError, TypeError, ValueError) as e:
        if temp_path and os.path.exists(temp_path):
            os.unlink(temp_path)
        raise SnapshotError(f"Failed to write {filepath}: {e}", context={"path": filepath}) from e

    logger.debug(f"Wrote JSON to {filepath}")


def get_env_var(name: str, required: bool = True, default: Optional[str] = None) -> Optional[str]:
    """
    Get an environment variable with optional requirement enforcement.

    Args:
        name: Name of the environment variable.
        required: If True, raises ConfigError when variable is not set.
                  Defaults to True.
        default: Default value if variable is not set and not required.

    Returns:
        Value of the environment variable or default.

    Raises:
        ConfigError: If required=True and the variable is not set.
    """
    value = os.environ.get(name)

    if value is None or value.strip() == "":
        if required:
            raise ConfigError(f"Required environment variable '{name}' is not set")
        return default

    return value.strip()


def is_truthy(value: Optional[str]) -> bool:
    """Return True for the usual spellings of an enabled flag."""
    return bool(value) and value.strip().lower() in TRUTHY_VALUES


def sanitize_text(text: Optional[str]) -> str:
    """
    Clean and normalize text content.

    Removes extra whitespace, newlines, and normalizes spacing.

    Args:
        text: Raw text to sanitize.

    Returns:
        Cleaned text string.
    """
    if not text:
        return ""

    cleaned = re.sub(r"\s+", " ", text)
    return cleaned.strip()


def parse_number(text: Optional[str]) -> Optional[float]:
    """
    Parse a grade or average as shown by the portal.

    Accepts a comma as decimal separator. Placeholders such as "-" yield None.

    Args:
        text: Raw numeric text.

    Returns:
        The parsed float, or None when the text is not a number.
    """
    cleaned = sanitize_text(text).replace(",", ".")
    if not cleaned:
        return None

    try:
        value = float(cleaned)
    except ValueError:
        return None

    return value if math.isfinite(value) else None
