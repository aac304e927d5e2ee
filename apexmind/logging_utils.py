"""Logging utilities for the decision engine.

Provides color-coded output to distinguish local synthesis from inference calls.
Messages below ``Config.LOG_LEVEL`` (DEBUG, INFO, WARNING or ERROR) are dropped.
"""

import os
from enum import Enum

from .config import Config


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic operations (synthesis, cache, memory)
    YELLOW = "\033[93m"    # Inference calls
    MAGENTA = "\033[95m"   # Budget warnings
    RED = "\033[91m"       # Errors and fallbacks
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if APEXMIND_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("APEXMIND_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Local operation
LOG_TAG_LLM = "[AI]"           # Inference call
LOG_TAG_WARNING = "[~]"        # Budget warning
LOG_TAG_ERROR = "[!]"          # Error/fallback
LOG_TAG_SUCCESS = "[✓]"        # Success
LOG_TAG_INFO = "[i]"           # Information

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}


def _enabled(level: str) -> bool:
    # Unknown levels behave like INFO.
    threshold = _LEVELS.get(str(Config.LOG_LEVEL).upper(), _LEVELS["INFO"])
    return _LEVELS[level] >= threshold


def log_deterministic(message: str) -> None:
    """Log a local, deterministic operation (blue)."""
    if _enabled("INFO"):
        print(colored(f"{LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_llm(message: str) -> None:
    """Log an inference operation (yellow)."""
    if _enabled("INFO"):
        print(colored(f"{LOG_TAG_LLM} {message}", Color.YELLOW))


def log_warning(message: str) -> None:
    """Log a warning (magenta)."""
    if _enabled("WARNING"):
        print(colored(f"{LOG_TAG_WARNING} {message}", Color.MAGENTA))


def log_error(message: str) -> None:
    """Log an error or fallback (red)."""
    if _enabled("ERROR"):
        print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    if _enabled("INFO"):
        print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    if _enabled("INFO"):
        print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))
