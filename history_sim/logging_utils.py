"""Logging utilities for history simulations.

Provides color-coded console output so deterministic pipeline steps, successes
and failures are easy to tell apart in long runs.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    BLUE = "\033[94m"      # Deterministic pipeline steps (perception, drives, execution)
    RED = "\033[91m"       # Errors
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata
    GREY = "\033[90m"      # Debug detail

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
        Colorized text if HISTORY_SIM_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("HISTORY_SIM_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def verbose_enabled() -> bool:
    """Return True when HISTORY_SIM_VERBOSE asks for debug output."""
    return os.getenv("HISTORY_SIM_VERBOSE", "").lower() in ("1", "true", "yes", "on")


def log_deterministic(message: str) -> None:
    """Log a deterministic pipeline step (blue)."""
    print(colored(f"{LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_error(message: str) -> None:
    """Log an error (red)."""
    print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))


def log_debug(message: str) -> None:
    """Log per-entity detail, only when HISTORY_SIM_VERBOSE is set."""
    if verbose_enabled():
        print(colored(f"  {message}", Color.GREY))


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Deterministic operation
LOG_TAG_ERROR = "[!]"          # Error
LOG_TAG_SUCCESS = "[✓]"        # Success
LOG_TAG_INFO = "[i]"           # Information
