"""
Chronologicon - Context-aware logging with tagged message formatting.

Provides structured logging with:
- Context-specific message tags ([START], [OK], [INGEST], ...)
- A single handler per named logger
- Level override through CHRONOLOGICON_LOG_LEVEL
- ASCII-safe output on stderr so stdout stays clean for CLI output
"""

from __future__ import annotations

import logging
import os
import sys

from chronologicon.constants import ENV_LOG_LEVEL

# ASCII level tags
LEVEL_TAGS = {
    logging.DEBUG: "[DEBUG]",
    logging.INFO: "[INFO]",
    logging.WARNING: "[WARN]",
    logging.ERROR: "[ERROR]",
    logging.CRITICAL: "[CRITICAL]",
}


class TaggedFormatter(logging.Formatter):
    """Formatter that prefixes every record with its level tag"""

    def format(self, record):
        tag = LEVEL_TAGS.get(record.levelno, "[INFO]")
        original_msg = super().format(record)
        return f"{tag} {original_msg}"


def _resolve_level() -> int:
    level_name = os.environ.get(ENV_LOG_LEVEL, "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def get_logger(name: str) -> ChronoLogger:
    """
    Get a context-aware logger instance.

    Args:
        name: Logger name (e.g., 'chronologicon.pipeline')

    Returns:
        ChronoLogger instance with tagged formatting
    """
    if name not in _loggers:
        _loggers[name] = ChronoLogger(name)
    return _loggers[name]


class ChronoLogger:
    """
    Chronologicon logger with context-aware message tags.

    Wraps a standard library logger; the tagged helpers keep log lines
    greppable by activity (startup, ingestion, configuration, timing).
    """

    def __init__(self, name: str):
        """Initialize logger with tagged formatting"""
        self.logger = logging.getLogger(name)

        # Only configure if not already configured
        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(
                TaggedFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            self.logger.addHandler(console_handler)
            self.logger.setLevel(_resolve_level())
            self.logger.propagate = False

    def _safe_log(self, level: str, message: str):
        """Safely log messages with fallback handling"""
        try:
            getattr(self.logger, level)(message)
        except (UnicodeEncodeError, OSError):
            fallback_message = message.encode("ascii", errors="replace").decode("ascii")
            getattr(self.logger, level)(fallback_message)

    # Context-specific logging methods
    def startup(self, message: str):
        """Log startup/initialization messages"""
        self._safe_log("info", f"[START] {message}")

    def success(self, message: str):
        """Log successful operations"""
        self._safe_log("info", f"[OK] {message}")

    def status(self, message: str):
        """Log status updates"""
        self._safe_log("info", f"[INFO] {message}")

    def ingest(self, message: str):
        """Log ingestion progress"""
        self._safe_log("info", f"[INGEST] {message}")

    def tracking(self, message: str):
        """Log tracking/monitoring activities"""
        self._safe_log("debug", f"[TRACK] {message}")

    def timing(self, message: str):
        """Log timing/performance information"""
        self._safe_log("info", f"[TIME] {message}")

    def config(self, message: str):
        """Log configuration messages"""
        self._safe_log("info", f"[CONFIG] {message}")

    def file_op(self, message: str):
        """Log file operations"""
        self._safe_log("info", f"[FILE] {message}")

    def info(self, message: str):
        """Log info messages"""
        self._safe_log("info", message)

    def warning(self, message: str):
        """Log warning messages"""
        self._safe_log("warning", f"[WARN] {message}")

    def error(self, message: str):
        """Log error messages"""
        self._safe_log("error", f"[ERROR] {message}")

    def exception(self, message: str):
        """Log exception with traceback"""
        self.logger.exception(f"[ERROR] {message}")

    def debug(self, message: str):
        """Log debug messages"""
        self._safe_log("debug", f"[DEBUG] {message}")


# Logger registry to avoid duplicate loggers
_loggers: dict[str, ChronoLogger] = {}


def set_level(level: int | str) -> None:
    """Change the level of every logger created so far."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    for chrono_logger in _loggers.values():
        chrono_logger.logger.setLevel(level)
