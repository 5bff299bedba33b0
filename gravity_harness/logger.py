"""
Gravity Harness Logging System
==============================

A unified, thread-safe logging utility for the scenario engine. This module
integrates with the standard Python `logging` library and the `rich` library
to provide structured, safe, and visually distinct logging outputs.

Usage:
    >>> from gravity_harness.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Scenario started")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
)


LOG_FILE_PATH = Path.cwd() / "logs" / "gravity-harness.log"


class LogManager:
    """
    Manages logging configuration via the Singleton pattern.

    This class ensures that the logging subsystem is initialized exactly once.
    It handles the setup of 'Rich' console and rotating file handlers for
    persistent storage.

    Attributes:
        _instance (LogManager): The singleton instance.
        _lock (threading.Lock): Thread lock for atomic initialization.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()


    def __new__(cls) -> "LogManager":
        """Creates or returns the existing singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance


    def __init__(self) -> None:
        if self._initialized:
            return
        self._configured = False
        self._initialized = True


    @staticmethod
    def build_formatter(log_format: str, date_format: str) -> "TerminalSafeFormatter":
        """
        Builds the UTC formatter from the `.env` formats.

        An unusable format string (bad `%(name)s` specifiers, a non-string value)
        is reported on stderr and replaced by the built-in default.
        """
        try:
            formatter = TerminalSafeFormatter(
                fmt=str(log_format) or None,
                datefmt=(str(date_format) or str(LOG_DATE_FORMAT.default())) + " UTC",
                validate=True,
            )
        except (ValueError, TypeError) as e:
            print(
                f"{time.strftime(str(LOG_DATE_FORMAT.default()))} - gravity_harness.logger - "
                f"Invalid log format ({e}). Using default.",
                file=sys.stderr,
            )
            formatter = TerminalSafeFormatter(
                fmt=str(LOG_FORMAT.default()),
                datefmt=str(LOG_DATE_FORMAT.default()) + " UTC",
            )
        # Uses UTC for consistency across machines running the scenario
        formatter.converter = time.gmtime
        return formatter


    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
        force: bool = False,
    ) -> None:
        """
        Configures the root logger with console and file handlers.

        Args:
            log_level (Optional[str]): Logging level (DEBUG, INFO, etc.). Defaults to env var.
            log_file (Optional[Path]): Path to the log file. Defaults to `logs/gravity-harness.log`.
            console_output (bool): Enable console logging. Defaults to True.
            file_output (Optional[bool]): Enable rotating file logging. Defaults to env var.
            force (bool): Reconfigure even if already configured (used by the CLI).
        """
        with self._lock:
            if self._configured and not force:
                return

            level_str = log_level or LOG_LEVEL
            numeric_level = getattr(logging, str(level_str).upper(), logging.INFO)

            root_logger = logging.getLogger()
            root_logger.setLevel(numeric_level)

            for lib in ["httpx", "httpx._client", "httpcore", "asyncio"]:
                logging.getLogger(lib).setLevel(logging.WARNING)

            root_logger.handlers.clear()

            formatter = self.build_formatter(LOG_FORMAT, LOG_DATE_FORMAT)

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    harness_theme = Theme(
                        {
                            "harness.arrow":          "bold yellow",
                            "harness.level_critical": "bold red reverse",
                            "harness.level_debug":    "bold dim",
                            "harness.level_error":    "bold red",
                            "harness.level_info":     "bold green",
                            "harness.level_warning":  "bold yellow",
                            "harness.logger_name":    "magenta",
                            "harness.network_error":  "bold red",
                            "harness.nonce":          "bold cyan",
                            "harness.state":          "bold white",
                            "harness.tag":            "bold magenta",
                            "harness.timestamp":      "bold cyan",
                            "harness.url":            "cyan",
                        }
                    )

                    console = Console(theme=harness_theme, highlight=False, stderr=True)

                    rich_handler = RichHandler(
                        console=console,
                        highlighter=HarnessLogHighlighter(),
                        keywords=[],
                        rich_tracebacks=True,
                        omit_repeated_times=False,
                        show_path=False,
                        show_time=False,
                        show_level=False,
                        markup=False,
                    )
                    rich_handler.setLevel(numeric_level)
                    rich_handler.setFormatter(formatter)
                    root_logger.addHandler(rich_handler)
                else:
                    console_handler = logging.StreamHandler(sys.stderr)
                    console_handler.setLevel(numeric_level)
                    console_handler.setFormatter(formatter)
                    root_logger.addHandler(console_handler)

            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                log_file_path = log_file or LOG_FILE_PATH
                log_file_path.parent.mkdir(parents=True, exist_ok=True)

                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(log_file_path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )

                file_handler.setLevel(numeric_level)
                file_handler.setFormatter(formatter)
                root_logger.addHandler(file_handler)

            self._configured = True


    def get_logger(self, name: str) -> logging.Logger:
        """
        Retrieves a configured logger instance for a specific module.

        Args:
            name (str): The name of the logger (typically `__name__`).

        Returns:
            logging.Logger: A configured standard Python logger.
        """
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


class TerminalSafeFormatter(logging.Formatter):
    """
    A formatter class that sanitizes log output.

    Strips ANSI escape sequences and non-printable control characters so that
    chain-supplied strings (memos, error logs) cannot manipulate the terminal.
    """

    _ansi_escape_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"
        r"|\x1b[@-Z\\-_]"
    )
    # Control chars (0x00-0x1F) excluding Tab and Newline
    _control_chars_re = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
    _carriage_return_re = re.compile(r"\r")


    @classmethod
    def sanitize(cls, text: str) -> str:
        """
        Removes potentially dangerous characters from the provided text.

        Args:
            text (str): The raw log message.

        Returns:
            str: The sanitized message safe for terminal output.
        """
        if not text:
            return text
        text = cls._ansi_escape_re.sub("", text)
        text = cls._carriage_return_re.sub("", text)
        text = cls._control_chars_re.sub("", text)
        return text


    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class HarnessLogHighlighter(RegexHighlighter):
    """
    Rich highlighter for scenario logs: validator tags, nonces, scenario
    states and RPC arrows.
    """

    base_style = "harness."
    highlights = [
        r"(?P<arrow>(\-\->)|(<--))",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<network_error>NETWORK_ERROR)",
        r"(?P<nonce>\bnonce[s]?[=:]\s*\S+)",
        r"(?P<state>\b(BASELINE|FAULTS_INJECTED|HALT_CONFIRMED|RECOVERY_SUBMITTED|RECOVERY_CONFIRMED|COMPLETED)\b)",
        r"(?P<tag>\[.*?\])",
        r"(?P<timestamp>^(.*?)UTC)",
        r"(?P<url>https?://\S+)",
    ]


_manager = LogManager()

def get_logger(name: str) -> logging.Logger:
    """
    Public accessor of the logging system.
    Delegates to the Singleton LogManager, ensuring configuration is applied.

    Args:
        name (str): The name of the module requesting the logger.

    Returns:
        logging.Logger: The configured logger instance.
    """
    return _manager.get_logger(name)


def configure_logging(log_level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """Reconfigure logging, e.g. from CLI options or the [logging] config section."""
    _manager.configure(
        log_level=log_level,
        log_file=log_file,
        file_output=True if log_file else None,
        force=True,
    )

# Auto-configure on import to ensure immediate availability
_manager.configure()
