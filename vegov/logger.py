"""
Vegov Logging System
====================

A unified, thread-safe logging utility for the governance engine. This module
integrates the standard Python `logging` library with `rich` to provide
readable console output and an optional rotating log file.

Usage:
    >>> from vegov.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Engine started")
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
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
)


PROJECT_ROOT = Path(__file__).parent.parent
LOG_FILE_PATH = PROJECT_ROOT / "logs" / "vegov.log"


class LogManager:
    """
    Manages logging configuration via the Singleton pattern.

    The logging subsystem is initialized exactly once. Console output goes
    through a themed `RichHandler`; persistent output, when enabled, goes to
    a size-rotated file.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> "LogManager":
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
    def validate_log_format(log_format: str) -> str:
        """
        Validates a logging format string by formatting a dummy record.

        Returns the format unchanged, or the default `LOG_FORMAT` when the
        string is malformed.
        """
        try:
            if not log_format:
                return str(LOG_FORMAT.default())

            log_format = str(log_format)
            specifier = r"\([a-zA-Z_][a-zA-Z0-9_]*\)[a-zA-Z]"

            for match in re.finditer(specifier, log_format):
                start = match.start()
                if start == 0 or log_format[start - 1] != "%":
                    raise ValueError("Malformed format specifier.")

            formatter = logging.Formatter(fmt=log_format)
            record = logging.LogRecord(
                name="test", level=logging.INFO, pathname="", lineno=0,
                msg="test", args=(), exc_info=None,
            )
            if re.search(specifier, formatter.format(record)):
                raise ValueError("Format specifiers not properly processed.")

            return log_format
        except (ValueError, KeyError, TypeError) as e:
            print(
                f"{time.strftime(str(LOG_DATE_FORMAT.default()))} - vegov.logger - "
                f"Validation Error: {e}. Using default.",
                file=sys.stderr,
            )
            return str(LOG_FORMAT.default())

    @staticmethod
    def validate_date_format(date_format: str) -> str:
        """Validates a strftime date format, falling back to the default."""
        if not date_format:
            return str(LOG_DATE_FORMAT.default())

        date_format = str(date_format)

        # Only strftime directives and plain separators are accepted
        date_format_pattern = re.compile(
            r"^(?=.*%(?!%)(?:[EO])?(?:[-_0^#])*(?:[A-DF-HIM-NPR-VW-Za-hj-lm-npr-uw-z]))"
            r"(?:%%|%(?:[EO])?(?:[-_0^#])*(?:[A-DF-HIM-NPR-VW-Za-hj-lm-npr-uw-z])|[0-9 \t:\-\/\.,TZ+])+$"
        )

        if not date_format_pattern.match(date_format):
            print(
                f"{time.strftime(str(LOG_DATE_FORMAT.default()))} - vegov.logger - "
                f"Invalid date format. Using default.",
                file=sys.stderr,
            )
            return str(LOG_DATE_FORMAT.default())

        return date_format

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Configures the root logger with console and file handlers.

        Args:
            log_level: Logging level name. Defaults to the `LOG_LEVEL` setting.
            log_file: Path of the rotating log file. Defaults to `logs/vegov.log`.
            console_output: Enable console logging.
            file_output: Enable file logging. Defaults to the `LOG_FILE_OUTPUT` setting.
        """
        with self._lock:
            if self._configured:
                return

            level_str = log_level or LOG_LEVEL
            numeric_level = getattr(logging, str(level_str).upper(), logging.INFO)

            root_logger = logging.getLogger()
            root_logger.setLevel(numeric_level)
            root_logger.handlers.clear()

            log_format = self.validate_log_format(LOG_FORMAT)
            date_format = self.validate_date_format(LOG_DATE_FORMAT)

            # UTC timestamps regardless of server timezone
            formatter = TerminalSafeFormatter(fmt=log_format, datefmt=date_format + " UTC")
            formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    vegov_theme = Theme(
                        {
                            "vegov.level_critical": "bold red reverse",
                            "vegov.level_debug":    "bold dim",
                            "vegov.level_error":    "bold red",
                            "vegov.level_info":     "bold green",
                            "vegov.level_warning":  "bold yellow",
                            "vegov.logger_name":    "magenta",
                            "vegov.op":             "bold magenta",
                            "vegov.proposal":       "bold yellow",
                            "vegov.rejected":       "bold red",
                            "vegov.timestamp":      "bold cyan",
                        }
                    )
                    console = Console(theme=vegov_theme, highlight=False)

                    rich_handler = RichHandler(
                        console=console,
                        highlighter=VegovLogHighlighter(),
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
                    console_handler = logging.StreamHandler(sys.stdout)
                    console_handler.setLevel(numeric_level)
                    console_handler.setFormatter(formatter)
                    root_logger.addHandler(console_handler)

            if file_output if file_output is not None else LOG_FILE_OUTPUT:
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
        """Retrieves a logger for a module, configuring the system on first use."""
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    @property
    def is_configured(self) -> bool:
        return self._configured


class TerminalSafeFormatter(logging.Formatter):
    """
    A formatter that strips ANSI escape sequences and non-printable control
    characters, so addresses and denominations supplied by callers cannot
    manipulate the terminal or forge log lines.
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
        if not text:
            return text
        text = cls._ansi_escape_re.sub("", text)
        text = cls._carriage_return_re.sub("", text)
        text = cls._control_chars_re.sub("", text)
        return text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class VegovLogHighlighter(RegexHighlighter):
    """Highlights levels, operation names, proposal ids and amounts."""

    base_style = "vegov."
    highlights = [
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"\[(?P<op>[A-Z_]+)\]",
        r"(?P<proposal>#\d+)",
        r"(?P<rejected>\brejected\b)",
        r"(?P<timestamp>^(.*?)UTC)",
    ]


_manager = LogManager()

def get_logger(name: str) -> logging.Logger:
    """
    Public accessor of the logging system.
    Delegates to the singleton LogManager, ensuring configuration is applied.
    """
    return _manager.get_logger(name)

# Auto-configure on import so loggers are usable immediately
_manager.configure()
