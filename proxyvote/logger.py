"""
ProxyVote Logging
=================

Package-wide logging for the governance engine, built on the standard
``logging`` module with ``rich`` console output.

Handlers hang off the ``proxyvote`` logger, never the root logger, so an
application embedding the engine keeps its own logging tree. The level
starts from ``LOG_LEVEL`` (``.env``) and can be changed later through
``set_level``, which is what ``build_governance`` does with the configured
``log_level``.

Usage:
    >>> from proxyvote.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Proposal #0 created")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Union

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

PACKAGE_LOGGER = "proxyvote"
DEFAULT_LOG_FILE = Path.cwd() / "logs" / "proxyvote.log"

PROXYVOTE_THEME = Theme(
    {
        "proxyvote.address":        "cyan",
        "proxyvote.arrow":          "bold yellow",
        "proxyvote.error_code":     "bold red",
        "proxyvote.height":         "bold dim",
        "proxyvote.level_critical": "bold red reverse",
        "proxyvote.level_debug":    "bold dim",
        "proxyvote.level_error":    "bold red",
        "proxyvote.level_info":     "bold green",
        "proxyvote.level_warning":  "bold yellow",
        "proxyvote.logger_name":    "magenta",
        "proxyvote.proposal":       "bold white",
        "proxyvote.tag":            "bold magenta",
        "proxyvote.timestamp":      "bold cyan",
    }
)


def resolve_level(level: Union[str, int, None]) -> int:
    """Map a level name (or number) to a logging level, INFO when unknown."""
    if isinstance(level, int):
        return level
    return getattr(logging, str(level or LOG_LEVEL).upper(), logging.INFO)


class LogManager:
    """
    Process-wide owner of the ``proxyvote`` logging handlers.

    A singleton: the first ``get_logger`` call installs the handlers, later
    calls reuse them. ``set_level`` adjusts the logger and every handler it
    installed without rebuilding them.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._configured = False
                    cls._instance._handlers = []
        return cls._instance

    @property
    def package_logger(self) -> logging.Logger:
        return logging.getLogger(PACKAGE_LOGGER)

    @staticmethod
    def _formatter() -> "TerminalSafeFormatter":
        # Timestamps are UTC regardless of host timezone
        formatter = TerminalSafeFormatter(
            fmt=str(LOG_FORMAT),
            datefmt=f"{LOG_DATE_FORMAT} UTC",
        )
        formatter.converter = time.gmtime
        return formatter

    @staticmethod
    def _console_handler() -> logging.Handler:
        if LOG_CONSOLE_HIGHLIGHTING:
            return RichHandler(
                console=Console(theme=PROXYVOTE_THEME, highlight=False, stderr=True),
                highlighter=ProxyVoteLogHighlighter(),
                keywords=[],
                rich_tracebacks=True,
                show_path=False,
                show_time=False,
                show_level=False,
                markup=False,
            )
        return logging.StreamHandler(sys.stderr)

    @staticmethod
    def _file_handler(log_file: Path) -> logging.Handler:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            filename=str(log_file),
            maxBytes=LOG_MAX_FILE_SIZE,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )

    def configure(
        self,
        log_level: Union[str, int, None] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install the package handlers. Only the first call has an effect;
        use ``set_level`` to change verbosity afterwards.

        Args:
            log_level: Level name or number; defaults to ``LOG_LEVEL``
            log_file: Rotating log file path; defaults to ``./logs/proxyvote.log``
            console_output: Attach a console handler
            file_output: Attach a file handler; defaults to ``LOG_FILE_OUTPUT``
        """
        with self._lock:
            if self._configured:
                return

            handlers: List[logging.Handler] = []
            if console_output:
                handlers.append(self._console_handler())
            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                handlers.append(self._file_handler(log_file or DEFAULT_LOG_FILE))

            formatter = self._formatter()
            package_logger = self.package_logger
            package_logger.handlers.clear()
            for handler in handlers:
                handler.setFormatter(formatter)
                package_logger.addHandler(handler)

            self._handlers = handlers
            self._configured = True

        self.set_level(log_level)

    def set_level(self, log_level: Union[str, int, None]) -> int:
        """Apply *log_level* to the package logger and its handlers."""
        numeric_level = resolve_level(log_level)
        self.package_logger.setLevel(numeric_level)
        for handler in self._handlers:
            handler.setLevel(numeric_level)
        return numeric_level

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    @property
    def is_configured(self) -> bool:
        return self._configured


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that strips terminal control sequences from every record.

    Account identifiers, proposal titles and tags arrive from callers, so a
    rendered line may not carry ANSI escapes, carriage returns or other
    control characters (CWE-117). Tabs and newlines survive.
    """

    _unsafe_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"          # CSI sequences
        r"|\x1b[@-Z\\-_]"                   # bare ESC sequences
        r"|[\x00-\x08\x0B-\x1F\x7F]"        # controls except tab and newline
    )

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._unsafe_re.sub("", text)

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class ProxyVoteLogHighlighter(RegexHighlighter):
    """Regex-based coloring for governance log lines."""

    base_style = "proxyvote."
    highlights = [
        r"(?P<arrow>(\-\->)|(<--)|(→))",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<proposal>Proposal #\d+)",
        r"(?P<height>\bheight=\d+\b)",
        r"(?P<error_code>\bu\d{3}\b)",
        r"(?P<address>\b0x[0-9A-Za-z]{8,}\b)",
        r"(?P<tag>\[.*?\])",
        r"(?P<timestamp>^(.*?)UTC)",
    ]


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the configured ``proxyvote`` tree."""
    return _manager.get_logger(name)


def set_log_level(log_level: Union[str, int, None]) -> int:
    """Change the verbosity of every ``proxyvote`` logger."""
    return _manager.set_level(log_level)
