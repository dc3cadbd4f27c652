"""Logging setup for the survey service.

Console output is human-readable (colored on a TTY) or JSON; the optional
log file always receives JSON lines.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

SERVICE_NAME = "toolscout"

# Libraries that are too chatty at INFO
QUIET_LOGGERS = ("aiohttp", "apscheduler", "httpx", "uvicorn")

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Attributes passed through `extra=`."""
    return {
        key: value for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """Formats each record as one JSON object."""

    def __init__(self, service_name: str = SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": self.service_name,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_extra_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """`time | LEVEL | logger | message` lines, colored by level."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                         datefmt="%Y-%m-%d %H:%M:%S")
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{line}{self.RESET}" if color else line


def setup_logging(level: str = "INFO",
                  service_name: str = SERVICE_NAME,
                  log_file: Optional[str] = None,
                  use_json: bool = False,
                  use_colors: bool = True) -> None:
    """Replace the root handlers with console (and optional file) output.

    Args:
        level: Level name; unknown names fall back to INFO
        service_name: Stamped on every JSON record
        log_file: JSON log file; parent directories are created
        use_json: JSON on the console instead of text
        use_colors: Color console text when stderr is a terminal
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    console = logging.StreamHandler(sys.stderr)
    if use_json:
        console.setFormatter(JSONFormatter(service_name))
    else:
        console.setFormatter(ColoredFormatter(use_colors and sys.stderr.isatty()))
    handlers = [console]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter(service_name))
        handlers.append(file_handler)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(numeric_level)
    for handler in handlers:
        handler.setLevel(numeric_level)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
