"""
Logging setup for the Carer Application Portal.

Development runs log coloured lines to the console. Production runs log
JSON, one object per line, and also write a rotating file under logs/ so
step changes and reference updates can be traced per applicant.

Handlers tag records with LogContext data, usually the applicant id.
"""

import logging
import logging.handlers
import os
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGS_DIR = Path(__file__).parent.parent / "logs"

# FLASK_ENV -> default level when none is given
LOG_LEVELS = {
    "development": logging.DEBUG,
    "production": logging.INFO,
    "testing": logging.WARNING,
}

CONSOLE_MESSAGE_LIMIT = 500


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with LogContext data under "data"."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_obj["data"] = record.extra_data

        return json.dumps(log_obj, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Short coloured lines for a terminal.

    Context is appended as key=value pairs, e.g.
    "[10:42:01] INFO     portal.routes.progress: Step change: employment -> skills applicant_id=3"
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime("%H:%M:%S")

        # Gap explanations can be long free text
        message = record.getMessage()
        if len(message) > CONSOLE_MESSAGE_LIMIT:
            message = message[:CONSOLE_MESSAGE_LIMIT] + "..."

        context = ""
        if getattr(record, "extra_data", None):
            context = " " + " ".join(f"{k}={v}" for k, v in record.extra_data.items())

        return f"{color}[{timestamp}] {record.levelname:8}{self.RESET} {record.name}: {message}{context}"


def setup_logging(
    level: Optional[str] = None,
    json_logs: bool = False,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger for the portal.

    Args:
        level: Level name; defaults to the FLASK_ENV entry in LOG_LEVELS
        json_logs: Log JSON to the console instead of coloured lines
        log_file: Write JSON to this file as well. Production runs
            always log to logs/portal.log when no file is given.

    Returns:
        The root logger
    """
    env = os.environ.get("FLASK_ENV", "development")
    if level:
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        log_level = LOG_LEVELS.get(env, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter() if json_logs else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    if log_file or env == "production":
        if log_file:
            file_path = Path(log_file)
        else:
            LOGS_DIR.mkdir(exist_ok=True)
            file_path = LOGS_DIR / "portal.log"
        file_handler = logging.handlers.RotatingFileHandler(
            file_path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    # Request lines from the dev server
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Tag every record created inside the block with extra data.

    Usage:
        with LogContext(logger, applicant_id=applicant_id):
            session.next_step()

    The record factory is process-wide, so records from other loggers
    created inside the block are tagged too.
    """

    def __init__(self, logger: logging.Logger, **kwargs):
        self.logger = logger
        self.extra_data = kwargs
        self.old_factory = None

    def __enter__(self):
        self.old_factory = logging.getLogRecordFactory()
        extra = self.extra_data

        def record_factory(*args, **kwargs):
            record = self.old_factory(*args, **kwargs)
            record.extra_data = extra
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self.old_factory)
