"""Structured logging configuration shared by the hedge ratio tools."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

import structlog

# Attributes present on every stdlib LogRecord; anything else is an extra field
_RESERVED_RECORD_KEYS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message"}


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None
) -> None:
    """
    Configure structlog and the stdlib root logger for a service.

    Args:
        service_name: Name added to every log entry
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 'json' for machine-readable output, 'console' for development
        log_file: Optional file path; stdout is used otherwise
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    as_json = log_format.lower() == "json"

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_service_name(service_name),
        add_timestamp,
    ]
    if as_json:
        processors.append(add_process_info)
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if as_json:
        processors += [structlog.processors.UnicodeDecoder(), structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler(sys.stdout)

    if as_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(message)s'))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


def add_service_name(service_name: str):
    """Processor to add service name to all log entries."""
    def processor(logger, method_name, event_dict):
        event_dict["service"] = service_name
        return event_dict
    return processor


def add_timestamp(logger, method_name, event_dict):
    """Processor to add a UTC ISO timestamp to all log entries."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_process_info(logger, method_name, event_dict):
    """Processor to add process information to log entries."""
    event_dict["process_id"] = os.getpid()
    return event_dict


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for stdlib records.

    structlog events arrive already rendered as JSON and are passed through;
    plain stdlib records are wrapped in a JSON object.
    """

    def format(self, record):
        message = record.getMessage()
        if isinstance(record.msg, str) and message.startswith("{"):
            return message

        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": message,
            "process_id": record.process,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
