import logging
import logging.config
import os
import json
from datetime import datetime, timezone
from typing import Optional
import contextvars

import yaml

from . import config as config_module

# Context variable for trace ID
trace_id_var = contextvars.ContextVar('trace_id', default=None)

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'taskName', 'exc_info',
    'exc_text', 'stack_info', 'message',
}


def get_trace_id() -> Optional[str]:
    """Get the current trace ID from context"""
    return trace_id_var.get()


def log_job_event(event_type: str, message: str, **kwargs):
    """Log core job/timer events with structured data"""
    logger = logging.getLogger("shopfloor")
    logger.info(message, extra={
        "event_type": event_type,
        "component": "core",
        **kwargs
    })


class JsonFormatter(logging.Formatter):
    """JSON formatter with structured fields"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "trace_id": get_trace_id(),
            "component": getattr(record, 'component', 'api'),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED or key in log_entry:
                continue
            log_entry[key] = value

        return json.dumps(log_entry, default=str)


def _default_config(log_level: str, log_format: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JsonFormatter},
            "text": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": log_format,
                "stream": "ext://sys.stdout"
            }
        },
        "loggers": {
            "shopfloor": {"level": log_level, "handlers": ["console"], "propagate": False},
            "uvicorn": {"level": log_level, "handlers": ["console"], "propagate": False},
            "uvicorn.error": {"level": log_level, "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": log_level, "handlers": ["console"], "propagate": False},
        },
        "root": {
            "level": log_level,
            "handlers": ["console"]
        }
    }


def setup_logging(config_path: str = "LOGGING.yaml"):
    """Setup logging configuration from YAML file or environment"""

    log_format = config_module.LOG_FORMAT
    log_level = config_module.LOG_LEVEL

    config = None
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            print(f"Warning: Could not load {config_path}: {e}")

    if not config:
        config = _default_config(log_level, log_format)

    # Environment overrides win over the file
    if log_format == "text":
        for handler in config.get("handlers", {}).values():
            if "formatter" in handler:
                handler["formatter"] = "text"
    for logger in config.get("loggers", {}).values():
        logger["level"] = log_level

    logging.config.dictConfig(config)

    # Store configuration for middleware
    logging._config = {
        "exclude_paths": sorted(p for p in config_module.HTTP_LOG_EXCLUDE_PATHS if p),
        "sample_rate": config_module.HTTP_LOG_SAMPLE_RATE,
        "enabled": config_module.HTTP_LOG_ENABLED,
    }

    return config
