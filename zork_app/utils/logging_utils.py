import logging
import json
import os
from logging.handlers import RotatingFileHandler

# Attributes services pass through ``extra=`` to tie a log line to a conversation.
CONTEXT_FIELDS = ("conversation_id", "thread_id", "run_id")


class JsonFormatter(logging.Formatter):
    """Format log records as one JSON object per line, with conversation context when present."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt or "%Y-%m-%d %H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "module": record.module,
            "funcName": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


def build_logging_config(log_dir: str, level: str = "INFO") -> dict:
    """``dictConfig`` mapping: console, rotating text log and rotating JSON log."""
    level = level.upper()
    app_handlers = ['console', 'app_file', 'json_file']
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'json': {
                '()': JsonFormatter,
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
        },
        'handlers': {
            'console': {
                'level': level,
                'class': 'logging.StreamHandler',
                'formatter': 'standard',
                'stream': 'ext://sys.stdout',
            },
            'app_file': {
                'level': level,
                'class': 'logging.handlers.RotatingFileHandler',
                'formatter': 'standard',
                'filename': os.path.join(log_dir, 'app.log'),
                'maxBytes': 10485760,
                'backupCount': 5,
                'encoding': 'utf8',
            },
            'json_file': {
                'level': level,
                'class': 'logging.handlers.RotatingFileHandler',
                'formatter': 'json',
                'filename': os.path.join(log_dir, 'app.json'),
                'maxBytes': 10485760,
                'backupCount': 5,
                'encoding': 'utf8',
            },
        },
        'loggers': {
            '': {'handlers': app_handlers, 'level': level, 'propagate': True},
            'werkzeug': {'handlers': app_handlers, 'level': 'INFO', 'propagate': False},
            'sqlalchemy.engine': {'handlers': app_handlers, 'level': 'WARNING', 'propagate': False},
            'openai': {'handlers': app_handlers, 'level': 'WARNING', 'propagate': False},
            'httpx': {'handlers': app_handlers, 'level': 'WARNING', 'propagate': False},
            'zork_app': {'handlers': app_handlers, 'level': level, 'propagate': False},
        },
    }


def setup_json_file_logger(log_file: str, level: int = logging.INFO) -> RotatingFileHandler:
    """Attach a RotatingFileHandler with :class:`JsonFormatter` to the root logger.

    Parameters
    ----------
    log_file:
        Path to the JSON log file.
    level:
        Logging level for the handler and root logger (default: ``logging.INFO``).

    Returns
    -------
    RotatingFileHandler
        The handler that was added. Call ``root_logger.removeHandler`` on it when done.
    """

    os.makedirs(os.path.dirname(log_file), exist_ok=True)
    handler = RotatingFileHandler(
        filename=log_file,
        maxBytes=10_485_760,
        backupCount=5,
        encoding="utf8",
    )
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    return handler
