import atexit
import json
import logging
import logging.handlers
import queue
from pathlib import Path

from config.config_loader import ConfigLoader

_queue_listener: logging.handlers.QueueListener | None = None
_atexit_registered = False

# Structured fields AutoRoom code passes through ``extra=``
LOG_CONTEXT_FIELDS = ("guild_id", "user_id", "channel_id", "resource_id", "outcome")

DEFAULT_LOG_FILE = "logs/autoroom.log"
DEFAULT_RETENTION_DAYS = 14


class ErrorLevelFilter(logging.Filter):
    """Allow only error-or-higher log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        return record.levelno >= logging.ERROR


class CustomJsonFormatter(logging.Formatter):
    """One JSON object per line, carrying any AutoRoom context fields present."""

    def format(self, record: logging.LogRecord) -> str:
        record_dict = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.name,
            "funcName": record.funcName,
            "lineno": record.lineno,
            "message": record.getMessage(),
        }
        for field in LOG_CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                record_dict[field] = value
        if record.exc_info:
            record_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(record_dict, ensure_ascii=False)


def setup_logging(log_file: str | None = None) -> None:
    """
    Route all logging through a queue to JSON file, error and console handlers.

    Reads ``logging.level``, ``logging.file`` and ``logging.retention_days``
    from the loaded config. Calling it again replaces the previous setup.

    Args:
        log_file: Override for ``logging.file``
    """
    logging_config = ConfigLoader.load_config().get("logging", {}) or {}
    log_path = Path(log_file or logging_config.get("file", DEFAULT_LOG_FILE))
    log_level = getattr(
        logging, str(logging_config.get("level", "INFO")).upper(), logging.INFO
    )
    retention_days = int(logging_config.get("retention_days", DEFAULT_RETENTION_DAYS))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    global _queue_listener
    if _queue_listener:
        _queue_listener.stop()
        _queue_listener = None

    (log_path.parent / "errors").mkdir(parents=True, exist_ok=True)

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=1000)
    queue_handler = logging.handlers.QueueHandler(log_queue)
    queue_handler.setLevel(log_level)
    root_logger.addHandler(queue_handler)

    _queue_listener = _build_queue_listener(
        log_queue, log_level, log_path, retention_days
    )
    _queue_listener.start()
    _register_logging_shutdown()

    # discord.py's gateway chatter drowns out voice-state handling at INFO
    logging.getLogger("discord").setLevel(logging.WARNING)


def _rotating_handler(path: Path, retention_days: int) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(path),
        when="midnight",
        backupCount=retention_days,
        utc=True,
        encoding="utf-8",
    )
    handler.suffix = "%Y-%m-%d"
    return handler


def _build_queue_listener(
    log_queue: queue.Queue, log_level: int, log_path: Path, retention_days: int
) -> logging.handlers.QueueListener:
    formatter = CustomJsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = _rotating_handler(log_path, retention_days)
    file_handler.setLevel(log_level)

    error_handler = _rotating_handler(
        log_path.parent / "errors" / "errors.jsonl", retention_days
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.addFilter(ErrorLevelFilter())

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)

    handlers = (file_handler, error_handler, console_handler)
    for handler in handlers:
        handler.setFormatter(formatter)

    return logging.handlers.QueueListener(
        log_queue, *handlers, respect_handler_level=True
    )


def _register_logging_shutdown() -> None:
    """Flush and stop the queue listener at interpreter exit."""
    global _atexit_registered
    if _atexit_registered:
        return

    def _shutdown_listener() -> None:
        global _queue_listener
        if _queue_listener:
            try:
                _queue_listener.stop()
            except Exception:
                # Handlers may already be closed at exit
                pass
            _queue_listener = None

    atexit.register(_shutdown_listener)
    _atexit_registered = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_module_logging_level(module_name: str, level: int) -> None:
    """Override the level of one logger, e.g. ``services.autoroom`` for debugging."""
    logging.getLogger(module_name).setLevel(level)


setup_logging()
