import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any, MutableMapping, Optional

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LoggingConfig:
    """Logging setup for the records CLI: console plus a rotating log file."""

    def __init__(self, logs_dir: str = "logs", log_file: str = "records-cli.log"):
        self.logs_dir = Path(logs_dir)
        self.log_file = log_file
        self._configured = False

    @property
    def log_path(self) -> Path:
        return self.logs_dir / self.log_file

    def setup_logging(
        self,
        log_level: str = "INFO",
        console_level: Optional[str] = None,
        file_level: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,  # 10 MB
        backup_count: int = 5,
        log_format: Optional[str] = None,
    ) -> None:
        """
        Attach console and file handlers to the root logger.

        Calling this more than once is a no-op.

        Args:
            log_level: Default level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            console_level: Console level, if different from log_level
            file_level: File level, if different from log_level
            max_file_size: Size in bytes at which the log file rotates
            backup_count: Number of rotated files to keep
            log_format: Format string for both handlers
        """
        if self._configured:
            return

        root_level = LEVELS.get(log_level.upper(), logging.INFO)
        console_log_level = LEVELS.get((console_level or log_level).upper(), root_level)
        file_log_level = LEVELS.get((file_level or log_level).upper(), root_level)
        formatter = logging.Formatter(log_format or DEFAULT_FORMAT)

        root_logger = logging.getLogger()
        root_logger.setLevel(min(console_log_level, file_log_level))
        root_logger.handlers.clear()

        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            self.log_path,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        self._configured = True

        logger = logging.getLogger(__name__)
        logger.debug(
            f"Logging configured - Console: {console_level or log_level}, File: {file_level or log_level}"
        )
        logger.debug(f"Log file: {self.log_path.absolute()}")

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)


class BatchLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the batch id it belongs to."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[batch {self.extra['batch_id']}] {msg}", kwargs


# Global instance
_logging_config = LoggingConfig()


def setup_logging(**kwargs) -> None:
    _logging_config.setup_logging(**kwargs)


def get_logger(name: str) -> logging.Logger:
    return _logging_config.get_logger(name)


def get_batch_logger(name: str, batch_id: str) -> BatchLoggerAdapter:
    """Logger whose lines carry ``batch_id`` so one batch can be grepped out."""
    return BatchLoggerAdapter(logging.getLogger(name), {"batch_id": batch_id})


def configure_from_env() -> None:
    """Configure logging from LOG_LEVEL, CONSOLE_LOG_LEVEL and FILE_LOG_LEVEL."""
    setup_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        console_level=os.getenv("CONSOLE_LOG_LEVEL"),
        file_level=os.getenv("FILE_LOG_LEVEL"),
    )
