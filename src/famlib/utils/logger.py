"""Application logging utility."""

import logging
import sys
from datetime import datetime
from pathlib import Path

from famlib.utils.settings import Settings

LOGGER_NAME = "FamilyLibrary"

# Global logger instance
_logger: logging.Logger | None = None
_file_handler: logging.FileHandler | None = None


def get_log_path(settings: Settings | None = None) -> Path:
    """Get the log file path (next to the settings file)."""
    return (settings or Settings()).file_path.parent / f"{LOGGER_NAME}.log"


def setup_logging() -> logging.Logger:
    """Setup and return the application logger."""
    global _logger

    if _logger is not None:
        return _logger

    _logger = logging.getLogger(LOGGER_NAME)
    _logger.setLevel(logging.DEBUG)

    # Console handler (always enabled)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_formatter = logging.Formatter("%(levelname)s: %(message)s")
    console_handler.setFormatter(console_formatter)
    _logger.addHandler(console_handler)

    return _logger


def _enable_file_logging(log_path: Path):
    """Enable file logging."""
    global _file_handler

    if _file_handler is not None or _logger is None:
        return

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # Overwrite log file each time (mode='w')
        _file_handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
        _file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        _file_handler.setFormatter(file_formatter)
        _logger.addHandler(_file_handler)

        # Write startup info
        from famlib import __version__

        _logger.info("=" * 50)
        _logger.info(f"Family Library v{__version__}")
        _logger.info(f"Started: {datetime.now()}")
        _logger.info(f"Log file: {log_path}")
        _logger.info(f"Python: {sys.version}")
        _logger.info(f"Platform: {sys.platform}")
        _logger.info("=" * 50)
    except OSError as e:
        _file_handler = None
        _logger.warning(f"Could not create log file: {e}")


def _disable_file_logging():
    """Disable file logging."""
    global _file_handler

    if _file_handler is not None and _logger is not None:
        _logger.removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None


def configure_file_logging(settings: Settings):
    """Apply the file logging switch stored in ``settings``."""
    setup_logging()
    if settings.load_logging_enabled():
        _enable_file_logging(get_log_path(settings))
    else:
        _disable_file_logging()


def set_logging_enabled(enabled: bool, settings: Settings | None = None):
    """Enable or disable file logging."""
    settings = settings or Settings()
    settings.save_logging_enabled(enabled)
    configure_file_logging(settings)


def get_logger() -> logging.Logger:
    """Get the application logger."""
    if _logger is None:
        return setup_logging()
    return _logger
