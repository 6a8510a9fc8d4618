import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once per process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT
    )


def configure_file_logging(log_file: Path, logger_name: Optional[str] = None) -> RotatingFileHandler:
    """Mirror log records into a rotating file, keeping a few backups."""
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Use RotatingFileHandler to limit log file size
    file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.getLogger(logger_name).addHandler(file_handler)
    return file_handler
