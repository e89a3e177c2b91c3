import logging
import sys
from datetime import datetime
from pathlib import Path

from arena.config import Config

ROOT_LOGGER_NAME = 'arena'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _configure_root_logger() -> logging.Logger:
    """Attach console and file handlers to the package logger, once"""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    log_level = logging.DEBUG if Config.DEBUG else logging.INFO
    root.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if Config.LOG_TO_FILE:
        log_dir = Path(Config.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(
            log_dir / f'arena_{datetime.now().strftime("%Y%m%d")}.log',
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


def setup_logger(name: str) -> logging.Logger:
    """
    Logger for one module of the engine.

    Handlers live only on the shared 'arena' logger; module loggers (including
    those from plain logging.getLogger(__name__) under the package) propagate
    to it, so every record is written once. Names outside the package are
    nested under it.
    """
    _configure_root_logger()
    if name != ROOT_LOGGER_NAME and not name.startswith(f'{ROOT_LOGGER_NAME}.'):
        name = f'{ROOT_LOGGER_NAME}.{name}'
    return logging.getLogger(name)
