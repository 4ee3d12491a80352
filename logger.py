import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[module]: <18}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[module]: <18} | {name}:{line} - {message}"


def _add_file_sink(path: str, level: str, retention: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        path,
        format=FILE_FORMAT,
        level=level,
        rotation="5 MB",
        retention=retention,
        compression="zip",
        enqueue=True,
    )


def setup_logger(log_level: str | None = None, log_file: str | None = None) -> None:
    """Configure loguru sinks from arguments or LOG_LEVEL / LOG_FILE / ERROR_LOG_FILE."""
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE")
    error_log_file = os.getenv("ERROR_LOG_FILE")

    logger.remove()
    logger.configure(extra={"module": "uploader"})

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)

    if log_file:
        _add_file_sink(log_file, log_level, "7 days")

    if error_log_file:
        _add_file_sink(error_log_file, "ERROR", "14 days")


def get_logger(module_name: str | None = None):
    """Return the shared logger, optionally bound to a module label."""
    if module_name:
        return logger.bind(module=module_name)
    return logger


def format_log(message: str, **details: Any) -> str:
    """Append key=value details to a log message."""
    if not details:
        return message
    return f"{message} | " + " | ".join(f"{key}={value}" for key, value in details.items())


setup_logger()
