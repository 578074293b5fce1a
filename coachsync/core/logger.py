"""Loguru setup shared by the API process and the Celery worker.

Messages carry a bracketed component tag ([SYNC], [PAIRING], ...) so one
athlete's pass can be followed across modules with a plain grep.
"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | {thread.name} - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {thread.name} - {message}"


def setup_logger(
    level: str = "INFO",
    log_file: str | None = None,
    rotation: str = "20 MB",
    retention: str = "14 days",
) -> None:
    """Replace loguru's default sink with ours.

    Args:
        level: Minimum level for every sink
        log_file: Also write to this file (rotated and zipped) when set
        rotation: When to roll the file over ("20 MB", "1 day", ...)
        retention: How long rolled files are kept
    """
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        # enqueue: worker threads of a parallel sync write to the same file
        logger.add(
            path,
            format=FILE_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            enqueue=True,
        )

    logger.debug(f"Logging configured (level={level}, file={log_file or '-'})")
