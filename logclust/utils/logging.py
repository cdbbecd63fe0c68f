"""
logclust Logging Configuration

Centralized logging setup for all logclust modules.

The clustering engines report per-run progress at DEBUG and drift warnings
at WARNING; the trainer reports pipeline steps at INFO. A separate level can
be given to the engines so long trainings stay quiet while the pipeline
remains visible.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "logclust"
ENGINES_LOGGER = "logclust.engines"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
    engine_level: Optional[int] = None,
) -> logging.Logger:
    """
    Configure the logclust logger hierarchy.

    Args:
        level: Logging level for logclust (default: INFO)
        log_file: Optional file path for log output
        format_string: Optional custom format string
        engine_level: Optional separate level for logclust.engines

    Returns:
        The configured root logclust logger
    """
    formatter = logging.Formatter(
        format_string or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"
    )

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(min(level, engine_level) if engine_level is not None else level)
    logger.handlers = []
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    engines = logging.getLogger(ENGINES_LOGGER)
    engines.setLevel(engine_level if engine_level is not None else logging.NOTSET)

    # Modules other than the engines keep the requested level.
    for name in ("logclust.training", "logclust.config", "logclust.core", "logclust.utils"):
        logging.getLogger(name).setLevel(level)

    logger.info(f"Logging initialized at {logging.getLevelName(level)} level")
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a logclust module.

    Args:
        name: Module name (will be prefixed with 'logclust.')
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
