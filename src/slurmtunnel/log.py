"""
Logging setup for the wrapper and the management CLI.

The editor parses the wrapper's stdout, so every sink goes to stderr or a file.
"""

import os
import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <7} | pid={process} | {message}"


def configure_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "WARNING", format=LOG_FORMAT)
    if log_file:
        path = os.path.expanduser(os.path.expandvars(log_file))
        logger.add(path, level="DEBUG", format=FILE_FORMAT)
