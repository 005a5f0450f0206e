"""
Bastion - Core Package
======================

Configuration, logging and the database layer.

DESIGN:
    Core modules expose process-wide instances:
    - get_config() returns the same Config instance
    - get_db() returns the same DatabaseManager instance
    - logger is the global TreeLogger instance
"""

from .config import Config, ConfigValidationError, EmbedColors, NY_TZ, get_config
from .logger import logger, TreeLogger

__all__ = [
    "Config",
    "ConfigValidationError",
    "EmbedColors",
    "NY_TZ",
    "get_config",
    "logger",
    "TreeLogger",
]
