"""
Модуль логирования Coberturas
"""

from .logger import logger, StructuredLogger, JSONFormatter, setup_logging

__all__ = ["logger", "StructuredLogger", "JSONFormatter", "setup_logging"]
