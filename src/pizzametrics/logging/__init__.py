"""Structured logging module.

This module provides JSON and text logging with trace context correlation.
"""

from pizzametrics.logging.manager import LoggerManager
from pizzametrics.logging.structured import StructuredFormatter, TextFormatter

__all__ = ["LoggerManager", "StructuredFormatter", "TextFormatter"]
