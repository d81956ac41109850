"""
AIOB validation module.

This module provides configuration validation and schema enforcement.
"""

from aiob.validation.config import Config, ConfigError

__all__ = ["Config", "ConfigError"]
