"""
Configuration management for kinformer

Handles defaults, config file loading and environment overrides.
"""

from .loader import ConfigurationLoader
from .defaults import DEFAULT_SETTINGS, ENV_VAR_MAPPING

__all__ = ["ConfigurationLoader", "DEFAULT_SETTINGS", "ENV_VAR_MAPPING"]
