"""
Configuration loading.

Merges defaults, an optional JSON config file and environment overrides into
a validated :class:`InformerConfig`.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from ..errors import ConfigurationError
from ..models.config import InformerConfig
from .defaults import DEFAULT_SETTINGS, ENV_VAR_MAPPING

logger = logging.getLogger(__name__)


class ConfigurationLoader:
    """Load informer configuration from defaults, files and the environment"""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self.environ = environ if environ is not None else os.environ

    def load(self, config_file: Optional[Union[str, Path]] = None) -> InformerConfig:
        """
        Build the effective configuration.

        Raises:
            ConfigurationError: If the file cannot be read or the result is invalid
        """
        data = self.load_settings(config_file)
        informer = dict(data.get("informer", {}))
        informer["rate_limiter"] = data.get("rate_limiter", {})
        try:
            return InformerConfig(**informer)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid informer configuration: {e}") from e

    def load_settings(self, config_file: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
        """Raw merged settings dictionary (defaults, file, environment)"""
        data = copy.deepcopy(DEFAULT_SETTINGS)
        if config_file is not None:
            self._deep_merge(data, self._read_file(Path(config_file)))
        return self._apply_env_overrides(data)

    def _read_file(self, config_file: Path) -> Dict[str, Any]:
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                content = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config from {config_file}: {e}")
            raise ConfigurationError(f"Failed to load config from {config_file}: {e}") from e

        if not isinstance(content, dict):
            raise ConfigurationError(f"Config file {config_file} must contain a JSON object")
        logger.debug(f"Loaded configuration from {config_file}")
        return content

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Recursively merge ``override`` into ``base``"""
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration"""
        for env_var, config_path in ENV_VAR_MAPPING.items():
            env_value = self.environ.get(env_var)
            if env_value is not None:
                self._set_nested_value(config_data, config_path, env_value)

        return config_data

    def _set_nested_value(self, data: Dict[str, Any], path: str, value: str) -> None:
        """Set nested dictionary value using dot notation path"""
        keys = path.split('.')
        current = data

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = self._convert_env_value(value)

    def _convert_env_value(self, value: str) -> Any:
        """Convert environment variable string to appropriate type"""
        if value.lower() in ('none', 'null', ''):
            return None

        # Numeric conversion
        try:
            if '.' in value or 'e' in value.lower():
                return float(value)
            return int(value)
        except ValueError:
            pass

        # Boolean conversion
        if value.lower() in ('true', 'yes', 'on'):
            return True
        elif value.lower() in ('false', 'no', 'off'):
            return False

        # Return as string
        return value
