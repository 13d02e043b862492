"""
Configuration loading and management.

Reads ``<config_dir>/config.json`` on top of the defaults, applies
environment variable overrides and writes changes back atomically.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from ..models.config import GlobalSettings, PromptSyncConfig
from ..vault.errors import VaultPathNotFoundError
from .defaults import ENV_VAR_MAPPING, STRING_VALUED_PATHS, get_default_config

logger = logging.getLogger(__name__)


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class ConfigurationLoader:
    """Load and persist the promptsync configuration"""

    def __init__(self, global_settings: Optional[GlobalSettings] = None):
        self.global_settings = global_settings or GlobalSettings()
        self._config: Optional[PromptSyncConfig] = None

    @property
    def config_file(self) -> Path:
        return self.global_settings.config_file

    def load_config(self, reload: bool = False, apply_env: bool = True) -> PromptSyncConfig:
        """
        Load configuration from defaults, the config file and the environment.

        Args:
            reload: Ignore the cached configuration
            apply_env: Apply environment variable overrides

        Returns:
            Validated configuration; defaults if the file is missing or invalid
        """
        if self._config is not None and not reload and apply_env:
            return self._config

        data = get_default_config()
        if self.config_file.exists():
            _deep_merge(data, self._load_existing_config(self.config_file))

        if apply_env:
            data = self._apply_env_overrides(data)

        try:
            config = PromptSyncConfig.from_dict(data)
        except ValidationError as e:
            logger.error(f"Invalid configuration, using defaults: {e}")
            config = PromptSyncConfig.from_dict(get_default_config())

        if apply_env:
            self._config = config
        return config

    def _load_existing_config(self, config_file: Path) -> Dict[str, Any]:
        """Load existing configuration file"""
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config from {config_file}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Config file {config_file} does not contain an object")
            return {}
        return data

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration"""
        for env_var, config_path in ENV_VAR_MAPPING.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_value(config_data, config_path, env_value)

        return config_data

    def _set_nested_value(self, data: Dict[str, Any], path: str, value: str) -> None:
        """Set nested dictionary value using dot notation path"""
        keys = path.split('.')
        current = data

        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        if path in STRING_VALUED_PATHS:
            current[keys[-1]] = value
        else:
            current[keys[-1]] = self._convert_env_value(value)

    def _convert_env_value(self, value: str) -> Any:
        """Convert environment variable string to appropriate type"""
        if value.lower() in ('true', 'yes', 'on'):
            return True
        elif value.lower() in ('false', 'no', 'off'):
            return False

        try:
            if '.' in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        return value

    def save_config(self, config: PromptSyncConfig) -> bool:
        """Save configuration to disk"""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)

            temp_file = self.config_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)
            temp_file.replace(self.config_file)

            logger.info(f"Saved configuration to {self.config_file}")
            self._config = None
            return True

        except OSError as e:
            logger.error(f"Failed to save config to {self.config_file}: {e}")
            return False

    def set_vault_path(self, vault_path: Union[str, Path]) -> PromptSyncConfig:
        """
        Point the configuration at a vault directory and save it.

        Raises:
            VaultPathNotFoundError: If the directory does not exist
        """
        path = Path(vault_path).expanduser().resolve()
        if not path.is_dir():
            raise VaultPathNotFoundError(str(path))

        config = self.load_config(reload=True, apply_env=False)
        config.vault_path = path
        self.save_config(config)
        return config

    def resolve_cache_path(self, config: PromptSyncConfig) -> Path:
        """Configured cache database, or the default under the config directory"""
        return config.cache_path or self.global_settings.default_cache_path

    def clear_cache(self) -> None:
        """Clear cached configuration"""
        self._config = None
