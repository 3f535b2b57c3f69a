"""Simple YAML configuration loader for SensesRelay."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "SENSESRELAY_TOKEN"

DEFAULT_CONFIG: Dict[str, Any] = {
    "relay": {
        "base_url": "https://senses.up.railway.app",
        "token": None,
        "reconnect_delay_seconds": 3.0,
    },
    "capture": {
        "sample_rate": 16000,
        "chunk_size": 1024,
        "channels": 1,
        "tick_interval_seconds": 0.05,
        "default_seconds": 5.0,
    },
    "google_cloud": {
        "credentials_path": None,
        "language": "en-US",
        "enable_automatic_punctuation": True,
    },
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/sensesrelay.log",
        "console_output": True,
    },
    "ui": {
        "sent_display_seconds": 3.0,
    },
}


class SensesRelayConfig:
    """SensesRelay configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given; using defaults")
            self.config = copy.deepcopy(DEFAULT_CONFIG)
        else:
            if not self.config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
            logger.info(f"Loading configuration from: {self.config_file}")
            self.config = self._load_config()

        token = os.environ.get(TOKEN_ENV_VAR)
        if token:
            self.set("relay.token", token)

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file over the defaults."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not loaded:
            raise ValueError("Configuration file is empty")
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = _merge(copy.deepcopy(DEFAULT_CONFIG), loaded)
        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        creds_path = config.get('google_cloud', {}).get('credentials_path')
        if creds_path and not os.path.isabs(creds_path):
            config['google_cloud']['credentials_path'] = str(config_dir / creds_path)

        log_path = config.get('logging', {}).get('file_path')
        if log_path and not os.path.isabs(log_path):
            config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'relay.base_url').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config
        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'relay.token')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' updated")


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base
