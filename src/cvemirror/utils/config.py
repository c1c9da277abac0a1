"""
Configuration management for CVE Mirror
"""
import os
import copy
import json
import logging
from typing import Dict, Any, Optional
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "CVEMIRROR_CONFIG"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into a copy of base, recursing into nested dicts"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Centralized configuration management"""

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file or os.environ.get(CONFIG_FILE_ENV, "config.json")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file merged over the defaults"""
        config_path = Path(self.config_file)
        defaults = self._get_default_config()

        if config_path.exists():
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
                logger.info(f"Loaded configuration from {self.config_file}")
                return _deep_merge(defaults, file_config)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load config file {self.config_file}: {e}")
                logger.info("Using default configuration")
        else:
            logger.debug(f"Config file {self.config_file} not found, using default configuration")

        return defaults

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration"""
        return {
            "api": {
                "nvd": {
                    "base_url": "https://services.nvd.nist.gov/rest/json/cves/2.0",
                    "api_key_env": "NVD_API_KEY",
                    "timeout": 30,
                    "results_per_page": 100,
                    "rate_limit": {
                        "window_seconds": 30,
                        "max_requests": 5,
                        "max_requests_with_key": 50
                    }
                }
            },
            "storage": {
                "path": "database/cves.db",
                "path_env": "CVEMIRROR_DB_PATH"
            },
            "sync": {
                "seed_pages": 5,
                "incremental_hours": 24,
                "schedule": "30 0 * * *"
            },
            "web": {
                "host": "localhost",
                "port": 5000
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "file": None,  # Set to filename to enable file logging
                "json_file": None
            }
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation

        Args:
            key_path: Dot-separated path to config value (e.g., 'api.nvd.timeout')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key_path: str, value: Any) -> None:
        """
        Set configuration value using dot notation

        Args:
            key_path: Dot-separated path to config value
            value: Value to set
        """
        keys = key_path.split('.')
        config = self.config

        for key in keys[:-1]:
            if key not in config:
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

    def save(self) -> None:
        """Save current configuration to file"""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self.config, f, indent=4)
        logger.info(f"Configuration saved to {self.config_file}")

    def validate(self) -> bool:
        """
        Validate configuration

        Returns:
            True if configuration is valid
        """
        from cvemirror.utils.config_validator import ConfigValidator

        validator = ConfigValidator()
        is_valid = validator.validate_config(self.config)

        if not is_valid:
            logger.error("Configuration validation failed:")
            for error in validator.get_errors():
                logger.error(f"  - {error}")

        for warning in validator.get_warnings():
            logger.warning(f"Configuration warning: {warning}")

        return is_valid

    def get_api_key(self, api_name: str) -> Optional[str]:
        """
        Get API key from environment variable

        Args:
            api_name: Name of the API (e.g., 'nvd')

        Returns:
            API key or None if not found
        """
        env_var = self.get(f'api.{api_name}.api_key_env')
        if env_var:
            return os.environ.get(env_var) or None
        return None

    def get_storage_path(self) -> str:
        """Get the SQLite database path, honouring the override env var"""
        env_var = self.get('storage.path_env')
        if env_var and os.environ.get(env_var):
            return os.environ[env_var]
        return self.get('storage.path', 'database/cves.db')

    def setup_logging(self) -> None:
        """Setup logging based on configuration"""
        level = getattr(logging, str(self.get('logging.level', 'INFO')).upper(), logging.INFO)
        format_str = self.get('logging.format', '%(asctime)s - %(levelname)s - %(message)s')
        log_file = self.get('logging.file')

        logging.basicConfig(
            level=level,
            format=format_str,
            filename=log_file if log_file else None,
            filemode='a' if log_file else 'w'
        )


_config: Optional[Config] = None


def get_config() -> Config:
    """Get global configuration instance"""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config(config: Optional[Config] = None) -> None:
    """Replace the global configuration instance (None reloads lazily)"""
    global _config
    _config = config
