#!/usr/bin/env python3
"""
Configuration validation utilities for CVE Mirror
Checks required sections, value types, ranges and formats
"""
import json
import logging
from typing import Dict, Any, List

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ["api", "storage", "sync", "web", "logging"]
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigValidator:
    """Configuration validator"""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """
        Validate configuration

        Args:
            config: Configuration dictionary to validate

        Returns:
            bool: True if valid, False otherwise
        """
        self.errors.clear()
        self.warnings.clear()

        if not self._validate_required_fields(config):
            return False

        self._validate_types(config)
        self._validate_ranges(config)
        self._validate_formats(config)
        self._validate_custom_rules(config)

        return len(self.errors) == 0

    def _validate_required_fields(self, config: Dict[str, Any]) -> bool:
        """Validate required fields are present"""
        for field in REQUIRED_SECTIONS:
            if field not in config:
                self.errors.append(f"Missing required field: {field}")
                return False

        if "nvd" not in config.get("api", {}):
            self.errors.append("Missing required API field: nvd")
            return False

        if "path" not in config.get("storage", {}):
            self.errors.append("Missing required storage field: path")
            return False

        return True

    def _validate_types(self, config: Dict[str, Any]) -> None:
        """Validate data types"""
        nvd_config = config["api"]["nvd"]
        if not isinstance(nvd_config.get("timeout"), (int, float)):
            self.errors.append("API NVD timeout must be a number")
        if not isinstance(nvd_config.get("results_per_page"), int):
            self.errors.append("API NVD results_per_page must be an integer")

        sync_config = config["sync"]
        for key in ("seed_pages", "incremental_hours"):
            if not isinstance(sync_config.get(key), int):
                self.errors.append(f"Sync {key} must be an integer")
        if not isinstance(sync_config.get("schedule"), str):
            self.errors.append("Sync schedule must be a crontab string")

        if not isinstance(config["web"].get("port"), int):
            self.errors.append("Web port must be an integer")

    def _validate_ranges(self, config: Dict[str, Any]) -> None:
        """Validate value ranges"""
        nvd_config = config["api"]["nvd"]
        timeout = nvd_config.get("timeout")
        if isinstance(timeout, (int, float)) and (timeout < 1 or timeout > 300):
            self.errors.append("API NVD timeout must be between 1 and 300 seconds")

        per_page = nvd_config.get("results_per_page")
        if isinstance(per_page, int) and (per_page < 1 or per_page > 2000):
            self.errors.append("API NVD results_per_page must be between 1 and 2000")

        for key in ("seed_pages", "incremental_hours"):
            value = config["sync"].get(key)
            if isinstance(value, int) and value < 1:
                self.errors.append(f"Sync {key} must be at least 1")

        port = config["web"].get("port")
        if isinstance(port, int) and not 0 <= port <= 65535:
            self.errors.append("Web port must be between 0 and 65535")

    def _validate_formats(self, config: Dict[str, Any]) -> None:
        """Validate string formats"""
        base_url = config["api"]["nvd"].get("base_url", "")
        if not isinstance(base_url, str) or not base_url.startswith(("http://", "https://")):
            self.errors.append("API NVD base_url must be a valid HTTP/HTTPS URL")

        schedule = config["sync"].get("schedule")
        if isinstance(schedule, str) and len(schedule.split()) != 5:
            self.errors.append("Sync schedule must have five crontab fields")

        level = str(config["logging"].get("level", "")).upper()
        if level not in LOG_LEVELS:
            self.errors.append(f"Logging level must be one of {', '.join(LOG_LEVELS)}")

        log_file = config["logging"].get("file")
        if log_file and not str(log_file).endswith(".log"):
            self.warnings.append("Logging file does not have a .log extension")

    def _validate_custom_rules(self, config: Dict[str, Any]) -> None:
        """Validate custom business rules"""
        per_page = config["api"]["nvd"].get("results_per_page")
        if isinstance(per_page, int) and per_page != 100:
            self.warnings.append("results_per_page differs from the sync page size of 100")

        hours = config["sync"].get("incremental_hours")
        if isinstance(hours, int) and hours > 120 * 24:
            self.warnings.append("NVD rejects lastMod windows longer than 120 days")

    def get_errors(self) -> List[str]:
        """Get validation errors"""
        return self.errors.copy()

    def get_warnings(self) -> List[str]:
        """Get validation warnings"""
        return self.warnings.copy()

    def get_validation_report(self) -> Dict[str, Any]:
        """Get comprehensive validation report"""
        return {
            "valid": len(self.errors) == 0,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "errors": self.errors,
            "warnings": self.warnings
        }


def validate_config_file(config_path: str) -> Dict[str, Any]:
    """
    Validate a configuration file

    Args:
        config_path: Path to configuration file

    Returns:
        Validation report dictionary
    """
    from cvemirror.utils.config import Config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            json.load(f)
    except FileNotFoundError:
        return {
            "valid": False,
            "error_count": 1,
            "warning_count": 0,
            "errors": [f"Configuration file not found: {config_path}"],
            "warnings": [],
            "config_path": config_path
        }
    except json.JSONDecodeError as e:
        return {
            "valid": False,
            "error_count": 1,
            "warning_count": 0,
            "errors": [f"Invalid JSON in configuration file: {e}"],
            "warnings": [],
            "config_path": config_path
        }

    validator = ConfigValidator()
    validator.validate_config(Config(config_path).config)

    report = validator.get_validation_report()
    report["config_path"] = config_path
    return report


def validate_config(config: Dict[str, Any]) -> bool:
    """Quick validation of configuration dictionary"""
    validator = ConfigValidator()
    return validator.validate_config(config)
