"""
Configuration management for the festival medal board.
Supports both JSON file configuration and environment variable overrides.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict

from .logger import get_logger

log = get_logger("config")


class BoardConfig:
    """Configuration management for the medal board."""

    DEFAULT_CONFIG = {
        "festival_name": "Festival Medal Board",
        "storage": {
            "backend": "memory",  # memory or sqlite
            "db_path": "medalboard.db",
        },
        "scoring": {
            "gold_points": 10,
            "silver_points": 7,
            "bronze_points": 5,
            "non_winner_points": 1,
            "no_entry_points": 0,
        },
        "admin": {
            "username": "admin",
            "password": "change-me",
        },
        "session": {
            "cookie_name": "medalboard_session",
            "ttl_seconds": 86400,
        },
        "seed": {
            "default_categories": ["Cultural", "Literary", "Performing Arts", "Visual Arts"],
        },
        "polling": {
            "teams_seconds": 5,
            "events_seconds": 5,
            "scoreboard_seconds": 60,
        },
        "logging": {
            "level": "INFO",
            "file": None,
        },
    }

    STORAGE_BACKENDS = ("memory", "sqlite")
    LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

    def __init__(
        self,
        config_path: str = "medalboard.json",
        create_missing: bool = True,
    ) -> None:
        """Initialize configuration from file, environment variables, or defaults."""
        self.config_path = Path(config_path)
        self.create_missing = create_missing
        self.config = self._load_config()
        self._apply_env_overrides()
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from JSON file or create default.

        @return: Dictionary containing the loaded configuration
        """
        config = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded_config = json.load(f)

                # Merge with defaults to ensure all keys exist
                self._deep_merge(config, loaded_config)

            except (json.JSONDecodeError, IOError) as e:
                log.error("Error loading config from %s: %s", self.config_path, e)
                log.warning("Using default configuration")
        elif self.create_missing:
            self._create_default_config()

        return config

    def _deep_merge(
        self,
        base_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
    ) -> None:
        """
        Recursively merge dictionaries.

        @param base_dict: Base dictionary to merge into
        @param update_dict: Dictionary with updates to merge
        """
        for key, value in update_dict.items():
            if (
                key in base_dict
                and isinstance(base_dict[key], dict)
                and isinstance(value, dict)
            ):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = value

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        Environment variables follow the pattern: SECTION_KEY (e.g., GOLD_POINTS, DB_PATH)
        """
        env_mappings = {
            "FESTIVAL_NAME": ("festival_name",),

            "STORAGE_BACKEND": ("storage", "backend"),
            "DB_PATH": ("storage", "db_path"),

            "GOLD_POINTS": ("scoring", "gold_points"),
            "SILVER_POINTS": ("scoring", "silver_points"),
            "BRONZE_POINTS": ("scoring", "bronze_points"),
            "NON_WINNER_POINTS": ("scoring", "non_winner_points"),
            "NO_ENTRY_POINTS": ("scoring", "no_entry_points"),

            "ADMIN_USERNAME": ("admin", "username"),
            "ADMIN_PASSWORD": ("admin", "password"),

            "SESSION_TTL": ("session", "ttl_seconds"),

            "LOG_LEVEL": ("logging", "level"),
            "LOG_FILE": ("logging", "file"),
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                converted_value = self._convert_env_value(env_value)
                self._set_nested_config(config_path, converted_value)

    def _convert_env_value(self, value: str) -> Any:
        """
        Convert environment variable string to appropriate type.

        @param value: String value from environment variable
        @return: Converted value (bool, int, or string)
        """
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    def _set_nested_config(self, path: tuple, value: Any) -> None:
        """
        Set a nested configuration value using a path tuple.

        @param path: Tuple representing the nested path (e.g., ("scoring", "gold_points"))
        @param value: Value to set
        """
        current = self.config
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _create_default_config(self) -> None:
        """
        Create a default configuration file.

        Writes the default configuration to the configured file path.
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            log.info("Created default configuration file: %s", self.config_path)
        except IOError as e:
            log.warning("Could not create config file %s: %s", self.config_path, e)

    def _validate_config(self) -> None:
        """
        Validate configuration values.

        Checks configuration values for validity and sets defaults for invalid values.
        """
        storage = self.config["storage"]
        if storage["backend"] not in self.STORAGE_BACKENDS:
            log.warning("Invalid storage backend %r, using 'memory'", storage["backend"])
            storage["backend"] = "memory"

        for key, default in self.DEFAULT_CONFIG["scoring"].items():
            value = self.config["scoring"].get(key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                log.warning("Invalid %s %r, using %d", key, value, default)
                self.config["scoring"][key] = default

        ttl = self.config["session"]["ttl_seconds"]
        if not isinstance(ttl, int) or isinstance(ttl, bool) or ttl <= 0:
            log.warning("Invalid session ttl_seconds, using 86400")
            self.config["session"]["ttl_seconds"] = 86400

        level = str(self.config["logging"]["level"]).upper()
        if level not in self.LOG_LEVELS:
            log.warning("Invalid log level %r, using INFO", level)
            level = "INFO"
        self.config["logging"]["level"] = level

    def get(
        self,
        *keys: str,
    ) -> Any:
        """
        Get nested configuration value.

        @param keys: Variable arguments representing nested keys to traverse
        @return: Configuration value at the specified path, None if not found
        """
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    def default_points(self) -> Dict[str, int]:
        """
        Point values used when the score settings row is first created.

        @return: Mapping of settings field name to points
        """
        return dict(self.config["scoring"])

    def public_settings(self) -> Dict[str, Any]:
        """
        Settings safe to hand to browser clients.

        @return: Festival name and polling intervals
        """
        return {
            "festivalName": self.get("festival_name"),
            "polling": {
                "teamsSeconds": self.get("polling", "teams_seconds"),
                "eventsSeconds": self.get("polling", "events_seconds"),
                "scoreboardSeconds": self.get("polling", "scoreboard_seconds"),
            },
        }

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        @return: True if saved successfully, False on error
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.config, f, indent=2)
            return True
        except IOError as e:
            log.warning("Could not save config file %s: %s", self.config_path, e)
            return False
