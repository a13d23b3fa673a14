"""Configuration manager for localgoose.

Configuration comes from JSON files, a provided dict, and environment
variables, exposed through one interface used by Connection and Model.

Configuration layout:
- localgoose: core settings
  - db_path: directory holding one JSON file per collection
  - json_indent: indentation used when writing collection files
  - serialize_writes: hold a per-collection lock around read-modify-write cycles
  - pluralize_collections: derive collection names from model names
  - strict_query: raise on unknown query operators instead of not matching

Environment variables follow the naming convention:
LOCALGOOSE__<section>__<key> for nested values
Example: LOCALGOOSE__LOCALGOOSE__DB_PATH="./data"
"""

import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

from localgoose.core import utils

logger = logging.getLogger(__name__)


class ConfigManager:
    """Configuration manager for Connection instances.

    Each Connection has its own ConfigManager to keep configuration isolated.
    """

    ENV_PREFIX = "LOCALGOOSE"
    ENV_SEPARATOR = "__"
    SECTIONS = ("localgoose",)

    def __init__(self, config_path: str | None = None):
        """Initialize the configuration manager.

        Args:
            config_path: Path to JSON configuration file. If None, only
                        defaults, provided dicts and environment variables are used.
        """
        self._config_path = config_path
        self._config = self.default_config()
        self._loaded = False
        logger.debug("ConfigManager instance created with config_path=%s", config_path)

    @staticmethod
    def default_config() -> dict[str, Any]:
        """Return a new default config dict each time."""
        return {
            "localgoose": {
                "db_path": utils.get_default_db_path(),
                "json_indent": 2,
                "serialize_writes": True,
                "pluralize_collections": False,
                "strict_query": False,
            }
        }

    def load(self, config: dict[str, Any] | None = None) -> None:
        """Load configuration from JSON file, environment variables, or provided config.

        Args:
            config: Optional config dict merged over the JSON file.

        Priority (highest to lowest):
        1. Environment variables
        2. Provided config (if any)
        3. JSON file
        4. Default values
        """
        if self._loaded:
            logger.debug("Configuration already loaded, skipping reload")
            return

        self._config = self.default_config()

        if self._config_path:
            self._load_from_json()

        if config is not None:
            self._load_from_config_object(config)

        self._load_from_env()

        self._loaded = True
        logger.debug(
            "Configuration loaded: localgoose keys=%s",
            list(self._config.get("localgoose", {}).keys()),
        )

    def _load_from_json(self) -> None:
        """Load configuration from JSON file."""
        try:
            config_file = Path(self._config_path)
            if not config_file.exists():
                logger.warning("Config file not found: %s", self._config_path)
                return

            with open(config_file, encoding="utf-8") as f:
                json_config = json.load(f)

            self._merge_sections(json_config, source="JSON")
            logger.info("Loaded configuration from JSON: %s", self._config_path)

        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in config file %s: %s", self._config_path, e)
            raise ValueError(f"Invalid JSON configuration file: {e}") from e

    def _load_from_config_object(self, config: dict[str, Any]) -> None:
        """Validate and merge a config dict into self._config, like for JSON."""
        self._merge_sections(config, source="dict")

    def _merge_sections(self, config: Any, *, source: str) -> None:
        if not isinstance(config, dict):
            raise ValueError(f"Configuration must be a {source} object")

        for section in self.SECTIONS:
            if section not in config:
                continue
            if not isinstance(config[section], dict):
                raise ValueError(f"'{section}' section must be an object")
            self._config[section].update(deepcopy(config[section]))

    def _load_from_env(self) -> None:
        """Load configuration from environment variables.

        Environment variables follow the pattern:
        LOCALGOOSE__<SECTION>__<KEY>__<SUBKEY>...

        Examples:
        - LOCALGOOSE__LOCALGOOSE__DB_PATH=./data
        - LOCALGOOSE__LOCALGOOSE__SERIALIZE_WRITES=false
        """
        prefix = f"{self.ENV_PREFIX}{self.ENV_SEPARATOR}"

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(prefix):
                continue

            key_path = env_key[len(prefix) :].split(self.ENV_SEPARATOR)

            if len(key_path) < 2:
                logger.warning("Invalid env var format (too short): %s", env_key)
                continue

            section = key_path[0].lower()
            if section not in self.SECTIONS:
                logger.warning("Invalid section in env var %s: %s", env_key, section)
                continue

            parsed_value = self._parse_env_value(env_value)
            self._set_nested_value(section, key_path[1:], parsed_value)
            logger.debug("Set from env: %s = %s", env_key, parsed_value)

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable value with type inference.

        Attempts to parse as JSON first, falls back to string.
        """
        try:
            return json.loads(value)
        except (json.JSONDecodeError, ValueError):
            return value

    def _set_nested_value(self, section: str, path: list[str], value: Any) -> None:
        """Set a value in nested configuration structure.

        Args:
            section: Top-level section
            path: List of keys representing the path to the value
            value: Value to set
        """
        target = self._config[section]
        for key in path[:-1]:
            key_lower = key.lower()
            if not isinstance(target.get(key_lower), dict):
                target[key_lower] = {}
            target = target[key_lower]
        target[path[-1].lower()] = value

    def get(self, key: str | None = None, default: Any = None) -> Any:
        """Get core configuration.

        Args:
            key: Specific configuration key. If None, returns the entire section.
            default: Default value if key not found.

        Returns:
            Configuration value or default.
        """
        if not self._loaded:
            self.load()

        if key is None:
            return deepcopy(self._config.get("localgoose", {}))

        return self._config.get("localgoose", {}).get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set core configuration (runtime only, not persisted).

        Args:
            key: Configuration key
            value: Configuration value
        """
        if not self._loaded:
            self.load()

        self._config["localgoose"][key] = value
        logger.debug("Set localgoose config: %s = %s", key, value)

    def get_all_config(self) -> dict[str, Any]:
        """Get complete configuration snapshot.

        Returns:
            Deep copy of entire configuration.
        """
        if not self._loaded:
            self.load()

        return deepcopy(self._config)

    def reload(self) -> None:
        """Reload configuration from sources."""
        self._loaded = False
        self.load()
        logger.info("Configuration reloaded")

    @property
    def config_path(self) -> str | None:
        """Get the configuration file path."""
        return self._config_path

    @property
    def is_loaded(self) -> bool:
        """Check if configuration has been loaded."""
        return self._loaded
