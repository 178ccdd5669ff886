"""Configuration Manager.

Section-based access to config.json, backed by JsonFileManager (locked reads,
mtime auto-reload), plus schema validation.

Usage:
    from core.config_manager import ConfigManager

    config = ConfigManager()              # ~/.config/interpreter-wellness/config.json
    url = config.get("remote", "url")
    interval = config.get("sync", "interval_seconds", default=300)

    errors = config.validate()
    if errors:
        raise ConfigValidationError(errors)
"""

import logging
from pathlib import Path
from typing import Any

from core.errors import ConfigValidationError
from core.json_file_manager import JsonFileManager
from core.paths import CONFIG_FILE, LOCAL_CACHE_FILE, SESSION_FILE, SYNC_STATE_FILE

logger = logging.getLogger(__name__)

_NUMBER = (int, float)

# Format: {section: {key: (type, required, default)}}
CONFIG_SCHEMA: dict[str, dict[str, tuple[Any, bool, Any]]] = {
    "remote": {
        "url": (str, True, None),
        "anon_key": (str, True, None),
        "timeout_seconds": (_NUMBER, False, 30),
    },
    "sync": {
        "interval_seconds": (_NUMBER, False, 300),
        "task_timeout_seconds": (_NUMBER, False, 60),
        "unload_grace_seconds": (_NUMBER, False, 5),
        "state_write_seconds": (_NUMBER, False, 30),
        "domains_file": (str, False, None),
        "state_file": (str, False, str(SYNC_STATE_FILE)),
    },
    "cache": {
        "path": (str, False, str(LOCAL_CACHE_FILE)),
    },
    "session": {
        "path": (str, False, str(SESSION_FILE)),
        "poll_seconds": (_NUMBER, False, 5),
    },
}

REQUIRED_SECTIONS = ["remote"]

# Keys that must be strictly positive when present
_POSITIVE_KEYS = {
    ("sync", "interval_seconds"),
    ("sync", "task_timeout_seconds"),
    ("sync", "state_write_seconds"),
    ("session", "poll_seconds"),
}


def _type_name(expected: Any) -> str:
    if isinstance(expected, tuple):
        return "number"
    return expected.__name__


def validate_config(config: dict[str, Any]) -> list[str]:
    """Validate config against CONFIG_SCHEMA.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors: list[str] = []

    for section in REQUIRED_SECTIONS:
        if section not in config:
            errors.append(f"Missing required section: {section}")

    for section, schema in CONFIG_SCHEMA.items():
        if section not in config:
            continue

        section_data = config[section]
        if not isinstance(section_data, dict):
            errors.append(f"Section '{section}' must be a dict, got {type(section_data).__name__}")
            continue

        for key, (expected_type, required, _default) in schema.items():
            if key not in section_data or section_data[key] is None:
                if required:
                    errors.append(f"Missing required key: {section}.{key}")
                continue

            value = section_data[key]
            # bool is an int subclass; never a valid number here
            if isinstance(value, bool) or not isinstance(value, expected_type):
                errors.append(
                    f"Invalid type for {section}.{key}: expected {_type_name(expected_type)}, "
                    f"got {type(value).__name__}"
                )
                continue

            if (section, key) in _POSITIVE_KEYS and value <= 0:
                errors.append(f"{section}.{key} must be positive, got {value}")

    return errors


def get_config_defaults() -> dict[str, Any]:
    """Default values for every optional key that has one."""
    defaults: dict[str, Any] = {}

    for section, schema in CONFIG_SCHEMA.items():
        section_defaults = {key: default for key, (_, _, default) in schema.items() if default is not None}
        if section_defaults:
            defaults[section] = section_defaults

    return defaults


class ConfigManager(JsonFileManager):
    """config.json with schema defaults and validation.

    Missing optional keys fall back to CONFIG_SCHEMA defaults on read, so a
    config file only needs the remote section.
    """

    _file_label = "config.json"

    def __init__(self, file_path: Path | None = None):
        super().__init__(file_path or CONFIG_FILE, default_data=get_config_defaults())

    def get(self, section: str, key: str | None = None, default: Any = None) -> Any:
        section_data = super().get(section)
        if key is None:
            return default if section_data is None else section_data

        # An explicit null is kept (e.g. task_timeout_seconds: null disables timeouts)
        if isinstance(section_data, dict) and key in section_data:
            return section_data[key]

        if default is None:
            spec = CONFIG_SCHEMA.get(section, {}).get(key)
            if spec is not None:
                return spec[2]

        return default

    def validate(self) -> list[str]:
        """Validate the current document against the schema."""
        return validate_config(self.get_all())

    def require_valid(self) -> None:
        """Raise ConfigValidationError if the document is invalid."""
        errors = self.validate()
        if errors:
            logger.error(f"Config validation failed for {self.file_path}: {'; '.join(errors)}")
            raise ConfigValidationError(errors)
