"""
Settings loader for settings.yaml

Usage:
    from callflow.settings import settings

    max_attempts = settings.dialog.default_max_attempts
    pattern = settings.get_nested("conditions.mobile_pattern")
"""

import logging
import yaml
from pathlib import Path
from typing import List, Any

logger = logging.getLogger(__name__)


# Path to the settings file
SETTINGS_FILE = Path(__file__).parent / "settings.yaml"

# Defaults used when a key is missing from the YAML file
DEFAULTS = {
    "logging": {
        "level": "INFO",
        "log_state": False,
    },
    "dialog": {
        "default_max_attempts": 3,
        "no_input_marker": "Timeout",
        "fallback_intent": "FallbackIntent",
        "confirm_key": "1",
    },
    "nlu": {
        "yes_no_bot": "yesno",
        "confirm_intent": "Yes",
        "default_auto_confirm_confidence": 1.0,
    },
    "conditions": {
        "mobile_pattern": r"^\+614\d{8}$",
    },
    "rules": {
        "production_stage": "prod",
        "max_inference_steps": 50,
    },
    "store": {
        "ttl_seconds": 4 * 60 * 60,
        "db_path": "data/call_state.db",
    },
}


class DotDict(dict):
    """Dict with attribute access: d.key instead of d['key']"""

    def __getattr__(self, key: str) -> Any:
        try:
            value = self[key]
            if isinstance(value, dict):
                return DotDict(value)
            return value
        except KeyError:
            raise AttributeError(f"Setting '{key}' not found")

    def __setattr__(self, key: str, value: Any) -> None:
        self[key] = value

    def get_nested(self, path: str, default: Any = None) -> Any:
        """Get a value by path: 'dialog.default_max_attempts'"""
        keys = path.split('.')
        value = self
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts (override wins)"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(filepath: Path = None) -> DotDict:
    """
    Load settings from a YAML file.

    Priority:
    1. Values from the YAML file
    2. DEFAULTS

    Args:
        filepath: Path to the settings file (settings.yaml by default)

    Returns:
        DotDict with settings
    """
    filepath = Path(filepath) if filepath else SETTINGS_FILE

    config = _deep_merge({}, DEFAULTS)

    if filepath.exists():
        with open(filepath, "r", encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        config = _deep_merge(config, yaml_config)
    else:
        logger.warning("Settings file not found: %s, using defaults", filepath)

    return DotDict(config)


def validate_settings(settings: DotDict) -> List[str]:
    """
    Validate settings.

    Returns:
        List of errors (empty if everything is OK)
    """
    errors = []

    if int(settings.dialog.default_max_attempts) < 1:
        errors.append("dialog.default_max_attempts must be >= 1")
    if not settings.dialog.no_input_marker:
        errors.append("dialog.no_input_marker is not set")
    if not settings.dialog.fallback_intent:
        errors.append("dialog.fallback_intent is not set")
    if not str(settings.dialog.confirm_key).strip():
        errors.append("dialog.confirm_key is not set")

    if not settings.nlu.yes_no_bot:
        errors.append("nlu.yes_no_bot is not set")
    confidence = float(settings.nlu.default_auto_confirm_confidence)
    if not (0 <= confidence <= 1):
        errors.append("nlu.default_auto_confirm_confidence must be between 0 and 1")

    if not settings.conditions.mobile_pattern:
        errors.append("conditions.mobile_pattern is not set")

    if int(settings.rules.max_inference_steps) < 1:
        errors.append("rules.max_inference_steps must be >= 1")

    if int(settings.store.ttl_seconds) <= 0:
        errors.append("store.ttl_seconds must be > 0")

    return errors


# Lazily loaded global settings
_settings = None


def get_settings() -> DotDict:
    """Get global settings (loaded once, read-only after that)"""
    global _settings
    if _settings is None:
        _settings = load_settings()
        errors = validate_settings(_settings)
        for err in errors:
            logger.error("Invalid setting: %s", err)
    return _settings


def reload_settings() -> DotDict:
    """Reload settings from file"""
    global _settings
    _settings = None
    return get_settings()


# For convenient import: from callflow.settings import settings
settings = get_settings()
