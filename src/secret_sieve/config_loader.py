"""
Configuration file loader for secret-sieve.

Supports loading configuration from:
- secret-sieve.toml / .secret-sieve.toml / sieve.toml / .sieve.toml
- sieve.yml / .sieve.yml / sieve.yaml / .sieve.yaml

CLI flags override config file values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .redactor import RedactionConfig, engine_config_from_dict, parse_engines

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # type: ignore

logger = logging.getLogger(__name__)

# Config file search order (first found wins)
CONFIG_FILE_NAMES = [
    "secret-sieve.toml",
    ".secret-sieve.toml",
    "sieve.toml",
    ".sieve.toml",
    "sieve.yml",
    ".sieve.yml",
    "sieve.yaml",
    ".sieve.yaml",
]

# Top-level sections a config file may nest its settings under
_SECTION_NAMES = ("secret-sieve", "sieve")


@dataclass
class ProjectConfig:
    """
    Configuration loaded from a config file.

    All fields are optional - CLI flags will override any values set here.
    """

    engines: str | list[str] | None = None
    threshold: float | None = None
    window_size: int | None = None
    ignore_rules: set[str] | None = None
    allow_values: set[str] | None = None

    # Raw redaction settings ([redaction] section)
    redaction_config: dict[str, Any] = field(default_factory=dict)

    # Source file path (for debugging)
    _config_file: Path | None = field(default=None, repr=False)

    def get_redaction_config(self) -> RedactionConfig:
        """Get the RedactionConfig object from config data."""
        return RedactionConfig.from_dict(self.redaction_config)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (sorted keys for determinism)."""
        result: dict[str, Any] = {}

        if self.engines is not None:
            result["engines"] = self.engines
        if self.threshold is not None:
            result["threshold"] = self.threshold
        if self.window_size is not None:
            result["window_size"] = self.window_size
        if self.ignore_rules is not None:
            result["ignore_rules"] = sorted(self.ignore_rules)
        if self.allow_values is not None:
            result["allow_values"] = sorted(self.allow_values)
        if self.redaction_config:
            result["redaction"] = self.redaction_config
        if self._config_file is not None:
            result["_loaded_from"] = str(self._config_file)

        return dict(sorted(result.items()))


def find_config_file(root: Path) -> Path | None:
    """
    Find a configuration file in a directory.

    Args:
        root: Directory to search

    Returns:
        Path to the config file, or None if not found
    """
    for name in CONFIG_FILE_NAMES:
        config_path = root / name
        if config_path.exists() and config_path.is_file():
            return config_path
    return None


def _unwrap_section(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    for section in _SECTION_NAMES:
        if isinstance(data.get(section), dict):
            return data[section]
    return data


def _parse_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML config file."""
    with open(path, "rb") as f:
        return _unwrap_section(tomllib.load(f))


def _parse_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML config file."""
    with open(path, encoding="utf-8") as f:
        return _unwrap_section(yaml.safe_load(f))


def _normalize_names(value: Any) -> set[str] | None:
    """Normalize a comma-separated string or list to a set of names."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, set, tuple)):
        return None
    result = {str(v).strip() for v in value if str(v).strip()}
    return result if result else None


def load_config(root: Path, config_path: Path | None = None) -> ProjectConfig:
    """
    Load configuration from a config file.

    Unreadable or malformed files are logged and ignored; out-of-range
    values are reported later, when the engine configuration is built.

    Args:
        root: Directory searched when no explicit path is given
        config_path: Explicit path to config file (optional)

    Returns:
        ProjectConfig with loaded values (unset values remain None)
    """
    if config_path is None:
        config_path = find_config_file(root)

    if config_path is None or not config_path.exists():
        return ProjectConfig()

    suffix = config_path.suffix.lower()
    try:
        if suffix == ".toml":
            data = _parse_toml(config_path)
        elif suffix in (".yml", ".yaml"):
            data = _parse_yaml(config_path)
        else:
            logger.warning("Unsupported config file type: %s", config_path.name)
            return ProjectConfig()
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        logger.warning("Ignoring config file %s: %s", config_path, e)
        return ProjectConfig()

    config = ProjectConfig(_config_file=config_path)

    if "engines" in data:
        config.engines = data["engines"]
    if "threshold" in data:
        config.threshold = data["threshold"]
    if "window_size" in data:
        config.window_size = data["window_size"]
    config.ignore_rules = _normalize_names(data.get("ignore_rules"))
    config.allow_values = _normalize_names(data.get("allow_values") or data.get("allow"))

    redaction_data = data.get("redaction") or {}
    if isinstance(redaction_data, dict) and redaction_data:
        config.redaction_config = redaction_data

    return config


def merge_cli_with_config(
    config: ProjectConfig,
    *,
    # CLI arguments (None means not specified on CLI)
    engine: str | None = None,
    threshold: float | None = None,
    window_size: int | None = None,
    ignore_rules: list[str] | None = None,
    allow_values: list[str] | None = None,
) -> dict[str, Any]:
    """
    Merge CLI arguments with config file values.

    CLI arguments take precedence over config file values, which take
    precedence over defaults. Rule and value lists are unioned.

    Returns:
        Dictionary with merged configuration values
    """
    result: dict[str, Any] = {}

    if engine is not None:
        result["engines"] = parse_engines(engine)
    elif config.engines is not None:
        result["engines"] = parse_engines(config.engines)
    else:
        result["engines"] = None  # [redaction] engines or both backends

    if threshold is not None:
        result["threshold"] = threshold
    elif config.threshold is not None:
        result["threshold"] = config.threshold
    else:
        result["threshold"] = None  # [redaction.entropy] or EngineConfig default

    if window_size is not None:
        result["window_size"] = window_size
    elif config.window_size is not None:
        result["window_size"] = config.window_size
    else:
        result["window_size"] = None

    result["ignore_rules"] = set(config.ignore_rules or ()) | set(ignore_rules or ())
    result["allow_values"] = set(config.allow_values or ()) | set(allow_values or ())

    # Redaction config (always from config, no CLI override)
    result["redaction_config"] = config.redaction_config

    return result


def build_redaction_config(merged: dict[str, Any]) -> RedactionConfig:
    """
    Turn merged settings into a validated RedactionConfig.

    Top-level threshold and window values (from the CLI or the file) win
    over the ``[redaction.entropy]`` section.

    Raises:
        ConfigurationError: If any value is out of range
    """
    redaction = RedactionConfig.from_dict(merged.get("redaction_config") or {})
    if merged.get("engines") is not None:
        redaction.engines = merged["engines"]

    overrides = {
        key: merged[key]
        for key in ("threshold", "window_size")
        if merged.get(key) is not None
    }
    if overrides:
        redaction.entropy = engine_config_from_dict(overrides, base=redaction.entropy)
    redaction.allowlist_strings |= set(merged["allow_values"])
    return redaction
