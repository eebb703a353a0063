"""
DaoVsDao Configuration System

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (DVD_*)
    2. Runtime overrides
    3. User config file (~/.daovsdao/config.yaml)
    4. Project config file (./daovsdao.yaml or ./config/daovsdao.yaml)
    5. Default values

The economic values seed a new game. Once a game exists its parameters live
in the game state and change only through the owner-gated setters.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from daovsdao.core import SCHEMA_DIR, WAD

logger = logging.getLogger(__name__)

T = TypeVar("T")

SPOILS_POLICIES = ("source", "worth")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


def _percentage(x: Any) -> bool:
    return isinstance(x, int) and 0 <= x <= 100


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding
    and validation. Environment values are validated on every read.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            value = self._coerce(os.environ[self.env_var])
            if self.validator and not self.validator(value):
                raise ConfigValidationError(
                    f"validation failed for value {value} (from {self.env_var})"
                )
            return value

        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        self._value = value

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        try:
            if target_type == bool:
                return value.lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value)  # type: ignore
            elif target_type == list:
                return value.split(",")  # type: ignore
            return value  # type: ignore
        except ValueError as e:
            raise ConfigValidationError(f"Cannot coerce {value!r} to {target_type.__name__}") from e


@dataclass
class EconomicsConfig:
    """Slashing, fee, and accrual parameters for a new game."""
    slashing_percentage: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=20,
        env_var="DVD_SLASHING_PERCENTAGE",
        description="Share of the attacked balance slashed on a swap (0-100)",
        validator=_percentage,
    ))
    slashing_tax: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10,
        env_var="DVD_SLASHING_TAX",
        description="Share of each slash paid to the treasury (0-100)",
        validator=_percentage,
    ))
    participation_fee: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="DVD_PARTICIPATION_FEE",
        description="Native-coin fee for entering the grid (smallest units)",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    percentage_for_referrer: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10,
        env_var="DVD_PERCENTAGE_FOR_REFERRER",
        description="Share of the participation fee paid to a registered referrer (0-100)",
        validator=_percentage,
    ))
    yield_percentage: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=100,
        env_var="DVD_YIELD_PERCENTAGE",
        description="Yearly simple-interest accrual on player balances (percent)",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    initial_supply: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=WAD,
        env_var="DVD_INITIAL_SUPPLY",
        description="Game tokens minted to the owner when a game is created",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    spoils_policy: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="source",
        env_var="DVD_SPOILS_POLICY",
        description="How slash proceeds are credited to the attacker (source, worth)",
        validator=lambda x: x in SPOILS_POLICIES,
    ))


@dataclass
class CooldownConfig:
    """Cooldowns between swaps."""
    attack_cooldown_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=3600,
        env_var="DVD_ATTACK_COOLDOWN",
        description="Seconds a player waits between two swaps",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    defense_cooldown_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=3600,
        env_var="DVD_DEFENSE_COOLDOWN",
        description="Seconds a slashed player is protected from further slashes",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="DVD_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="DVD_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))
    audit_enabled: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="DVD_AUDIT_ENABLED",
        description="Record privileged calls in the hash-chained audit log",
    ))


@dataclass
class GameConfig:
    """
    Root configuration.

    Aggregates all component configurations and provides
    loading/saving functionality.
    """
    economics: EconomicsConfig = field(default_factory=EconomicsConfig)
    cooldowns: CooldownConfig = field(default_factory=CooldownConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)

    def apply(self, data: Dict[str, Any]) -> None:
        """Apply a nested dictionary of values (e.g. parsed YAML)."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], path: str) -> None:
            for key, value in values.items():
                key_path = f"{path}.{key}" if path else key
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {key_path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, key_path)
                else:
                    raise ConfigError(f"Invalid config section: {key_path}")

        apply_to_config(self, data, "")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GameConfig":
        config = cls()
        if data:
            config.apply(data)
        return config


def config_schema_path(schemas_dir: Path = SCHEMA_DIR) -> Path:
    return schemas_dir / "game-config.schema.json"


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = GameConfig()
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next access starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> GameConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file, validated against the config schema."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data:
            from daovsdao.schema import validate_against_schema

            errors = validate_against_schema(data, config_schema_path())
            if errors:
                raise ConfigValidationError(f"Invalid configuration file {path}: {errors[0]}")
            self._config.apply(data)

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        default_paths = [
            Path("daovsdao.yaml"),
            Path("config/daovsdao.yaml"),
            Path.home() / ".daovsdao" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                try:
                    self.load_from_file(path)
                except ConfigError as e:
                    logger.warning(f"Skipping default config {path}: {e}")

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("economics.slashing_percentage", 25)
        """
        parts = path.split(".")
        obj: Any = self._config

        for part in parts[:-1]:
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)

        attr = getattr(obj, parts[-1], None)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("cooldowns.attack_cooldown_seconds")
        """
        obj: Any = self._config

        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)

        if isinstance(obj, ConfigValue):
            return obj.get()
        raise ConfigError(f"Invalid config path: {path}")

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> GameConfig:
    """Get the current configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
