"""
SOULMINT Configuration System

Configuration for the mint policy, the registry root ledger and logging,
loaded from YAML files and environment variables.

Configuration Sources (in order of precedence):
    1. Environment variables (SOULMINT_*)
    2. Runtime overrides (ConfigManager.set)
    3. Config files (./soulmint.yaml, ./config/soulmint.yaml,
       ~/.soulmint/config.yaml)
    4. Default values

The mint policy values are protocol constants of the deployed circuit and
registry: token id, date bounds, citizenship mask. Callers of the authorizer
never supply them per request.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import re
import threading
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

import yaml

from soulmint.observability import LogLevel, MintLayer, configure_logging, get_logger

T = TypeVar("T")

logger = get_logger("manager", MintLayer.CONFIG)

# Token id shared by the credential token and the proof's event id.
DEFAULT_TOKEN_ID = 111186066134341633902189494613533900917417361106374681011849132651019822199

_DATE_PATTERN = re.compile(r"^[0-9]{6}$")
_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PUBKEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_TRUTHY = frozenset({"1", "true", "yes", "on"})


class ConfigError(Exception):
    pass


class ConfigValidationError(ConfigError):
    """A value was rejected by its setting's parser or validator."""


@dataclass
class ConfigValue(Generic[T]):
    """
    One setting: a typed default, an optional ``SOULMINT_*`` override and a
    validator.

    Strings assigned to a non-string setting go through the same parser as
    environment values, so ``set("0x10")`` on an int setting stores 16.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _override: Optional[T] = field(default=None, repr=False)
    _listeners: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    @property
    def type_name(self) -> str:
        return type(self.default).__name__

    def get(self) -> T:
        raw = os.environ.get(self.env_var) if self.env_var else None
        if raw is not None:
            return self.parse(raw)
        return self.default if self._override is None else self._override

    def set(self, value: Any) -> None:
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self.parse(value)
        self.check(value)
        previous, self._override = self._override, value
        for listener in self._listeners:
            listener(previous, value)

    def check(self, value: Any) -> None:
        if self.validator is not None and not self.validator(value):
            raise ConfigValidationError(f"Invalid value {value!r}")

    def parse(self, raw: str) -> T:
        kind = type(self.default)
        if kind is bool:
            return raw.strip().lower() in _TRUTHY  # type: ignore
        if kind is int:
            try:
                return int(raw.strip(), 0)  # type: ignore
            except ValueError as e:
                raise ConfigValidationError(f"Expected an integer, got {raw!r}") from e
        if kind is list:
            return [item.strip() for item in raw.split(",") if item.strip()]  # type: ignore
        return raw  # type: ignore

    def reset(self) -> None:
        self._override = None

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """``callback(previous_override, new_value)`` after every ``set``."""
        self._listeners.append(callback)


def _is_packed_date(value: Any) -> bool:
    return isinstance(value, str) and bool(_DATE_PATTERN.match(value))


def _is_uint(bits: int) -> Callable[[Any], bool]:
    return lambda x: isinstance(x, int) and not isinstance(x, bool) and 0 <= x < (1 << bits)


@dataclass
class PolicyConfig:
    """Mint policy: the public-signal constants bound into every proof."""
    token_id: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=DEFAULT_TOKEN_ID,
        env_var="SOULMINT_TOKEN_ID",
        description="Token id, also used as the proof event id",
        validator=_is_uint(256),
    ))
    citizenship_mask: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="SOULMINT_CITIZENSHIP_MASK",
        description="Citizenship whitelist mask (0 = any citizenship)",
        validator=_is_uint(256),
    ))
    birth_date_lowerbound: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="000000",
        env_var="SOULMINT_BIRTH_DATE_LOWERBOUND",
        description="Earliest birth date YYMMDD (000000 = unbounded)",
        validator=_is_packed_date,
    ))
    birth_date_upperbound: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="000000",
        env_var="SOULMINT_BIRTH_DATE_UPPERBOUND",
        description="Latest birth date YYMMDD (000000 = unbounded)",
        validator=_is_packed_date,
    ))
    expiration_date_lowerbound: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="000000",
        env_var="SOULMINT_EXPIRATION_DATE_LOWERBOUND",
        description="Earliest document expiration YYMMDD (000000 = unbounded)",
        validator=_is_packed_date,
    ))
    expiration_date_upperbound: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="000000",
        env_var="SOULMINT_EXPIRATION_DATE_UPPERBOUND",
        description="Latest document expiration YYMMDD (000000 = unbounded)",
        validator=_is_packed_date,
    ))
    activation_timestamp: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="SOULMINT_ACTIVATION_TIMESTAMP",
        description="Activation time; 0 = the moment the authorizer is created",
        validator=_is_uint(64),
    ))
    bind_to_deployment: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="SOULMINT_BIND_TO_DEPLOYMENT",
        description="Salt the event binding with the deployment address",
    ))
    deployment_address: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="SOULMINT_DEPLOYMENT_ADDRESS",
        description="Address of this authorizer instance (required when binding)",
        validator=lambda x: x == "" or bool(_ADDRESS_PATTERN.match(x)),
    ))


@dataclass
class RegistryConfig:
    """Configuration for the registry root ledger."""
    root_validity_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=3600,
        env_var="SOULMINT_ROOT_VALIDITY_SECONDS",
        description="How long a superseded root stays valid",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    trusted_attestor_keys: ConfigValue[list] = field(default_factory=lambda: ConfigValue(
        default=[],
        env_var="SOULMINT_TRUSTED_ATTESTOR_KEYS",
        description="Hex Ed25519 public keys of trusted root replicators",
        validator=lambda keys: all(
            isinstance(k, str) and _PUBKEY_PATTERN.match(k) for k in keys
        ),
    ))
    attestation_threshold: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1,
        env_var="SOULMINT_ATTESTATION_THRESHOLD",
        description="Distinct replicator signatures required per transition",
        validator=lambda x: isinstance(x, int) and x >= 1,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="SOULMINT_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))


# =============================================================================
# CONFIG TREE
# =============================================================================

def iter_settings(section: Any, prefix: str = "") -> Iterator[Tuple[str, ConfigValue]]:
    """Yield ``(dotted_path, setting)`` for every setting below ``section``."""
    for f in fields(section):
        child = getattr(section, f.name)
        path = f"{prefix}.{f.name}" if prefix else f.name
        if isinstance(child, ConfigValue):
            yield path, child
        elif is_dataclass(child):
            yield from iter_settings(child, path)


def _nest(items: Iterator[Tuple[str, Any]]) -> Dict[str, Any]:
    tree: Dict[str, Any] = {}
    for path, value in items:
        *sections, name = path.split(".")
        node = tree
        for section in sections:
            node = node.setdefault(section, {})
        node[name] = value
    return tree


@dataclass
class SoulmintConfig:
    """Root of the configuration tree: one dataclass per section."""
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        return _nest((path, setting.get()) for path, setting in iter_settings(self))

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


class ConfigManager:
    """
    Process-wide configuration holder.

    A thread-safe singleton: every ``ConfigManager()`` returns the same
    instance until ``reset()`` drops it.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    DEFAULT_PATHS = (
        Path("soulmint.yaml"),
        Path("config/soulmint.yaml"),
        Path.home() / ".soulmint" / "config.yaml",
    )

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._setup()
                cls._instance = instance
            return cls._instance

    def _setup(self) -> None:
        self._config = SoulmintConfig()
        self.loaded_from: List[Path] = []
        self._config.observability.log_level.on_change(
            lambda _previous, level: configure_logging(LogLevel(level))
        )

    @classmethod
    def reset(cls) -> None:
        """Forget the singleton; the next ``ConfigManager()`` starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> SoulmintConfig:
        return self._config

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Apply a YAML file on top of the current values."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ConfigError(f"Configuration file not found: {path}") from None
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")

        self._apply(self._config, data, "")
        self.loaded_from.append(path)
        logger.info("Configuration loaded", operation="load", path=str(path))

    def load_defaults(self) -> None:
        for path in self.DEFAULT_PATHS:
            if path.is_file():
                self.load_from_file(path)

    def _apply(self, section: Any, values: Dict[str, Any], prefix: str) -> None:
        known = {f.name for f in fields(section)}
        for key, value in values.items():
            path = f"{prefix}.{key}" if prefix else key
            if key not in known:
                raise ConfigError(f"Unknown config key: {path}")
            target = getattr(section, key)
            if isinstance(target, ConfigValue):
                target.set(value)
            elif isinstance(value, dict):
                self._apply(target, value, path)
            else:
                raise ConfigError(f"Expected a mapping for section: {path}")

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> Any:
        node: Any = self._config
        for part in path.split("."):
            if isinstance(node, ConfigValue) or part not in {f.name for f in fields(node)}:
                raise ConfigError(f"Invalid config path: {path}")
            node = getattr(node, part)
        return node

    def get(self, path: str) -> Any:
        """
        Value at a dotted path; a section path returns its values as a dict.

        Example: manager.get("policy.token_id")
        """
        node = self._resolve(path)
        if isinstance(node, ConfigValue):
            return node.get()
        return _nest((p, s.get()) for p, s in iter_settings(node))

    def set(self, path: str, value: Any) -> None:
        """Example: manager.set("registry.root_validity_seconds", 600)"""
        node = self._resolve(path)
        if not isinstance(node, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        node.set(value)

    def validate(self) -> List[str]:
        """
        Check every effective value (environment overrides included) and the
        cross-field rules. Returns one message per problem.
        """
        errors: List[str] = []
        for path, setting in iter_settings(self._config):
            try:
                setting.check(setting.get())
            except ConfigError as e:
                errors.append(f"{path}: {e}")
        if errors:
            return errors

        policy = self._config.policy
        if policy.bind_to_deployment.get() and not policy.deployment_address.get():
            errors.append("policy.deployment_address: required when bind_to_deployment is set")

        registry = self._config.registry
        keys = registry.trusted_attestor_keys.get()
        if keys and registry.attestation_threshold.get() > len(keys):
            errors.append(
                "registry.attestation_threshold: exceeds number of trusted_attestor_keys"
            )
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Describe every setting: type, default, env var, description."""
        def describe(setting: ConfigValue) -> Dict[str, Any]:
            entry = {
                "type": setting.type_name,
                "default": str(setting.default),
                "description": setting.description,
            }
            if setting.env_var:
                entry["env_var"] = setting.env_var
            return entry

        return {"properties": _nest(
            (path, describe(setting)) for path, setting in iter_settings(self._config)
        )}


def get_config() -> SoulmintConfig:
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()
