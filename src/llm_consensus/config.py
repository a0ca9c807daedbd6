"""Configuration objects for dispatch, fusion and the gateway."""
from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from enum import Enum
from os import PathLike
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

DEFAULT_TIME_BUDGET_S = 15.0
DEFAULT_HISTORY_LIMIT = 20


class DispatchPolicy(str, Enum):
    """Dispatch policies supported by :class:`ProviderDispatcher`."""

    BROADCAST = "broadcast"
    FALLBACK = "fallback"

    @classmethod
    def coerce(cls, value: DispatchPolicy | str) -> DispatchPolicy:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ConfigError(f"unknown dispatch policy: {value!r}") from exc


@dataclass(frozen=True)
class FusionConfig:
    """Tunables of the consensus fuser."""

    similarity_threshold: float = 0.6
    candidate_field: str = "patch"
    candidate_prefix: int = 100
    success_weight: float = 0.3
    agreement_weight: float = 0.4
    self_confidence_weight: float = 0.3
    default_self_confidence: float = 0.5
    change_bonuses: tuple[tuple[int, float], ...] = ((50, 0.2), (100, 0.3))
    no_success_text: str = "no successful provider"

    def __post_init__(self) -> None:
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ConfigError("similarity_threshold must be within [0, 1]")
        if self.candidate_prefix <= 0:
            raise ConfigError("candidate_prefix must be positive")
        weights = (self.success_weight, self.agreement_weight, self.self_confidence_weight)
        if any(weight < 0 for weight in weights):
            raise ConfigError("fusion weights must be non-negative")
        if abs(sum(weights) - 1.0) > 1e-9:
            raise ConfigError("fusion weights must sum to 1.0")
        if not 0.0 <= self.default_self_confidence <= 1.0:
            raise ConfigError("default_self_confidence must be within [0, 1]")
        bonuses = tuple((int(limit), float(bonus)) for limit, bonus in self.change_bonuses)
        object.__setattr__(self, "change_bonuses", bonuses)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> FusionConfig:
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigError("'fusion' must be a mapping.")
        known = {name for name in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"unknown fusion settings: {', '.join(sorted(unknown))}")
        values = dict(data)
        if "change_bonuses" in values:
            raw = values["change_bonuses"]
            try:
                values["change_bonuses"] = tuple((entry[0], entry[1]) for entry in raw)
            except (TypeError, IndexError, KeyError) as exc:
                raise ConfigError("'change_bonuses' must be a list of [limit, bonus] pairs") from exc
        try:
            return cls(**values)
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc


@dataclass(frozen=True)
class GatewayConfig:
    default_policy: DispatchPolicy = DispatchPolicy.BROADCAST
    default_time_budget_s: float = DEFAULT_TIME_BUDGET_S
    max_concurrency: int | None = None
    history_limit: int = DEFAULT_HISTORY_LIMIT
    providers: tuple[str, ...] = ()
    metrics_path: str | None = None
    audit_path: str | None = None
    fusion: FusionConfig = field(default_factory=FusionConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "default_policy", DispatchPolicy.coerce(self.default_policy))
        if self.default_time_budget_s <= 0:
            raise ConfigError("default_time_budget_s must be positive")
        if self.max_concurrency is not None and self.max_concurrency <= 0:
            raise ConfigError("max_concurrency must be positive when provided")
        if self.history_limit <= 0:
            raise ConfigError("history_limit must be positive")
        object.__setattr__(self, "providers", tuple(self.providers))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> GatewayConfig:
        policy = data.get("policy", data.get("default_policy", DispatchPolicy.BROADCAST))
        budget = _optional_number(data, "time_budget_s", default=DEFAULT_TIME_BUDGET_S)
        providers = data.get("providers") or ()
        if isinstance(providers, str):
            providers = [item.strip() for item in providers.split(",") if item.strip()]
        if not isinstance(providers, list | tuple) or not all(
            isinstance(item, str) and item for item in providers
        ):
            raise ConfigError("'providers' must be a list of provider specs.")
        history_limit = _optional_int(data, "history_limit")
        return cls(
            default_policy=DispatchPolicy.coerce(policy),
            default_time_budget_s=float(budget),
            max_concurrency=_optional_int(data, "max_concurrency"),
            history_limit=DEFAULT_HISTORY_LIMIT if history_limit is None else history_limit,
            providers=tuple(providers),
            metrics_path=_optional_str(data, "metrics_path"),
            audit_path=_optional_str(data, "audit_path"),
            fusion=FusionConfig.from_mapping(data.get("fusion")),
        )


def _optional_int(data: Mapping[str, Any], field_name: str) -> int | None:
    if field_name not in data or data[field_name] is None:
        return None
    value = data[field_name]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{field_name}' must be an integer.")
    return value


def _optional_number(data: Mapping[str, Any], field_name: str, *, default: float) -> float:
    if field_name not in data or data[field_name] is None:
        return default
    value = data[field_name]
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ConfigError(f"'{field_name}' must be a number.")
    return float(value)


def _optional_str(data: Mapping[str, Any], field_name: str) -> str | None:
    value = data.get(field_name)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigError(f"'{field_name}' must be a non-empty string when provided.")
    return value


def _coerce_path(config: str | Path | PathLike[str]) -> Path:
    if isinstance(config, Path):
        return config
    if isinstance(config, str | PathLike):
        return Path(config)
    raise ConfigError("Config path must be a string or Path instance.")


def load_gateway_config(config: str | Path | PathLike[str]) -> GatewayConfig:
    """Load and validate a gateway configuration file."""

    path = _coerce_path(config)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc

    try:
        raw_data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML: {exc}") from exc

    if not isinstance(raw_data, MutableMapping):
        raise ConfigError("Configuration root must be a mapping.")
    return GatewayConfig.from_mapping(raw_data)


__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_TIME_BUDGET_S",
    "DispatchPolicy",
    "FusionConfig",
    "GatewayConfig",
    "load_gateway_config",
]
