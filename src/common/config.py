"""
FlowAuth - Configuration
Centralized configuration for the risk engine, fingerprint history and stores.

Values come from a YAML file (optional) layered over environment variables
and defaults. The defaults reproduce the reference scoring table exactly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal, get_args, get_origin, get_type_hints

import yaml


StoreBackend = Literal["memory", "file", "s3"]
HistoryScope = Literal["global", "identity"]


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip() or default


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config at {p} must be a mapping")
    return data


@dataclass
class RiskConfig:
    """Rule weights and thresholds (see risk.risk_rules.DEFAULT_RULE_CONFIG)."""
    weight_lied_languages: int = 15
    weight_lied_resolution: int = 10
    weight_lied_os_browser: int = 20
    weight_ad_block: int = 5
    weight_high_core_count: int = 5
    weight_high_device_memory: int = 5
    weight_low_confidence: int = 25
    weight_fingerprint_churn: int = 30

    max_hardware_concurrency: int = 16
    max_device_memory_gb: float = 32
    min_confidence: float = 0.5
    churn_window_hours: float = 24
    churn_max_recent: int = 10

    medium_risk_score: int = 25
    high_risk_score: int = 50

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class HistoryConfig:
    max_entries: int = 50
    scope: HistoryScope = "global"


@dataclass
class StoreConfig:
    backend: StoreBackend = field(
        default_factory=lambda: _env("FLOWAUTH_STORE_BACKEND", "file")  # type: ignore[return-value]
    )
    path: str = field(default_factory=lambda: _env("FLOWAUTH_STORE_PATH", ".flowauth"))
    bucket: str = field(default_factory=lambda: _env("FLOWAUTH_S3_BUCKET", ""))
    prefix: str = "flowauth/"
    region: str = field(default_factory=lambda: _env("AWS_REGION", "us-east-1"))
    profile: str | None = None


@dataclass
class BehaviorConfig:
    """Fixed behavior signals until real telemetry exists."""
    typing_pattern: float = 0.0
    mouse_movement: float = 0.0
    click_pattern: float = 0.0
    location_consistency: bool = True


@dataclass
class AppConfig:
    """Top-level config aggregator; pass one instance throughout the app."""
    risk: RiskConfig = field(default_factory=RiskConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    behavior: BehaviorConfig = field(default_factory=BehaviorConfig)


def _coerce(expected: Any, value: Any, *, where: str) -> Any:
    args = get_args(expected)
    if get_origin(expected) is Literal:
        expected = str
    elif args:
        if value is None and type(None) in args:
            return None
        expected = next(a for a in args if a is not type(None))

    if expected is bool:
        if isinstance(value, bool):
            return value
    elif expected in (int, float):
        if isinstance(value, bool):
            raise ValueError(f"Config key {where} must be a number, got {value!r}")
        try:
            number = expected(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Config key {where} must be a number, got {value!r}") from exc
        if expected is int and isinstance(value, float) and not value.is_integer():
            raise ValueError(f"Config key {where} must be a whole number, got {value!r}")
        return number
    elif isinstance(value, expected):
        return value
    raise ValueError(f"Config key {where} must be {expected.__name__}, got {value!r}")


def _apply_section(target: Any, section: Any, *, name: str) -> None:
    if section is None:
        return
    if not isinstance(section, dict):
        raise ValueError(f"Config section {name!r} must be a mapping")

    hints = get_type_hints(type(target))
    known = {f.name for f in fields(target)}
    for key, value in section.items():
        if key not in known:
            raise ValueError(f"Unknown config key {name}.{key}")
        setattr(target, key, _coerce(hints[key], value, where=f"{name}.{key}"))


def load_config(path: str | Path | None = None) -> AppConfig:
    """Build an AppConfig from defaults/env, overlaid with the YAML file if given."""

    cfg = AppConfig()
    if path is None:
        return cfg

    data = load_yaml(path)
    for section_name in ("risk", "history", "store", "behavior"):
        _apply_section(getattr(cfg, section_name), data.get(section_name), name=section_name)

    if cfg.store.backend not in ("memory", "file", "s3"):
        raise ValueError(f"Unsupported store.backend {cfg.store.backend!r}")
    if cfg.history.scope not in ("global", "identity"):
        raise ValueError(f"Unsupported history.scope {cfg.history.scope!r}")
    if int(cfg.history.max_entries) <= 0:
        raise ValueError("history.max_entries must be positive")
    return cfg


__all__ = [
    "AppConfig",
    "BehaviorConfig",
    "HistoryConfig",
    "RiskConfig",
    "StoreConfig",
    "load_config",
    "load_yaml",
]
