"""Behavior signal providers.

Typing, mouse and click telemetry plus location consistency are not collected
yet. The scoring engine asks a provider for them so tests and callers can
inject fixed values instead of random placeholders.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from common.config import BehaviorConfig
from common.models import BehaviorAnalysis, DeviceFingerprint


@runtime_checkable
class BehaviorSignalProvider(Protocol):
    def behavior(self, fingerprint: DeviceFingerprint) -> BehaviorAnalysis: ...

    def location_consistency(self, fingerprint: DeviceFingerprint) -> bool: ...


@dataclass(frozen=True)
class StaticBehaviorProvider:
    typing_pattern: float = 0.0
    mouse_movement: float = 0.0
    click_pattern: float = 0.0
    location_consistent: bool = True

    @classmethod
    def from_config(cls, cfg: BehaviorConfig) -> "StaticBehaviorProvider":
        return cls(
            typing_pattern=float(cfg.typing_pattern),
            mouse_movement=float(cfg.mouse_movement),
            click_pattern=float(cfg.click_pattern),
            location_consistent=bool(cfg.location_consistency),
        )

    def behavior(self, fingerprint: DeviceFingerprint) -> BehaviorAnalysis:
        return BehaviorAnalysis(
            typing_pattern=self.typing_pattern,
            mouse_movement=self.mouse_movement,
            click_pattern=self.click_pattern,
        )

    def location_consistency(self, fingerprint: DeviceFingerprint) -> bool:
        return self.location_consistent
