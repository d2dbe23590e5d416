from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


RiskLevel = Literal["low", "medium", "high"]


class _WireModel(BaseModel):
    """Snake_case in Python, the collector's camelCase on the wire; both accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class TouchSupport(_WireModel):
    model_config = ConfigDict(extra="ignore")

    max_touch_points: int = 0
    touch_event: bool = False
    touch_start: bool = False


class FingerprintComponents(_WireModel):
    """Browser/hardware signals as reported by the collector.

    Missing signals take the same defaults the collector applies (empty string,
    0, False, []). `device_memory` and `cpu_class` stay None when absent.
    """

    model_config = ConfigDict(extra="ignore")

    user_agent: str = ""
    language: str = ""
    color_depth: int = 0
    device_memory: Optional[float] = None
    pixel_ratio: float = 1
    hardware_concurrency: int = 0
    screen_resolution: str = ""
    available_screen_resolution: str = ""
    timezone_offset: int = 0
    timezone: str = ""
    session_storage: bool = False
    local_storage: bool = False
    indexed_db: bool = Field(default=False, alias="indexedDB")
    add_behavior: bool = False
    open_database: bool = False
    cpu_class: Optional[str] = None
    platform: str = ""
    plugins: tuple[str, ...] = ()
    canvas: str = ""
    webgl: str = ""
    webgl_vendor_and_renderer: str = ""
    ad_block: bool = False
    has_lied_languages: bool = False
    has_lied_resolution: bool = False
    has_lied_os: bool = False
    has_lied_browser: bool = False
    touch_support: TouchSupport = Field(default_factory=TouchSupport)
    fonts: tuple[str, ...] = ()
    audio: str = ""
    enumerate_devices: tuple[str, ...] = ()


class DeviceFingerprint(_WireModel):
    model_config = ConfigDict(extra="forbid")

    visitor_id: str = Field(..., min_length=1, description="Stable per device/browser identifier")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Collector certainty in [0, 1]")
    components: FingerprintComponents = Field(default_factory=FingerprintComponents)
    timestamp: int = Field(..., ge=0, description="Capture time, epoch milliseconds")

    @field_validator("visitor_id")
    @classmethod
    def _strip_and_require_non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be non-empty")
        return value

    def restamped(self, timestamp_ms: int) -> "DeviceFingerprint":
        return self.model_copy(update={"timestamp": int(timestamp_ms)})


class BehaviorAnalysis(_WireModel):
    typing_pattern: float = Field(default=0.0, ge=0.0, le=100.0)
    mouse_movement: float = Field(default=0.0, ge=0.0, le=100.0)
    click_pattern: float = Field(default=0.0, ge=0.0, le=100.0)


class FraudAnalysis(_WireModel):
    model_config = ConfigDict(extra="forbid")

    risk_score: int = Field(..., ge=0)
    risk_level: RiskLevel
    factors: tuple[str, ...] = ()
    device_trust: int = Field(..., ge=0, le=100)
    location_consistency: bool = True
    behavior_analysis: BehaviorAnalysis = Field(default_factory=BehaviorAnalysis)


class UserSession(_WireModel):
    """The persisted "current user" record."""

    model_config = ConfigDict(extra="ignore", frozen=False)

    id: str = Field(..., min_length=1)
    name: str
    email: str = Field(..., min_length=1)
    avatar: Optional[str] = None
    joined_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    device_fingerprint: Optional[DeviceFingerprint] = None
    fraud_analysis: Optional[FraudAnalysis] = None
    trusted_devices: list[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be non-empty")
        return value

    @field_validator("joined_at")
    @classmethod
    def _joined_at_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def parse_fingerprint(payload: dict) -> DeviceFingerprint:
    return DeviceFingerprint.model_validate(payload)
