from __future__ import annotations

import os

# Keep test runs from writing logs/flowauth.log.
os.environ.setdefault("FLOWAUTH_LOG_FILE", "0")

from typing import Any, Callable  # noqa: E402

import pytest  # noqa: E402

from common.models import DeviceFingerprint  # noqa: E402


NOW_MS = 1_760_860_800_000  # 2025-10-19T08:00:00Z
HOUR_MS = 60 * 60 * 1000


def build_fingerprint(
    visitor_id: str = "visitor-1",
    *,
    confidence: float = 0.9,
    timestamp: int = NOW_MS,
    **components: Any,
) -> DeviceFingerprint:
    base: dict[str, Any] = {
        "user_agent": "Mozilla/5.0 (X11; Linux x86_64)",
        "language": "en-US",
        "hardware_concurrency": 8,
        "device_memory": 8,
    }
    base.update(components)
    return DeviceFingerprint(
        visitor_id=visitor_id,
        confidence=confidence,
        components=base,
        timestamp=timestamp,
    )


@pytest.fixture
def make_fingerprint() -> Callable[..., DeviceFingerprint]:
    return build_fingerprint
