"""Fingerprint collectors.

The browser-side collector is an external capability; these adapters replay
captured fingerprints so the scoring flow can run from files or tests.
"""

from __future__ import annotations

import itertools
import time
from pathlib import Path
from typing import Callable, Iterator, Protocol, runtime_checkable

from pydantic import ValidationError

from common.io_utils import iter_json_lines
from common.logging_utils import get_logger
from common.models import DeviceFingerprint


logger = get_logger(__name__)


class CollectorError(RuntimeError):
    """Collector could not initialize or produce a fingerprint."""


@runtime_checkable
class FingerprintCollector(Protocol):
    def initialize(self) -> None: ...

    def get_fingerprint(self) -> DeviceFingerprint: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


class StaticCollector:
    """Always returns the same device, stamped with the capture time."""

    def __init__(self, fingerprint: DeviceFingerprint, *, clock: Callable[[], int] = _now_ms) -> None:
        self._fingerprint = fingerprint
        self._clock = clock
        self.initialized = False

    def initialize(self) -> None:
        self.initialized = True

    def get_fingerprint(self) -> DeviceFingerprint:
        if not self.initialized:
            self.initialize()
        return self._fingerprint.restamped(self._clock())


class ReplayCollector:
    """Replays fingerprints from a JSON-lines file, cycling when exhausted.

    Each line is one fingerprint in collector (camelCase) form. Timestamps are
    replaced with the capture time unless `keep_timestamps=True`.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        keep_timestamps: bool = False,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.path = Path(path)
        self.keep_timestamps = keep_timestamps
        self._clock = clock
        self._fingerprints: list[DeviceFingerprint] = []
        self._cursor: Iterator[DeviceFingerprint] | None = None

    @property
    def initialized(self) -> bool:
        return self._cursor is not None

    def initialize(self) -> None:
        if self._cursor is not None:
            return

        fingerprints: list[DeviceFingerprint] = []
        try:
            for record_no, payload in iter_json_lines(self.path):
                try:
                    fingerprints.append(DeviceFingerprint.model_validate(payload))
                except ValidationError as exc:
                    raise CollectorError(
                        f"invalid fingerprint at record {record_no} in {self.path}: {exc}"
                    ) from exc
        except (OSError, ValueError) as exc:
            raise CollectorError(f"failed to load fingerprints from {self.path}: {exc}") from exc

        if not fingerprints:
            raise CollectorError(f"no fingerprints in {self.path}")

        self._fingerprints = fingerprints
        self._cursor = itertools.cycle(fingerprints)
        logger.info("collector initialized path=%s fingerprints=%s", self.path, len(fingerprints))

    def get_fingerprint(self) -> DeviceFingerprint:
        if self._cursor is None:
            self.initialize()
        assert self._cursor is not None
        fingerprint = next(self._cursor)
        if self.keep_timestamps:
            return fingerprint
        return fingerprint.restamped(self._clock())
