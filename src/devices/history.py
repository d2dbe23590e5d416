from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from common.config import HistoryScope
from common.logging_utils import get_logger
from common.models import DeviceFingerprint
from devices.store import FINGERPRINTS_KEY, KeyValueStore


logger = get_logger(__name__)

DEFAULT_MAX_ENTRIES = 50


class FingerprintHistory:
    """Bounded log of previously observed fingerprints, oldest first.

    With `scope="global"` every caller shares one log (the churn rule then
    counts fingerprints across accounts). With `scope="identity"` each
    identity gets its own log; calls without an identity use the global one.
    A sample recorded before sign-in therefore sits in the global log until
    the session service records it again under the account.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        scope: HistoryScope = "global",
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.store = store
        self.max_entries = int(max_entries)
        self.scope = scope

    def key_for(self, identity: str | None = None) -> str:
        if self.scope == "identity" and identity:
            return f"{FINGERPRINTS_KEY}:{identity.strip().lower()}"
        return FINGERPRINTS_KEY

    def _load_raw(self, key: str) -> list[Any]:
        raw = self.store.get_json(key, default=[])
        if not isinstance(raw, list):
            logger.warning("history payload is not a list key=%s type=%s", key, type(raw).__name__)
            return []
        return raw

    def load(self, identity: str | None = None) -> list[DeviceFingerprint]:
        key = self.key_for(identity)
        out: list[DeviceFingerprint] = []
        for idx, item in enumerate(self._load_raw(key)):
            try:
                out.append(DeviceFingerprint.model_validate(item))
            except ValidationError as exc:
                logger.warning(
                    "dropping malformed history entry key=%s index=%s errors=%s",
                    key,
                    idx,
                    exc.error_count(),
                )
        return out

    def record(self, fingerprint: DeviceFingerprint, identity: str | None = None) -> int:
        """Append and keep only the most recent `max_entries`. Returns the new length.

        The stored list is written in a single `set_json`, so a failed write
        leaves the previous history untouched.
        """

        key = self.key_for(identity)
        with self.store.lock_for(key):
            entries = [fp.to_wire() for fp in self.load(identity)]
            entries.append(fingerprint.to_wire())
            entries = entries[-self.max_entries :]
            self.store.set_json(key, entries)

        logger.debug(
            "history recorded key=%s visitor_id=%s size=%s",
            key,
            fingerprint.visitor_id,
            len(entries),
        )
        return len(entries)

    def clear(self, identity: str | None = None) -> None:
        key = self.key_for(identity)
        with self.store.lock_for(key):
            self.store.delete(key)
