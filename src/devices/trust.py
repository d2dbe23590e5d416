from __future__ import annotations

from common.logging_utils import get_logger
from devices.store import TRUSTED_DEVICES_KEY, KeyValueStore


logger = get_logger(__name__)


class DeviceTrustManager:
    """Set of trusted visitor ids persisted as a JSON list.

    `trust` and `untrust` are idempotent. Only a storage failure raises
    (`StoreError`), and then the stored set is unchanged.
    """

    def __init__(self, store: KeyValueStore, *, key: str = TRUSTED_DEVICES_KEY) -> None:
        self.store = store
        self.key = key

    def _load(self) -> list[str]:
        raw = self.store.get_json(self.key, default=[])
        if not isinstance(raw, list):
            logger.warning("trusted devices payload is not a list key=%s", self.key)
            return []
        return [str(x) for x in raw if isinstance(x, str)]

    def trusted_devices(self) -> list[str]:
        return sorted(set(self._load()))

    def is_trusted(self, visitor_id: str) -> bool:
        return visitor_id in self._load()

    def trust(self, visitor_id: str) -> None:
        with self.store.lock_for(self.key):
            current = self._load()
            if visitor_id in current:
                return
            current.append(visitor_id)
            self.store.set_json(self.key, current)
        logger.info("device trusted visitor_id=%s", visitor_id)

    def untrust(self, visitor_id: str) -> None:
        with self.store.lock_for(self.key):
            current = self._load()
            if visitor_id not in current:
                return
            self.store.set_json(self.key, [x for x in current if x != visitor_id])
        logger.info("device untrusted visitor_id=%s", visitor_id)
