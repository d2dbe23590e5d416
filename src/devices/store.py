"""Durable string-keyed JSON stores.

Reads never fail: a missing key, an unreadable backend or malformed JSON all
yield the caller's default (logged as a warning). Writes either replace the
whole value or raise `StoreError` with the previous value left intact.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

import boto3

from common.config import StoreConfig
from common.logging_utils import get_logger


logger = get_logger(__name__)

FINGERPRINTS_KEY = "flowauth_fingerprints"
TRUSTED_DEVICES_KEY = "flowauth_trusted_devices"
USER_KEY = "flowauth_user"


class StoreError(RuntimeError):
    """A write or delete did not reach the backing store."""


class KeyValueStore:
    """Base class; backends implement `_read`, `_write` and `_delete`."""

    name = "base"

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def lock_for(self, key: str) -> threading.Lock:
        """Per-key lock for read-modify-write sequences."""

        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def get_json(self, key: str, default: Any = None) -> Any:
        try:
            raw = self._read(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("store read failed backend=%s key=%s: %s", self.name, key, exc)
            return default

        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("store malformed json backend=%s key=%s: %s", self.name, key, exc)
            return default

    def set_json(self, key: str, value: Any) -> None:
        payload = json.dumps(value, separators=(",", ":"))
        try:
            self._write(key, payload)
        except StoreError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise StoreError(f"failed to write {key!r} to {self.name} store: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._delete(key)
        except StoreError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise StoreError(f"failed to delete {key!r} from {self.name} store: {exc}") from exc

    def _read(self, key: str) -> str | None:
        raise NotImplementedError

    def _write(self, key: str, payload: str) -> None:
        raise NotImplementedError

    def _delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    name = "memory"

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__()
        self._data: dict[str, str] = dict(initial or {})

    def _read(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, key: str, payload: str) -> None:
        self._data[key] = payload

    def _delete(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return copy.deepcopy(self._data)


def _safe_filename(key: str) -> str:
    # Keys may carry an identity suffix (`flowauth_fingerprints:alice@example.com`).
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in key) + ".json"


class JsonFileStore(KeyValueStore):
    """One JSON file per key under `root`."""

    name = "file"

    def __init__(self, root: str | Path) -> None:
        super().__init__()
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        return self.root / _safe_filename(key)

    def _read(self, key: str) -> str | None:
        p = self.path_for(key)
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    def _write(self, key: str, payload: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


class S3Store(KeyValueStore):
    """Objects under `s3://<bucket>/<prefix><key>.json`."""

    name = "s3"

    def __init__(
        self,
        *,
        bucket: str,
        prefix: str = "flowauth/",
        region: str = "us-east-1",
        profile: str | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__()
        if not bucket:
            raise ValueError("S3Store requires a bucket name")
        self.bucket = bucket
        self.prefix = prefix
        if client is None:
            session = boto3.Session(profile_name=profile) if profile else boto3.Session()
            client = session.client("s3", region_name=region)
        self._client = client

    def object_key(self, key: str) -> str:
        return f"{self.prefix}{_safe_filename(key)}"

    def _read(self, key: str) -> str | None:
        try:
            resp = self._client.get_object(Bucket=self.bucket, Key=self.object_key(key))
        except self._client.exceptions.NoSuchKey:
            return None
        return resp["Body"].read().decode("utf-8")

    def _write(self, key: str, payload: str) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=self.object_key(key),
            Body=payload.encode("utf-8"),
            ContentType="application/json",
        )

    def _delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=self.object_key(key))


def build_store(cfg: StoreConfig) -> KeyValueStore:
    if cfg.backend == "memory":
        return MemoryStore()
    if cfg.backend == "file":
        return JsonFileStore(cfg.path)
    if cfg.backend == "s3":
        profile = (cfg.profile or "").strip() or None
        if profile and profile.lower() == "default":
            profile = None
        return S3Store(bucket=cfg.bucket, prefix=cfg.prefix, region=cfg.region, profile=profile)
    raise ValueError(f"Unsupported store backend {cfg.backend!r}")


__all__ = [
    "FINGERPRINTS_KEY",
    "TRUSTED_DEVICES_KEY",
    "USER_KEY",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "S3Store",
    "StoreError",
    "build_store",
]
