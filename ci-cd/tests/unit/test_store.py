from __future__ import annotations

import json
import os
from pathlib import Path

import boto3
import pytest
from moto import mock_aws

from common.config import StoreConfig
from devices.store import JsonFileStore, MemoryStore, S3Store, StoreError, build_store


def test_memory_store_defaults_and_malformed_json() -> None:
    store = MemoryStore({"broken": "{not json"})
    assert store.get_json("missing", default=[]) == []
    assert store.get_json("broken", default=[]) == []

    store.set_json("k", ["a", "b"])
    assert store.get_json("k") == ["a", "b"]

    store.delete("k")
    store.delete("k")
    assert store.get_json("k") is None


def test_file_store_round_trip_and_fallback(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "state")
    assert store.get_json("flowauth_trusted_devices", default=[]) == []

    store.set_json("flowauth_trusted_devices", ["v1"])
    assert json.loads(store.path_for("flowauth_trusted_devices").read_text(encoding="utf-8")) == ["v1"]

    store.path_for("flowauth_trusted_devices").write_text("[oops", encoding="utf-8")
    assert store.get_json("flowauth_trusted_devices", default=[]) == []


def test_file_store_keys_with_identity_are_safe_filenames(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path)
    store.set_json("flowauth_fingerprints:alice@example.com", [])
    assert store.path_for("flowauth_fingerprints:alice@example.com").parent == tmp_path


def test_file_store_failed_write_keeps_previous_value(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = JsonFileStore(tmp_path)
    store.set_json("k", [1, 2, 3])

    def boom(src: str, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", boom)
    with pytest.raises(StoreError, match="disk full"):
        store.set_json("k", [4])

    monkeypatch.undo()
    assert store.get_json("k") == [1, 2, 3]
    assert [p.name for p in tmp_path.iterdir()] == ["k.json"]


@mock_aws
def test_s3_store_round_trip() -> None:
    client = boto3.client("s3", region_name="us-east-1")
    client.create_bucket(Bucket="flowauth-test")

    store = S3Store(bucket="flowauth-test", client=client)
    assert store.get_json("flowauth_user") is None

    store.set_json("flowauth_user", {"id": "u1"})
    assert store.get_json("flowauth_user") == {"id": "u1"}

    obj = client.get_object(Bucket="flowauth-test", Key="flowauth/flowauth_user.json")
    assert json.loads(obj["Body"].read()) == {"id": "u1"}

    store.delete("flowauth_user")
    assert store.get_json("flowauth_user", default="gone") == "gone"


@mock_aws
def test_s3_store_missing_bucket_reads_default_and_write_raises() -> None:
    client = boto3.client("s3", region_name="us-east-1")
    store = S3Store(bucket="does-not-exist", client=client)

    assert store.get_json("flowauth_trusted_devices", default=[]) == []
    with pytest.raises(StoreError):
        store.set_json("flowauth_trusted_devices", ["v1"])


def test_build_store_selects_backend(tmp_path: Path) -> None:
    assert isinstance(build_store(StoreConfig(backend="memory")), MemoryStore)

    file_store = build_store(StoreConfig(backend="file", path=str(tmp_path)))
    assert isinstance(file_store, JsonFileStore)
    assert file_store.root == tmp_path

    with pytest.raises(ValueError):
        build_store(StoreConfig(backend="s3", bucket=""))
    with pytest.raises(ValueError):
        build_store(StoreConfig(backend="redis"))  # type: ignore[arg-type]
