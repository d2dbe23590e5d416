from __future__ import annotations

import json
from pathlib import Path

import pytest

from devices.collector import CollectorError, FingerprintCollector, ReplayCollector, StaticCollector


def _write_jsonl(path: Path, rows: list[dict]) -> Path:
    path.write_text("# captured\n" + "\n".join(json.dumps(r) for r in rows) + "\n", encoding="utf-8")
    return path


def _row(visitor_id: str, timestamp: int = 1000) -> dict:
    return {"visitorId": visitor_id, "confidence": 0.9, "components": {"hasLiedOs": False}, "timestamp": timestamp}


def test_replay_collector_cycles_and_restamps(tmp_path: Path) -> None:
    path = _write_jsonl(tmp_path / "fps.jsonl", [_row("a"), _row("b")])
    collector = ReplayCollector(path, clock=lambda: 42)
    assert isinstance(collector, FingerprintCollector)

    seen = [collector.get_fingerprint() for _ in range(3)]
    assert [fp.visitor_id for fp in seen] == ["a", "b", "a"]
    assert {fp.timestamp for fp in seen} == {42}


def test_replay_collector_initialize_is_idempotent(tmp_path: Path) -> None:
    path = _write_jsonl(tmp_path / "fps.jsonl", [_row("a"), _row("b")])
    collector = ReplayCollector(path, keep_timestamps=True)
    collector.initialize()
    first = collector.get_fingerprint()
    collector.initialize()
    assert collector.get_fingerprint().visitor_id == "b"
    assert first.timestamp == 1000


def test_replay_collector_errors(tmp_path: Path) -> None:
    with pytest.raises(CollectorError):
        ReplayCollector(tmp_path / "missing.jsonl").initialize()

    empty = tmp_path / "empty.jsonl"
    empty.write_text("\n", encoding="utf-8")
    with pytest.raises(CollectorError, match="no fingerprints"):
        ReplayCollector(empty).initialize()

    bad = _write_jsonl(tmp_path / "bad.jsonl", [{"visitorId": "x", "confidence": 2, "timestamp": 1}])
    with pytest.raises(CollectorError, match="record 1"):
        ReplayCollector(bad).get_fingerprint()

    garbage = tmp_path / "garbage.jsonl"
    garbage.write_text("{nope\n", encoding="utf-8")
    with pytest.raises(CollectorError):
        ReplayCollector(garbage).initialize()


def test_replay_collector_wraps_undecodable_file(tmp_path: Path) -> None:
    path = tmp_path / "fp.jsonl"
    path.write_bytes(b"\xff\xfe{\"visitorId\": \"a\"}\n")
    with pytest.raises(CollectorError, match="failed to load"):
        ReplayCollector(path).initialize()


def test_static_collector(make_fingerprint) -> None:
    ticks = iter([10, 20])
    collector = StaticCollector(make_fingerprint("dev"), clock=lambda: next(ticks))
    assert collector.get_fingerprint().timestamp == 10
    assert collector.initialized
    assert collector.get_fingerprint().timestamp == 20
