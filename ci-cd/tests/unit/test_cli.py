from __future__ import annotations

import json
from pathlib import Path

import pytest

from auth.cli import main


NOW_MS = 1_760_860_800_000
SAMPLE = Path(__file__).resolve().parents[3] / "data" / "sample" / "fingerprint_clean.json"


def _json_out(capsys: pytest.CaptureFixture[str]) -> dict:
    out = capsys.readouterr().out
    return json.loads(out[out.index("{") :])


def test_analyze_records_and_reports(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store_dir = tmp_path / "state"
    assert main(["--store-path", str(store_dir), "analyze", str(SAMPLE), "--now-ms", str(NOW_MS)]) == 0

    out = _json_out(capsys)
    assert out["riskScore"] == 0
    assert out["riskLevel"] == "low"
    assert out["deviceTrust"] == 100
    assert out["visitorId"] == "a1b2c3d4e5f60718"
    assert out["trusted"] is False

    main(["--store-path", str(store_dir), "history"])
    assert _json_out(capsys) == {"count": 1, "visitor_ids": ["a1b2c3d4e5f60718"]}


def test_analyze_no_record(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store_dir = tmp_path / "state"
    main(["--store-path", str(store_dir), "analyze", str(SAMPLE), "--no-record"])
    capsys.readouterr()

    main(["--store-path", str(store_dir), "history"])
    assert _json_out(capsys)["count"] == 0


def test_trust_untrust_devices(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store = ["--store-path", str(tmp_path)]
    main([*store, "trust", "v1"])
    main([*store, "trust", "v2"])
    main([*store, "untrust", "v1"])
    capsys.readouterr()

    main([*store, "devices"])
    assert _json_out(capsys) == {"trusted_devices": ["v2"]}


def test_invalid_fingerprint_file(tmp_path: Path) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"visitorId": "x", "confidence": 3, "timestamp": 0}), encoding="utf-8")
    with pytest.raises(SystemExit, match="Invalid fingerprint file"):
        main(["--store-path", str(tmp_path), "analyze", str(bad)])


def test_invalid_config(tmp_path: Path) -> None:
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("- nope\n", encoding="utf-8")
    with pytest.raises(SystemExit, match="Invalid config"):
        main(["--config", str(cfg), "devices"])
