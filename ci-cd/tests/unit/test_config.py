from __future__ import annotations

from pathlib import Path

import pytest

from common.config import AppConfig, load_config
from risk.risk_rules import DEFAULT_RULE_CONFIG


def test_defaults_match_rule_table() -> None:
    assert AppConfig().risk.as_dict() == DEFAULT_RULE_CONFIG
    assert AppConfig().history.max_entries == 50
    assert AppConfig().history.scope == "global"


def test_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLOWAUTH_STORE_BACKEND", "s3")
    monkeypatch.setenv("FLOWAUTH_S3_BUCKET", "bucket-1")
    cfg = load_config()
    assert cfg.store.backend == "s3"
    assert cfg.store.bucket == "bucket-1"


def test_yaml_overlays_sections(tmp_path: Path) -> None:
    path = tmp_path / "cfg.yaml"
    path.write_text(
        "\n".join(
            [
                "store:",
                "  backend: memory",
                "history:",
                "  scope: identity",
                "  max_entries: 10",
                "risk:",
                "  churn_max_recent: 3",
            ]
        ),
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.store.backend == "memory"
    assert cfg.history.scope == "identity"
    assert cfg.history.max_entries == 10
    assert cfg.risk.churn_max_recent == 3
    assert cfg.risk.weight_low_confidence == 25


def test_yaml_values_are_coerced_to_field_types(tmp_path: Path) -> None:
    path = tmp_path / "cfg.yaml"
    path.write_text(
        "risk:\n  max_device_memory_gb: 16\n  churn_max_recent: '12'\n  min_confidence: '0.4'\nstore:\n  profile: null\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.risk.max_device_memory_gb == 16.0
    assert isinstance(cfg.risk.max_device_memory_gb, float)
    assert cfg.risk.churn_max_recent == 12
    assert cfg.risk.min_confidence == 0.4
    assert cfg.store.profile is None


def test_repo_dev_config_loads() -> None:
    cfg = load_config(Path(__file__).resolve().parents[3] / "config" / "dev.yaml")
    assert cfg.store.backend == "file"


@pytest.mark.parametrize(
    "text, match",
    [
        ("- a\n- b\n", "must be a mapping"),
        ("risk: 3\n", "must be a mapping"),
        ("risk:\n  bogus: 1\n", "Unknown config key"),
        ("store:\n  backend: redis\n", "Unsupported store.backend"),
        ("history:\n  scope: team\n", "Unsupported history.scope"),
        ("history:\n  max_entries: 0\n", "positive"),
        ("risk:\n  churn_max_recent: ten\n", "risk.churn_max_recent"),
        ("risk:\n  weight_ad_block: true\n", "risk.weight_ad_block"),
        ("risk:\n  churn_max_recent: 2.5\n", "whole number"),
        ("risk:\n  min_confidence: [0.5]\n", "risk.min_confidence"),
        ("behavior:\n  location_consistency: maybe\n", "behavior.location_consistency"),
        ("store:\n  path: 12\n", "store.path"),
    ],
)
def test_invalid_config(tmp_path: Path, text: str, match: str) -> None:
    path = tmp_path / "cfg.yaml"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ValueError, match=match):
        load_config(path)
