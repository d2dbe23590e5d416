from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from common.models import DeviceFingerprint, FraudAnalysis, RiskLevel
from risk.behavior import BehaviorSignalProvider, StaticBehaviorProvider


DEFAULT_RULE_CONFIG: dict[str, Any] = {
    # Weights
    "weight_lied_languages": 15,
    "weight_lied_resolution": 10,
    "weight_lied_os_browser": 20,
    "weight_ad_block": 5,
    "weight_high_core_count": 5,
    "weight_high_device_memory": 5,
    "weight_low_confidence": 25,
    "weight_fingerprint_churn": 30,
    # Thresholds
    "max_hardware_concurrency": 16,
    "max_device_memory_gb": 32,
    "min_confidence": 0.5,
    "churn_window_hours": 24,
    "churn_max_recent": 10,
    # Tiers (lower bound inclusive)
    "medium_risk_score": 25,
    "high_risk_score": 50,
}

_HOUR_MS = 60 * 60 * 1000


@dataclass(frozen=True)
class RiskContext:
    """Inputs used by the deterministic fingerprint rules.

    `history` must not contain `fingerprint` itself: score first, record after.
    """

    fingerprint: DeviceFingerprint
    history: Sequence[DeviceFingerprint]
    now_ms: int


@dataclass(frozen=True)
class RuleResult:
    rule_id: str
    triggered: bool
    weight: int
    factor: str


def rule_lied_languages(ctx: RiskContext, cfg: dict[str, Any]) -> RuleResult:
    triggered = bool(ctx.fingerprint.components.has_lied_languages)
    return RuleResult(
        "lied_languages",
        triggered,
        int(cfg["weight_lied_languages"]),
        "Inconsistent language settings detected",
    )


def rule_lied_resolution(ctx: RiskContext, cfg: dict[str, Any]) -> RuleResult:
    triggered = bool(ctx.fingerprint.components.has_lied_resolution)
    return RuleResult(
        "lied_resolution",
        triggered,
        int(cfg["weight_lied_resolution"]),
        "Screen resolution inconsistencies",
    )


def rule_lied_os_browser(ctx: RiskContext, cfg: dict[str, Any]) -> RuleResult:
    """OS and browser spoofing share one rule: either flag fires it once."""

    comps = ctx.fingerprint.components
    triggered = bool(comps.has_lied_os or comps.has_lied_browser)
    return RuleResult(
        "lied_os_browser",
        triggered,
        int(cfg["weight_lied_os_browser"]),
        "Browser/OS spoofing detected",
    )


def rule_ad_block(ctx: RiskContext, cfg: dict[str, Any]) -> RuleResult:
    triggered = bool(ctx.fingerprint.components.ad_block)
    return RuleResult("ad_block", triggered, int(cfg["weight_ad_block"]), "Ad blocker detected")


def rule_high_core_count(ctx: RiskContext, cfg: dict[str, Any]) -> RuleResult:
    threshold = int(cfg["max_hardware_concurrency"])
    triggered = int(ctx.fingerprint.components.hardware_concurrency) > threshold
    return RuleResult(
        "high_core_count",
        triggered,
        int(cfg["weight_high_core_count"]),
        "Unusually high CPU core count",
    )


def rule_high_device_memory(ctx: RiskContext, cfg: dict[str, Any]) -> RuleResult:
    """Absent device memory never fires."""

    memory = ctx.fingerprint.components.device_memory
    triggered = memory is not None and float(memory) > float(cfg["max_device_memory_gb"])
    return RuleResult(
        "high_device_memory",
        triggered,
        int(cfg["weight_high_device_memory"]),
        "Unusually high device memory",
    )


def rule_low_confidence(ctx: RiskContext, cfg: dict[str, Any]) -> RuleResult:
    triggered = float(ctx.fingerprint.confidence) < float(cfg["min_confidence"])
    return RuleResult(
        "low_confidence",
        triggered,
        int(cfg["weight_low_confidence"]),
        "Low fingerprint confidence",
    )


def count_recent(history: Sequence[DeviceFingerprint], *, now_ms: int, window_ms: float) -> int:
    """Entries with `now - timestamp < window`; future timestamps count as recent."""

    return sum(1 for fp in history if now_ms - int(fp.timestamp) < window_ms)


def rule_fingerprint_churn(ctx: RiskContext, cfg: dict[str, Any]) -> RuleResult:
    """Many fingerprints seen in the window points at device cycling or credential stuffing."""

    window_ms = float(cfg["churn_window_hours"]) * _HOUR_MS
    recent = count_recent(ctx.history, now_ms=ctx.now_ms, window_ms=window_ms)
    triggered = recent > int(cfg["churn_max_recent"])
    return RuleResult(
        "fingerprint_churn",
        triggered,
        int(cfg["weight_fingerprint_churn"]),
        "Excessive login attempts from different devices",
    )


# Evaluation order is part of the contract: it fixes the order of `factors`.
RULES: tuple[Callable[[RiskContext, dict[str, Any]], RuleResult], ...] = (
    rule_lied_languages,
    rule_lied_resolution,
    rule_lied_os_browser,
    rule_ad_block,
    rule_high_core_count,
    rule_high_device_memory,
    rule_low_confidence,
    rule_fingerprint_churn,
)


def classify_risk_level(score: int, cfg: dict[str, Any] | None = None) -> RiskLevel:
    cfg = DEFAULT_RULE_CONFIG if cfg is None else cfg
    if score >= int(cfg["high_risk_score"]):
        return "high"
    if score >= int(cfg["medium_risk_score"]):
        return "medium"
    return "low"


def device_trust(score: int) -> int:
    return max(0, 100 - int(score))


def evaluate_rules(ctx: RiskContext, cfg: dict[str, Any]) -> list[RuleResult]:
    return [rule_fn(ctx, cfg) for rule_fn in RULES]


def compute_risk_flags(ctx: RiskContext, *, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    """Evaluate all rules and return JSON-serializable outputs.

    Returns:
      {"risk_flags": [rule ids], "factors": [texts], "risk_score": int}
    """

    cfg = DEFAULT_RULE_CONFIG if cfg is None else {**DEFAULT_RULE_CONFIG, **cfg}

    fired: list[str] = []
    factors: list[str] = []
    score = 0
    for result in evaluate_rules(ctx, cfg):
        if result.triggered:
            fired.append(result.rule_id)
            factors.append(result.factor)
            score += int(result.weight)

    return {"risk_flags": fired, "factors": factors, "risk_score": int(score)}


def analyze(
    fingerprint: DeviceFingerprint,
    history: Sequence[DeviceFingerprint] = (),
    *,
    now_ms: int | None = None,
    cfg: dict[str, Any] | None = None,
    behavior: BehaviorSignalProvider | None = None,
) -> FraudAnalysis:
    """Score `fingerprint` against previously observed fingerprints.

    Pure apart from reading the clock when `now_ms` is not given. Never raises
    for a valid fingerprint; an empty history simply never fires the churn rule.
    """

    cfg = DEFAULT_RULE_CONFIG if cfg is None else {**DEFAULT_RULE_CONFIG, **cfg}
    now = int(time.time() * 1000) if now_ms is None else int(now_ms)
    provider = behavior if behavior is not None else StaticBehaviorProvider()

    ctx = RiskContext(fingerprint=fingerprint, history=tuple(history), now_ms=now)
    out = compute_risk_flags(ctx, cfg=cfg)
    score = int(out["risk_score"])

    return FraudAnalysis(
        risk_score=score,
        risk_level=classify_risk_level(score, cfg),
        factors=tuple(out["factors"]),
        device_trust=device_trust(score),
        location_consistency=provider.location_consistency(fingerprint),
        behavior_analysis=provider.behavior(fingerprint),
    )


__all__ = [
    "DEFAULT_RULE_CONFIG",
    "RULES",
    "RiskContext",
    "RuleResult",
    "analyze",
    "classify_risk_level",
    "compute_risk_flags",
    "count_recent",
    "device_trust",
    "evaluate_rules",
]
