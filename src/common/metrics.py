from __future__ import annotations

from dataclasses import dataclass, field

from common.logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class Metric:
    name: str
    value: float
    unit: str = "Count"
    dimensions: dict[str, str] = field(default_factory=dict)


def emit_metric(metric: Metric) -> None:
    if metric.dimensions:
        dims = " ".join(f"{k}={v}" for k, v in sorted(metric.dimensions.items()))
        logger.info("metric %s=%s %s %s", metric.name, metric.value, metric.unit, dims)
        return
    logger.info("metric %s=%s %s", metric.name, metric.value, metric.unit)
