"""Availability, Performance, Quality and OEE."""

from __future__ import annotations

from typing import NamedTuple

from pydantic import BaseModel, ConfigDict

from oeetrace.core.types import safe_divide
from oeetrace.evaluation.metrics.tracked import UNIT_FRACTION, Confidence, TrackedMetric
from oeetrace.evaluation.snapshot import MeasurementSnapshot
from oeetrace.scenario.contract.models import OeeInput

AVAILABILITY_GROUPS = ("planned", "running")
PERFORMANCE_GROUPS = ("ideal", "total", "running")
QUALITY_GROUPS = ("good", "total")
OEE_GROUPS = ("planned", "running", "ideal", "total", "good")


class OeeComponents(NamedTuple):
    availability: float
    performance: float
    quality: float
    oee: float


def oee_components(snapshot: MeasurementSnapshot) -> OeeComponents:
    """Raw ratios for a snapshot. Every division is guarded; nothing is clamped."""
    availability = safe_divide(snapshot.running, snapshot.planned)
    performance = safe_divide(snapshot.ideal * snapshot.total, snapshot.running)
    quality = safe_divide(snapshot.good, snapshot.total)
    return OeeComponents(availability, performance, quality, availability * performance * quality)


class CoreMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    availability: TrackedMetric
    performance: TrackedMetric
    quality: TrackedMetric
    oee: TrackedMetric

    def components(self) -> OeeComponents:
        return OeeComponents(
            self.availability.value, self.performance.value, self.quality.value, self.oee.value
        )


def tracked_metric(
    snapshot: MeasurementSnapshot,
    name: str,
    value: float,
    groups: tuple[str, ...],
    params: dict[str, float],
    unit_key: str = UNIT_FRACTION,
) -> TrackedMetric:
    return TrackedMetric(
        name_key=f"metrics.{name}",
        value=value,
        unit_key=unit_key,
        formula_key=f"formulas.{name}",
        formula_params=params,
        confidence=Confidence.from_source(snapshot.source(*groups)),
        sources=snapshot.keys(*groups),
    )


def core_metrics_from_snapshot(snapshot: MeasurementSnapshot) -> CoreMetrics:
    ratios = oee_components(snapshot)
    return CoreMetrics(
        availability=tracked_metric(
            snapshot,
            "availability",
            ratios.availability,
            AVAILABILITY_GROUPS,
            {"operating_time": snapshot.running, "planned_production_time": snapshot.planned},
        ),
        performance=tracked_metric(
            snapshot,
            "performance",
            ratios.performance,
            PERFORMANCE_GROUPS,
            {
                "ideal_cycle_time": snapshot.ideal,
                "total_units": snapshot.total,
                "operating_time": snapshot.running,
            },
        ),
        quality=tracked_metric(
            snapshot,
            "quality",
            ratios.quality,
            QUALITY_GROUPS,
            {"good_units": snapshot.good, "total_units": snapshot.total},
        ),
        oee=tracked_metric(
            snapshot,
            "oee",
            ratios.oee,
            OEE_GROUPS,
            {
                "availability": ratios.availability,
                "performance": ratios.performance,
                "quality": ratios.quality,
            },
        ),
    )


def compute_core_metrics(data: OeeInput) -> CoreMetrics:
    """Compute the four core ratios for ``data``.

    Parameters
    ----------
    data:
        Calculation input. Fatal validation issues do not prevent a result.

    Returns
    -------
    CoreMetrics
        Availability, Performance, Quality and OEE as 0-1 fractions, each with its confidence.
    """
    return core_metrics_from_snapshot(MeasurementSnapshot.from_input(data))


__all__ = [
    "OeeComponents",
    "CoreMetrics",
    "oee_components",
    "tracked_metric",
    "core_metrics_from_snapshot",
    "compute_core_metrics",
]
