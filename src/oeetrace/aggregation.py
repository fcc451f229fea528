"""Combine single-machine results into a system-level OEE."""

from __future__ import annotations

import math
from collections.abc import Sequence
from enum import Enum

import pandas as pd
from pydantic import BaseModel, ConfigDict

from oeetrace.core.errors import OEEValueError
from oeetrace.core.types import safe_divide
from oeetrace.evaluation.metrics.tracked import Confidence
from oeetrace.results import OeeResult

BOTTLENECK_THRESHOLD = 0.70
DOMINANT_SHARE = 0.5


class AggregationMethod(str, Enum):
    WEIGHTED_BY_PLANNED_TIME = "weighted_by_planned_time"
    WORST_PERFORMER = "worst_performer"
    MULTIPLICATIVE = "multiplicative"

    @property
    def use_case_key(self) -> str:
        return f"aggregation.use_case.{self.value}"

    @classmethod
    def parse(cls, value: AggregationMethod | str) -> AggregationMethod:
        try:
            return cls(value)
        except ValueError as exc:
            available = ", ".join(method.value for method in cls)
            raise OEEValueError(
                f"Unknown aggregation method '{value}'. Available: {available}"
            ) from exc


class MachineOeeData(BaseModel):
    """One machine's calculation result plus its place in the line.

    ``sequence_position`` is set for machines in a serial line; all positions set and distinct
    marks the line as serial for the method recommendation.
    """

    model_config = ConfigDict(frozen=True)

    machine_id: str
    machine_name: str | None = None
    result: OeeResult
    sequence_position: int | None = None

    @property
    def oee(self) -> float:
        return self.result.core_metrics.oee.value

    @property
    def planned_time(self) -> float:
        return self.result.loss_tree.planned_time

    @property
    def confidence(self) -> Confidence:
        return self.result.core_metrics.oee.confidence


class MachineSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    machine_id: str
    machine_name: str | None = None
    oee: float
    availability: float
    performance: float
    quality: float
    planned_time: float
    planned_time_share: float
    confidence: Confidence
    sequence_position: int | None = None


class SystemMetrics(BaseModel):
    """Planned-time-weighted component ratios across all machines."""

    model_config = ConfigDict(frozen=True)

    availability: float = 0.0
    performance: float = 0.0
    quality: float = 0.0
    total_planned_time: float = 0.0
    machine_count: int = 0
    best_machine_id: str | None = None
    worst_machine_id: str | None = None


class BottleneckAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    machine_id: str | None = None
    oee: float | None = None
    limiting_component: str | None = None
    threshold: float = BOTTLENECK_THRESHOLD
    machines_below_threshold: tuple[str, ...] = ()
    recommended_action_keys: tuple[str, ...] = ()


class SystemOeeAnalysis(BaseModel):
    """System-level OEE under one aggregation method.

    ``confidence`` is the lowest confidence among the machines; an empty machine list yields an
    OEE of 0 with low confidence.
    """

    model_config = ConfigDict(frozen=True)

    system_oee: float
    method: AggregationMethod
    machines: tuple[MachineSummary, ...] = ()
    system_metrics: SystemMetrics = SystemMetrics()
    bottleneck: BottleneckAnalysis = BottleneckAnalysis()
    confidence: Confidence


class MethodComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: AggregationMethod
    system_oee: float
    use_case_key: str


class AggregationComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    comparisons: dict[str, MethodComparison]
    recommended_method: AggregationMethod
    recommendation_key: str


def _weighted(values: Sequence[float], weights: Sequence[float]) -> float:
    total_weight = sum(weights)
    if total_weight <= 0:
        return safe_divide(sum(values), len(values))
    return safe_divide(sum(v * w for v, w in zip(values, weights)), total_weight)


def _system_oee(machines: Sequence[MachineOeeData], method: AggregationMethod) -> float:
    if not machines:
        return 0.0
    oees = [machine.oee for machine in machines]
    if method is AggregationMethod.WORST_PERFORMER:
        return min(oees)
    if method is AggregationMethod.MULTIPLICATIVE:
        return math.prod(oees)
    return _weighted(oees, [machine.planned_time for machine in machines])


def _summaries(machines: Sequence[MachineOeeData]) -> list[MachineSummary]:
    total = sum(machine.planned_time for machine in machines)
    summaries = []
    for machine in machines:
        core = machine.result.core_metrics
        summaries.append(
            MachineSummary(
                machine_id=machine.machine_id,
                machine_name=machine.machine_name,
                oee=core.oee.value,
                availability=core.availability.value,
                performance=core.performance.value,
                quality=core.quality.value,
                planned_time=machine.planned_time,
                planned_time_share=safe_divide(machine.planned_time, total),
                confidence=machine.confidence,
                sequence_position=machine.sequence_position,
            )
        )
    return summaries


def _system_metrics(summaries: Sequence[MachineSummary]) -> SystemMetrics:
    if not summaries:
        return SystemMetrics()
    weights = [summary.planned_time for summary in summaries]
    best = max(summaries, key=lambda summary: summary.oee)
    worst = min(summaries, key=lambda summary: summary.oee)
    return SystemMetrics(
        availability=_weighted([s.availability for s in summaries], weights),
        performance=_weighted([s.performance for s in summaries], weights),
        quality=_weighted([s.quality for s in summaries], weights),
        total_planned_time=sum(weights),
        machine_count=len(summaries),
        best_machine_id=best.machine_id,
        worst_machine_id=worst.machine_id,
    )


def _bottleneck(summaries: Sequence[MachineSummary]) -> BottleneckAnalysis:
    if not summaries:
        return BottleneckAnalysis()
    worst = min(summaries, key=lambda summary: summary.oee)
    components = {
        "availability": worst.availability,
        "performance": worst.performance,
        "quality": worst.quality,
    }
    limiting = min(components, key=components.__getitem__)
    below = tuple(s.machine_id for s in summaries if s.oee < BOTTLENECK_THRESHOLD)

    actions = [f"aggregation.action.review_{limiting}_losses"]
    if worst.oee < BOTTLENECK_THRESHOLD:
        actions.insert(0, "aggregation.action.bottleneck_below_threshold")
    if len(below) > 1:
        actions.append("aggregation.action.several_machines_below_threshold")
    return BottleneckAnalysis(
        machine_id=worst.machine_id,
        oee=worst.oee,
        limiting_component=limiting,
        machines_below_threshold=below,
        recommended_action_keys=tuple(actions),
    )


def aggregate_system(
    machines: Sequence[MachineOeeData],
    method: AggregationMethod | str = AggregationMethod.WEIGHTED_BY_PLANNED_TIME,
) -> SystemOeeAnalysis:
    """Combine machine results into one system figure.

    Parameters
    ----------
    machines:
        Single-machine results. May be empty.
    method:
        ``weighted_by_planned_time`` (planned-time weighted mean; a simple mean when no machine
        has planned time), ``worst_performer`` (minimum) or ``multiplicative`` (product, for
        serial lines).

    Raises
    ------
    OEEValueError
        If ``method`` is not one of the supported methods.
    """
    method = AggregationMethod.parse(method)
    summaries = _summaries(machines)
    confidence = (
        Confidence.lowest(machine.confidence for machine in machines)
        if machines
        else Confidence.LOW
    )
    return SystemOeeAnalysis(
        system_oee=_system_oee(machines, method),
        method=method,
        machines=tuple(summaries),
        system_metrics=_system_metrics(summaries),
        bottleneck=_bottleneck(summaries),
        confidence=confidence,
    )


def is_serial_line(machines: Sequence[MachineOeeData]) -> bool:
    positions = [machine.sequence_position for machine in machines]
    if len(positions) < 2 or any(position is None for position in positions):
        return False
    return len(set(positions)) == len(positions)


def recommend_method(machines: Sequence[MachineOeeData]) -> tuple[AggregationMethod, str]:
    """Advisory choice of method and the key explaining it."""
    if is_serial_line(machines):
        return AggregationMethod.MULTIPLICATIVE, "aggregation.recommendation.serial_line"
    total = sum(machine.planned_time for machine in machines)
    if len(machines) >= 2 and total > 0:
        dominant = max(machine.planned_time for machine in machines) / total
        if dominant > DOMINANT_SHARE:
            return AggregationMethod.WORST_PERFORMER, "aggregation.recommendation.dominant_machine"
    return AggregationMethod.WEIGHTED_BY_PLANNED_TIME, "aggregation.recommendation.balanced"


def compare_aggregation_methods(machines: Sequence[MachineOeeData]) -> AggregationComparison:
    """Compute every method and recommend one. The recommendation is advisory only."""
    comparisons = {
        method.value: MethodComparison(
            method=method,
            system_oee=_system_oee(machines, method),
            use_case_key=method.use_case_key,
        )
        for method in AggregationMethod
    }
    recommended, reason_key = recommend_method(machines)
    return AggregationComparison(
        comparisons=comparisons,
        recommended_method=recommended,
        recommendation_key=reason_key,
    )


def aggregation_dataframe(analysis: SystemOeeAnalysis) -> pd.DataFrame:
    """One row per machine of a system analysis."""
    columns = [
        "machine_id",
        "machine_name",
        "sequence_position",
        "oee",
        "availability",
        "performance",
        "quality",
        "planned_time",
        "planned_time_share",
        "confidence",
    ]
    rows = [summary.model_dump(mode="json") for summary in analysis.machines]
    return pd.DataFrame(rows).reindex(columns=columns)


__all__ = [
    "AggregationMethod",
    "MachineOeeData",
    "MachineSummary",
    "SystemMetrics",
    "BottleneckAnalysis",
    "SystemOeeAnalysis",
    "MethodComparison",
    "AggregationComparison",
    "aggregate_system",
    "compare_aggregation_methods",
    "recommend_method",
    "is_serial_line",
    "aggregation_dataframe",
    "BOTTLENECK_THRESHOLD",
]
