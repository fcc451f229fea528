"""TEEP, utilisation, reliability and loss-rate metrics."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from oeetrace.core.types import safe_divide
from oeetrace.evaluation.metrics.core import OEE_GROUPS, CoreMetrics, tracked_metric
from oeetrace.evaluation.metrics.tracked import UNIT_SECONDS, TrackedMetric
from oeetrace.evaluation.snapshot import MeasurementSnapshot
from oeetrace.scenario.contract.models import OeeInput


class ExtendedMetrics(BaseModel):
    """Metrics beyond the core four. Absent values mean the precondition was not met.

    Attributes
    ----------
    teep, utilization:
        Present only when calendar ("all") time was supplied.
    mtbf, mttr:
        Present only when at least one failure record exists.
    scrap_rate, rework_rate:
        Fractions of total units.
    net_operating_time:
        Ideal cycle time multiplied by total units (seconds).
    """

    model_config = ConfigDict(frozen=True)

    teep: TrackedMetric | None = None
    utilization: TrackedMetric | None = None
    mtbf: TrackedMetric | None = None
    mttr: TrackedMetric | None = None
    scrap_rate: TrackedMetric
    rework_rate: TrackedMetric
    net_operating_time: TrackedMetric


def compute_extended_metrics(data: OeeInput, core: CoreMetrics) -> ExtendedMetrics:
    """Compute the extended metric set for ``data`` given its core metrics."""
    snapshot = MeasurementSnapshot.from_input(data)
    teep = utilization = mtbf = mttr = None

    if snapshot.all_time is not None:
        teep = tracked_metric(
            snapshot,
            "teep",
            core.oee.value * safe_divide(snapshot.planned, snapshot.all_time),
            OEE_GROUPS + ("all_time",),
            {
                "oee": core.oee.value,
                "planned_production_time": snapshot.planned,
                "all_time": snapshot.all_time,
            },
        )
        utilization = tracked_metric(
            snapshot,
            "utilization",
            safe_divide(snapshot.planned, snapshot.all_time),
            ("planned", "all_time"),
            {"planned_production_time": snapshot.planned, "all_time": snapshot.all_time},
        )

    failures = [record for record in data.downtimes if record.reason.is_failure]
    if failures:
        failure_time = sum(record.duration.value for record in failures)
        mtbf = tracked_metric(
            snapshot,
            "mtbf",
            safe_divide(snapshot.running, len(failures)),
            ("running", "failures"),
            {"operating_time": snapshot.running, "failure_count": float(len(failures))},
            unit_key=UNIT_SECONDS,
        )
        mttr = tracked_metric(
            snapshot,
            "mttr",
            safe_divide(failure_time, len(failures)),
            ("failures",),
            {"failure_downtime": failure_time, "failure_count": float(len(failures))},
            unit_key=UNIT_SECONDS,
        )

    return ExtendedMetrics(
        teep=teep,
        utilization=utilization,
        mtbf=mtbf,
        mttr=mttr,
        scrap_rate=tracked_metric(
            snapshot,
            "scrap_rate",
            safe_divide(snapshot.scrap, snapshot.total),
            ("scrap", "total"),
            {"scrap_units": snapshot.scrap, "total_units": snapshot.total},
        ),
        rework_rate=tracked_metric(
            snapshot,
            "rework_rate",
            safe_divide(snapshot.reworked, snapshot.total),
            ("reworked", "total"),
            {"reworked_units": snapshot.reworked, "total_units": snapshot.total},
        ),
        net_operating_time=tracked_metric(
            snapshot,
            "net_operating_time",
            snapshot.ideal * snapshot.total,
            ("ideal", "total"),
            {"ideal_cycle_time": snapshot.ideal, "total_units": snapshot.total},
            unit_key=UNIT_SECONDS,
        ),
    )


__all__ = ["ExtendedMetrics", "compute_extended_metrics"]
