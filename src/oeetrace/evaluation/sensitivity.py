"""Finite-difference sensitivity of OEE to each independent input dimension.

Each dimension is scaled by ``1 + v`` and ``1 - v`` on a :class:`MeasurementSnapshot` and OEE is
recomputed through the same formulas as the baseline. The result is an elasticity estimate, not a
closed-form derivative.
"""

from __future__ import annotations

from collections.abc import Callable, Collection
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace

from pydantic import BaseModel, ConfigDict

from oeetrace.core.errors import OEEValueError
from oeetrace.core.types import ImpactLevel, safe_divide
from oeetrace.evaluation.metrics.core import OeeComponents, oee_components
from oeetrace.evaluation.snapshot import MeasurementSnapshot
from oeetrace.scenario.contract.models import OeeInput

PLANNED_TIME = "sensitivity.planned_time"
DOWNTIME = "sensitivity.downtime"
CYCLE_TIME = "sensitivity.cycle_time"
IDEAL_CYCLE_TIME = "sensitivity.ideal_cycle_time"
PRODUCTION_COUNT = "sensitivity.production_count"
GOOD_UNITS = "sensitivity.good_units"
SCRAP_UNITS = "sensitivity.scrap_units"

INCREASE = "increase"
DECREASE = "decrease"
NO_CHANGE = "no_change"

# Lower bounds on the favourable OEE delta (fraction, not points).
IMPACT_THRESHOLDS = (
    (0.05, ImpactLevel.CRITICAL),
    (0.02, ImpactLevel.HIGH),
    (0.005, ImpactLevel.MEDIUM),
)


def scale_downtime(
    snapshot: MeasurementSnapshot, factor: float, held: Collection[str] = ()
) -> MeasurementSnapshot:
    """Scale stoppage durations, returning the freed time to running at the current rate.

    Stoppages whose ledger key is in ``held`` keep their measured duration.
    """
    stoppages = tuple(
        c if c.key in held else replace(c, duration=c.duration * factor)
        for c in snapshot.stoppages
    )
    freed = snapshot.stoppage_time - sum(c.duration for c in stoppages)
    running = max(snapshot.running + freed, 0.0)
    scaled = replace(snapshot, stoppages=stoppages, running=running)
    if snapshot.running > 0:
        return scaled.scale_counts(running / snapshot.running)
    return scaled


def _scale_good(snapshot: MeasurementSnapshot, factor: float) -> MeasurementSnapshot:
    good = snapshot.good * factor
    return snapshot.with_counts(
        snapshot.total + good - snapshot.good, good, snapshot.scrap, snapshot.reworked
    )


def _scale_scrap(snapshot: MeasurementSnapshot, factor: float) -> MeasurementSnapshot:
    scrap = snapshot.scrap * factor
    return snapshot.with_counts(
        snapshot.total, snapshot.good - (scrap - snapshot.scrap), scrap, snapshot.reworked
    )


@dataclass(frozen=True, slots=True)
class Dimension:
    """A perturbable input: how to read its baseline and how to scale it."""

    key: str
    baseline: Callable[[MeasurementSnapshot], float]
    perturb: Callable[[MeasurementSnapshot, float], MeasurementSnapshot]


DIMENSIONS: dict[str, Dimension] = {
    dimension.key: dimension
    for dimension in (
        Dimension(
            PLANNED_TIME,
            lambda s: s.planned,
            lambda s, f: replace(s, planned=s.planned * f),
        ),
        Dimension(DOWNTIME, lambda s: s.stoppage_time, scale_downtime),
        # A slower cycle over the same running time yields proportionally fewer units.
        Dimension(
            CYCLE_TIME,
            lambda s: s.actual_cycle_time or 0.0,
            lambda s, f: s.scale_counts(safe_divide(1.0, f)),
        ),
        Dimension(
            IDEAL_CYCLE_TIME,
            lambda s: s.ideal,
            lambda s, f: replace(s, ideal=s.ideal * f),
        ),
        Dimension(PRODUCTION_COUNT, lambda s: s.total, lambda s, f: s.scale_counts(f)),
        Dimension(GOOD_UNITS, lambda s: s.good, _scale_good),
        Dimension(SCRAP_UNITS, lambda s: s.scrap, _scale_scrap),
    )
}


def perturbed_snapshot(
    snapshot: MeasurementSnapshot, key: str, factor: float
) -> MeasurementSnapshot:
    """Return ``snapshot`` with dimension ``key`` scaled by ``factor``."""
    try:
        dimension = DIMENSIONS[key]
    except KeyError as exc:
        available = ", ".join(DIMENSIONS)
        raise KeyError(f"Unknown sensitivity dimension '{key}'. Available: {available}") from exc
    return dimension.perturb(snapshot, factor)


def variation_fraction(variation_percent: float) -> float:
    """Convert a percent in the open interval (0, 100) into a fraction."""
    if not 0.0 < variation_percent < 100.0:
        raise OEEValueError(
            f"variation_percent must lie within (0, 100), got {variation_percent!r}"
        )
    return variation_percent / 100.0


def impact_level(oee_delta: float) -> ImpactLevel:
    for threshold, level in IMPACT_THRESHOLDS:
        if oee_delta > threshold:
            return level
    return ImpactLevel.LOW


class SensitivityResult(BaseModel):
    """OEE response to one perturbed dimension.

    Attributes
    ----------
    parameter_key:
        ``sensitivity.*`` localisation key of the dimension.
    baseline_value:
        Unperturbed value (seconds or units).
    oee_at_increase, oee_at_decrease:
        OEE with the dimension scaled by ``1 + v`` and ``1 - v``.
    oee_delta:
        Gain of the favourable direction over the baseline OEE (0-1 fraction, never negative).
    favourable_direction:
        ``increase``, ``decrease`` or ``no_change`` when neither direction improves OEE.
    elasticity:
        Central-difference estimate of ``(dOEE / OEE) / (dx / x)``.
    metric_changes:
        Availability, performance and quality deltas in the favourable direction.
    """

    model_config = ConfigDict(frozen=True)

    parameter_key: str
    baseline_value: float
    variation_percent: float
    oee_at_increase: float
    oee_at_decrease: float
    oee_delta: float
    favourable_direction: str
    elasticity: float
    metric_changes: dict[str, float] = {}
    impact_level: ImpactLevel


class SensitivityAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    baseline_oee: float
    variation_percent: float
    results: tuple[SensitivityResult, ...] = ()
    most_sensitive_parameter: str | None = None
    least_sensitive_parameter: str | None = None

    def result(self, key: str) -> SensitivityResult:
        for item in self.results:
            if item.parameter_key == key:
                return item
        raise KeyError(key)


def _component_changes(after: OeeComponents, before: OeeComponents) -> dict[str, float]:
    return {
        "availability": after.availability - before.availability,
        "performance": after.performance - before.performance,
        "quality": after.quality - before.quality,
    }


def _evaluate(
    snapshot: MeasurementSnapshot,
    baseline: OeeComponents,
    dimension: Dimension,
    fraction: float,
) -> SensitivityResult:
    up = oee_components(dimension.perturb(snapshot, 1.0 + fraction))
    down = oee_components(dimension.perturb(snapshot, 1.0 - fraction))

    if up.oee >= down.oee and up.oee > baseline.oee:
        direction, favourable = INCREASE, up
    elif down.oee > baseline.oee:
        direction, favourable = DECREASE, down
    else:
        direction, favourable = NO_CHANGE, baseline
    delta = favourable.oee - baseline.oee

    return SensitivityResult(
        parameter_key=dimension.key,
        baseline_value=dimension.baseline(snapshot),
        variation_percent=fraction * 100.0,
        oee_at_increase=up.oee,
        oee_at_decrease=down.oee,
        oee_delta=delta,
        favourable_direction=direction,
        elasticity=safe_divide(safe_divide(up.oee - down.oee, baseline.oee), 2.0 * fraction),
        metric_changes=_component_changes(favourable, baseline),
        impact_level=impact_level(delta),
    )


def sensitivity_from_snapshot(
    snapshot: MeasurementSnapshot,
    variation_percent: float = 10.0,
    *,
    max_workers: int | None = None,
) -> SensitivityAnalysis:
    fraction = variation_fraction(variation_percent)
    baseline = oee_components(snapshot)
    dimensions = list(DIMENSIONS.values())

    def _run(dimension: Dimension) -> SensitivityResult:
        return _evaluate(snapshot, baseline, dimension, fraction)

    if max_workers is None or max_workers <= 1:
        results = [_run(dimension) for dimension in dimensions]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(_run, dimensions))

    ranked = sorted(results, key=lambda item: (-item.oee_delta, item.parameter_key))
    return SensitivityAnalysis(
        baseline_oee=baseline.oee,
        variation_percent=variation_percent,
        results=tuple(ranked),
        most_sensitive_parameter=ranked[0].parameter_key if ranked else None,
        least_sensitive_parameter=ranked[-1].parameter_key if ranked else None,
    )


def analyze_sensitivity(
    data: OeeInput,
    variation_percent: float = 10.0,
    *,
    max_workers: int | None = None,
) -> SensitivityAnalysis:
    """Perturb every input dimension by ``±variation_percent`` and record the OEE response.

    Parameters
    ----------
    data:
        Calculation input.
    variation_percent:
        Perturbation size in percent; must lie within (0, 100).
    max_workers:
        When greater than one, dimensions are recomputed on a thread pool. Results are joined in
        a fixed order, so the output is identical to the sequential path.

    Returns
    -------
    SensitivityAnalysis
        Results ranked by favourable OEE delta (largest first).

    Raises
    ------
    OEEValueError
        If ``variation_percent`` lies outside (0, 100).
    """
    return sensitivity_from_snapshot(
        MeasurementSnapshot.from_input(data), variation_percent, max_workers=max_workers
    )


__all__ = [
    "PLANNED_TIME",
    "DOWNTIME",
    "CYCLE_TIME",
    "IDEAL_CYCLE_TIME",
    "PRODUCTION_COUNT",
    "GOOD_UNITS",
    "SCRAP_UNITS",
    "DIMENSIONS",
    "Dimension",
    "SensitivityResult",
    "SensitivityAnalysis",
    "analyze_sensitivity",
    "sensitivity_from_snapshot",
    "perturbed_snapshot",
    "scale_downtime",
    "variation_fraction",
    "impact_level",
]
