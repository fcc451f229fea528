"""Rank loss-tree leaves by the OEE recovered if each were eliminated.

For every loss leaf the snapshot is rewritten as if that leaf's time had been productive, and OEE
is recomputed. The gain is then re-estimated on perturbed snapshots (the sensitivity dimensions at
``±v``, with the leaf's own stoppage records or count held at their measured value) to score how
far the estimate depends on the surrounding inputs.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pandas as pd
from pydantic import BaseModel, ConfigDict

from oeetrace.core.types import ValueSource, safe_divide
from oeetrace.evaluation.loss_tree import (
    AVAILABILITY_BRANCH,
    MS_PER_SECOND,
    PERFORMANCE_BRANCH,
    QUALITY_BRANCH,
    REWORK_TIME,
    SCRAP_TIME,
    LossTreeNode,
    loss_tree_from_snapshot,
)
from oeetrace.evaluation.metrics.core import oee_components
from oeetrace.evaluation.sensitivity import (
    DIMENSIONS,
    DOWNTIME,
    SCRAP_UNITS,
    perturbed_snapshot,
    scale_downtime,
    variation_fraction,
)
from oeetrace.evaluation.snapshot import MeasurementSnapshot
from oeetrace.scenario.contract.models import OeeInput

GAIN_TOLERANCE = 1e-12

# Quality leaves whose count is itself a sensitivity dimension; held fixed for that leaf.
_OWN_DIMENSIONS = {(QUALITY_BRANCH, SCRAP_TIME): SCRAP_UNITS}


class LeverageImpact(BaseModel):
    """What eliminating one loss leaf would be worth.

    Attributes
    ----------
    path, category_key:
        Identity of the leaf in the loss tree.
    duration, percentage_of_planned:
        Time attributed to the leaf (seconds, 0-1 fraction of planned time).
    hypothetical_oee:
        OEE with the leaf's time recovered.
    oee_opportunity_points:
        ``(hypothetical_oee - baseline_oee) * 100``.
    throughput_gain_units:
        Additional good units implied, rounded down.
    sensitivity_score:
        0-1. Near 0 the gain barely moves relative to baseline OEE under input perturbation
        ("stable bet"); near 1 it is dominated by input uncertainty.
    """

    model_config = ConfigDict(frozen=True)

    path: tuple[str, ...]
    category_key: str
    duration: float
    percentage_of_planned: float
    hypothetical_oee: float
    oee_opportunity_points: float
    throughput_gain_units: int
    sensitivity_score: float
    source: ValueSource = ValueSource.EXPLICIT
    sources: tuple[str, ...] = ()

    @property
    def branch(self) -> str:
        return self.path[0]


class LeverageAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    baseline_oee: float
    variation_percent: float
    leverage_impacts: tuple[LeverageImpact, ...] = ()

    def top(self, count: int) -> tuple[LeverageImpact, ...]:
        return self.leverage_impacts[:count]


def _add_units(snapshot: MeasurementSnapshot, units: float) -> MeasurementSnapshot:
    """Add ``units`` at the snapshot's current yield (all good when nothing was produced)."""
    if snapshot.total > 0:
        return snapshot.scale_counts((snapshot.total + units) / snapshot.total)
    return snapshot.with_counts(units, units, 0.0, 0.0)


def eliminate(snapshot: MeasurementSnapshot, leaf: LossTreeNode) -> MeasurementSnapshot:
    """Return ``snapshot`` with the time of ``leaf`` turned into productive output."""
    seconds = leaf.duration_ms / MS_PER_SECOND
    branch = leaf.path[0]

    if branch == AVAILABILITY_BRANCH:
        stoppages = tuple(c for c in snapshot.stoppages if c.key not in leaf.sources)
        running = snapshot.running + seconds
        recovered = replace(snapshot, stoppages=stoppages, running=running)
        if snapshot.running > 0:
            return recovered.scale_counts(running / snapshot.running)
        return _add_units(recovered, safe_divide(seconds, snapshot.ideal))

    if branch == PERFORMANCE_BRANCH:
        return _add_units(snapshot, safe_divide(seconds, snapshot.ideal))

    if leaf.path[-1] == SCRAP_TIME:
        return snapshot.with_counts(
            snapshot.total, snapshot.good + snapshot.scrap, 0.0, snapshot.reworked
        )
    if leaf.path[-1] == REWORK_TIME:
        return snapshot.with_counts(
            snapshot.total, snapshot.good + snapshot.reworked, snapshot.scrap, 0.0
        )
    return snapshot


def _gain(snapshot: MeasurementSnapshot, leaf: LossTreeNode | None) -> float:
    if leaf is None:
        return 0.0
    return oee_components(eliminate(snapshot, leaf)).oee - oee_components(snapshot).oee


def stability_score(
    baseline_gain: float,
    baseline_oee: float,
    outcomes: Sequence[tuple[float, float]],
    variation: float,
) -> float:
    """Map the largest gain shift beyond the OEE shift, per unit of variation, onto [0, 1).

    Each perturbed evaluation yields a gain ``g`` and an OEE ``o``. With
    ``d = |(g - g0) / |g0| - (o - o0) / o0|`` and ``e = max(d) / variation`` the score is
    ``e / (1 + e)``. A gain that moves in step with OEE (planned time, ideal cycle time) does not
    count as moving. A zero baseline gain scores 0 when every perturbed gain is also zero and 1
    otherwise.
    """
    if abs(baseline_gain) <= GAIN_TOLERANCE:
        moved = any(abs(gain) > GAIN_TOLERANCE for gain, _ in outcomes)
        return 1.0 if moved else 0.0
    shifts = []
    for gain, oee in outcomes:
        oee_shift = (oee - baseline_oee) / baseline_oee if baseline_oee > GAIN_TOLERANCE else 0.0
        shifts.append(abs((gain - baseline_gain) / abs(baseline_gain) - oee_shift))
    elasticity = safe_divide(max(shifts, default=0.0), variation)
    return elasticity / (1.0 + elasticity)


def _perturb(
    snapshot: MeasurementSnapshot, key: str, factor: float, leaf: LossTreeNode
) -> MeasurementSnapshot:
    if key == DOWNTIME and leaf.path[0] == AVAILABILITY_BRANCH:
        return scale_downtime(snapshot, factor, held=leaf.sources)
    return perturbed_snapshot(snapshot, key, factor)


def _perturbed_outcomes(
    snapshot: MeasurementSnapshot, leaf: LossTreeNode, variation: float
) -> list[tuple[float, float]]:
    """``(gain, oee)`` per perturbation, with the leaf's own measurement held fixed."""
    held = _OWN_DIMENSIONS.get(leaf.path)
    outcomes: list[tuple[float, float]] = []
    for key in DIMENSIONS:
        if key == held:
            continue
        for factor in (1.0 + variation, 1.0 - variation):
            perturbed = _perturb(snapshot, key, factor, leaf)
            found = loss_tree_from_snapshot(perturbed).find(leaf.path)
            outcomes.append((_gain(perturbed, found), oee_components(perturbed).oee))
    return outcomes


def _impact(
    snapshot: MeasurementSnapshot, baseline_oee: float, leaf: LossTreeNode, variation: float
) -> LeverageImpact:
    recovered = eliminate(snapshot, leaf)
    hypothetical = oee_components(recovered).oee
    good_gain = max(recovered.good - snapshot.good, 0.0)
    return LeverageImpact(
        path=leaf.path,
        category_key=leaf.category_key,
        duration=leaf.duration,
        percentage_of_planned=leaf.percentage_of_planned,
        hypothetical_oee=hypothetical,
        oee_opportunity_points=(hypothetical - baseline_oee) * 100.0,
        throughput_gain_units=math.floor(round(good_gain, 6)),
        sensitivity_score=stability_score(
            hypothetical - baseline_oee,
            baseline_oee,
            _perturbed_outcomes(snapshot, leaf, variation),
            variation,
        ),
        source=leaf.source,
        sources=leaf.sources,
    )


def rank_impacts(impacts: Sequence[LeverageImpact]) -> list[LeverageImpact]:
    """Largest opportunity first; ties go to the more stable (lower score) estimate."""
    return sorted(
        impacts,
        key=lambda item: (-item.oee_opportunity_points, item.sensitivity_score, item.path),
    )


def leverage_from_snapshot(
    snapshot: MeasurementSnapshot,
    variation_percent: float = 10.0,
    *,
    max_workers: int | None = None,
) -> LeverageAnalysis:
    variation = variation_fraction(variation_percent)
    baseline_oee = oee_components(snapshot).oee
    leaves = loss_tree_from_snapshot(snapshot).loss_leaves()

    def _run(leaf: LossTreeNode) -> LeverageImpact:
        return _impact(snapshot, baseline_oee, leaf, variation)

    if max_workers is None or max_workers <= 1 or len(leaves) <= 1:
        impacts = [_run(leaf) for leaf in leaves]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            impacts = list(executor.map(_run, leaves))

    return LeverageAnalysis(
        baseline_oee=baseline_oee,
        variation_percent=variation_percent,
        leverage_impacts=tuple(rank_impacts(impacts)),
    )


def analyze_leverage(
    data: OeeInput,
    variation_percent: float = 10.0,
    *,
    max_workers: int | None = None,
) -> LeverageAnalysis:
    """Estimate the OEE recoverable from each loss leaf of ``data``, ranked for display.

    Parameters
    ----------
    data:
        Calculation input.
    variation_percent:
        Perturbation used for the ``sensitivity_score``; must lie within (0, 100).
    max_workers:
        Evaluate leaves on a thread pool when greater than one.
    """
    snapshot = MeasurementSnapshot.from_input(data)
    return leverage_from_snapshot(snapshot, variation_percent, max_workers=max_workers)


def leverage_dataframe(analysis: LeverageAnalysis) -> pd.DataFrame:
    """One row per leverage impact, in ranking order."""
    columns = [
        "rank",
        "path",
        "category_key",
        "duration_seconds",
        "percentage_of_planned",
        "hypothetical_oee",
        "oee_opportunity_points",
        "throughput_gain_units",
        "sensitivity_score",
        "source",
    ]
    rows = [
        {
            "rank": rank,
            "path": " > ".join(impact.path),
            "category_key": impact.category_key,
            "duration_seconds": impact.duration,
            "percentage_of_planned": impact.percentage_of_planned,
            "hypothetical_oee": impact.hypothetical_oee,
            "oee_opportunity_points": impact.oee_opportunity_points,
            "throughput_gain_units": impact.throughput_gain_units,
            "sensitivity_score": impact.sensitivity_score,
            "source": impact.source.value,
        }
        for rank, impact in enumerate(analysis.leverage_impacts, start=1)
    ]
    return pd.DataFrame(rows).reindex(columns=columns)


__all__ = [
    "LeverageImpact",
    "LeverageAnalysis",
    "analyze_leverage",
    "leverage_from_snapshot",
    "leverage_dataframe",
    "eliminate",
    "rank_impacts",
    "stability_score",
]
