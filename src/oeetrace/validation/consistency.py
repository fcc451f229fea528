"""Internal-coherence checks over an :class:`~oeetrace.scenario.contract.OeeInput`.

The validator judges arithmetic only. It never blocks a calculation and never comments on
whether numbers are realistic for a given plant; message keys describe what the inputs imply and
which other input that conflicts with.
"""

from __future__ import annotations

from oeetrace.core.types import safe_divide
from oeetrace.scenario.contract.models import OeeInput
from oeetrace.validation.issues import ValidationIssue, ValidationResult

ALLOCATION_TOLERANCE = 0.01
DOWNTIME_SHARE_WARNING = 0.80
IDEAL_CYCLE_TIME_MIN = 0.1
IDEAL_CYCLE_TIME_MAX = 3600.0
AVERAGE_CYCLE_DIVERGENCE = 0.20
FASTER_THAN_IDEAL_MARGIN = 0.01
UTILIZATION_FACTOR_INFO = 0.20
SCRAP_SHARE_FATAL = 0.50
SCRAP_SHARE_WARNING = 0.20
SCRAP_SHARE_INFO = 0.10

# Absolute slack (seconds) for float comparisons between sums of durations.
_TIME_EPSILON = 1e-6

_SCRAP_TIERS = (
    (SCRAP_SHARE_FATAL, ValidationIssue.fatal, "SCRAP_SHARE_CRITICAL"),
    (SCRAP_SHARE_WARNING, ValidationIssue.warning, "SCRAP_SHARE_HIGH"),
    (SCRAP_SHARE_INFO, ValidationIssue.info, "SCRAP_SHARE_ELEVATED"),
)


def _production_issues(data: OeeInput) -> list[ValidationIssue]:
    production = data.production
    total = production.total_units.value
    good = production.good_units.value
    scrap = production.scrap_units.value
    reworked = production.reworked_units.value
    issues: list[ValidationIssue] = []

    if not production.is_consistent:
        issues.append(
            ValidationIssue.fatal(
                "PRODUCTION_COUNT_MISMATCH",
                "validation.production.counts_do_not_reconcile",
                "production.total_units",
                good=good,
                scrap=scrap,
                reworked=reworked,
                parts_sum=good + scrap + reworked,
                total=total,
                difference=production.discrepancy(),
            )
        )
    if good > total:
        issues.append(
            ValidationIssue.fatal(
                "GOOD_EXCEEDS_TOTAL",
                "validation.production.good_exceeds_total",
                "production.good_units",
                good=good,
                total=total,
            )
        )
    if total == 0 and data.time_model.running_time() > 0:
        issues.append(
            ValidationIssue.info(
                "ZERO_PRODUCTION",
                "validation.production.running_time_without_units",
                "production.total_units",
                running_seconds=data.time_model.running_time(),
            )
        )

    scrap_share = safe_divide(scrap, total)
    for limit, factory, code in _SCRAP_TIERS:
        if scrap_share > limit:
            issues.append(
                factory(
                    code,
                    f"validation.production.{code.lower()}",
                    "production.scrap_units",
                    scrap_share=scrap_share,
                    limit=limit,
                    scrap=scrap,
                    total=total,
                )
            )
            break
    return issues


def _time_issues(data: OeeInput, allocation_tolerance: float) -> list[ValidationIssue]:
    time_model = data.time_model
    planned = time_model.planned_production_time.value
    allocated = time_model.total_allocated()
    issues: list[ValidationIssue] = []

    if allocated - planned > _TIME_EPSILON:
        issues.append(
            ValidationIssue.fatal(
                "TIME_ALLOCATION_EXCEEDS_PLANNED",
                "validation.time.allocations_exceed_planned",
                "time_model.allocations",
                allocated_seconds=allocated,
                planned_seconds=planned,
                excess_seconds=allocated - planned,
            )
        )
    elif planned - allocated > allocation_tolerance * planned + _TIME_EPSILON:
        issues.append(
            ValidationIssue.warning(
                "TIME_ALLOCATION_GAP",
                "validation.time.planned_time_partly_unallocated",
                "time_model.allocations",
                unallocated_seconds=planned - allocated,
                planned_seconds=planned,
                tolerance=allocation_tolerance,
            )
        )

    if data.downtimes:
        downtime = sum(record.duration.value for record in data.downtimes)
        downtime_field = "downtimes"
    else:
        downtime = time_model.non_running_time()
        downtime_field = "time_model.allocations"
    if downtime - planned > _TIME_EPSILON:
        issues.append(
            ValidationIssue.fatal(
                "DOWNTIME_EXCEEDS_PLANNED",
                "validation.downtime.exceeds_planned_time",
                downtime_field,
                downtime_seconds=downtime,
                planned_seconds=planned,
            )
        )
    elif planned > 0 and downtime > DOWNTIME_SHARE_WARNING * planned:
        issues.append(
            ValidationIssue.warning(
                "HIGH_DOWNTIME_SHARE",
                "validation.downtime.dominates_planned_time",
                downtime_field,
                downtime_seconds=downtime,
                planned_seconds=planned,
                downtime_share=safe_divide(downtime, planned),
            )
        )

    all_time = time_model.all_time
    if all_time is not None:
        if planned - all_time.value > _TIME_EPSILON:
            issues.append(
                ValidationIssue.fatal(
                    "ALL_TIME_BELOW_PLANNED",
                    "validation.teep.calendar_time_below_planned",
                    "time_model.all_time",
                    all_time_seconds=all_time.value,
                    planned_seconds=planned,
                )
            )
        else:
            utilization = safe_divide(planned, all_time.value)
            if utilization < UTILIZATION_FACTOR_INFO:
                issues.append(
                    ValidationIssue.info(
                        "LOW_UTILIZATION_FACTOR",
                        "validation.teep.utilization_factor_low",
                        "time_model.all_time",
                        utilization=utilization,
                        planned_seconds=planned,
                        all_time_seconds=all_time.value,
                    )
                )
    return issues


def _cycle_time_issues(data: OeeInput) -> list[ValidationIssue]:
    ideal = data.cycle_time.ideal_cycle_time.value
    issues: list[ValidationIssue] = []
    if ideal <= 0:
        # Reachable only through unvalidated construction (model_construct).
        issues.append(
            ValidationIssue.fatal(
                "IDEAL_CYCLE_TIME_NOT_POSITIVE",
                "validation.cycle_time.ideal_not_positive",
                "cycle_time.ideal_cycle_time",
                ideal_cycle_time=ideal,
            )
        )
        return issues
    if ideal < IDEAL_CYCLE_TIME_MIN:
        issues.append(
            ValidationIssue.warning(
                "IDEAL_CYCLE_TIME_VERY_SHORT",
                "validation.cycle_time.ideal_below_numeric_band",
                "cycle_time.ideal_cycle_time",
                ideal_cycle_time=ideal,
                band_min=IDEAL_CYCLE_TIME_MIN,
            )
        )
    elif ideal > IDEAL_CYCLE_TIME_MAX:
        issues.append(
            ValidationIssue.info(
                "IDEAL_CYCLE_TIME_VERY_LONG",
                "validation.cycle_time.ideal_above_numeric_band",
                "cycle_time.ideal_cycle_time",
                ideal_cycle_time=ideal,
                band_max=IDEAL_CYCLE_TIME_MAX,
            )
        )

    running = data.time_model.running_time()
    total = data.production.total_units.value
    implied = safe_divide(running, total) if total > 0 and running > 0 else None
    average = data.cycle_time.average_cycle_time
    if average is not None and implied is not None:
        divergence = safe_divide(abs(average.value - implied), implied)
        if divergence > AVERAGE_CYCLE_DIVERGENCE:
            issues.append(
                ValidationIssue.warning(
                    "AVERAGE_CYCLE_TIME_DIVERGES",
                    "validation.cycle_time.average_conflicts_with_implied",
                    "cycle_time.average_cycle_time",
                    average_cycle_time=average.value,
                    implied_cycle_time=implied,
                    divergence=divergence,
                )
            )

    # The faster of the observed and the implied rate decides.
    rates = [implied] if implied is not None else []
    if average is not None and average.value > 0:
        rates.append(average.value)
    actual = min(rates) if rates else None
    if actual is not None and actual < ideal * (1.0 - FASTER_THAN_IDEAL_MARGIN):
        issues.append(
            ValidationIssue.warning(
                "CYCLE_TIME_FASTER_THAN_IDEAL",
                "validation.cycle_time.implies_performance_above_one",
                "cycle_time.ideal_cycle_time",
                actual_cycle_time=actual,
                ideal_cycle_time=ideal,
                implied_performance=safe_divide(ideal, actual),
            )
        )
    return issues


def _loss_tree_issues(data: OeeInput) -> list[ValidationIssue]:
    """Conditions under which the loss tree must cap a node to keep its partition exact."""
    threshold = data.thresholds.micro_stoppage_threshold
    micro = sum(
        record.duration.value for record in data.downtimes if record.duration.value < threshold
    )
    running = data.time_model.running_time()
    ideal = data.cycle_time.ideal_cycle_time.value
    ideal_time = data.production.total_units.value * ideal
    speed_gap = max(running - ideal_time, 0.0)
    issues: list[ValidationIssue] = []

    if micro > 0 and micro - speed_gap > _TIME_EPSILON:
        issues.append(
            ValidationIssue.warning(
                "MICRO_STOPPAGES_EXCEED_PERFORMANCE_GAP",
                "validation.loss_tree.micro_stoppages_exceed_performance_gap",
                "downtimes",
                micro_stoppage_seconds=micro,
                performance_gap_seconds=speed_gap,
                threshold_seconds=threshold,
            )
        )

    production = data.production
    quality_time = (production.scrap_units.value + production.reworked_units.value) * ideal
    operating_time = running - speed_gap
    if quality_time - operating_time > _TIME_EPSILON:
        issues.append(
            ValidationIssue.warning(
                "QUALITY_TIME_EXCEEDS_OPERATING_TIME",
                "validation.loss_tree.quality_time_exceeds_operating_time",
                "production.reworked_units",
                quality_loss_seconds=quality_time,
                operating_seconds=operating_time,
                scrap=production.scrap_units.value,
                reworked=production.reworked_units.value,
                ideal_cycle_time=ideal,
            )
        )
    return issues


def validate(
    data: OeeInput, *, allocation_tolerance: float = ALLOCATION_TOLERANCE
) -> ValidationResult:
    """Check the internal arithmetic coherence of ``data``.

    Parameters
    ----------
    data:
        The input to check.
    allocation_tolerance:
        Relative share of planned time that may stay unallocated before a warning is raised.

    Returns
    -------
    ValidationResult
        All issues found, in a stable order (production, time, cycle time, loss tree).
    """
    issues = (
        _production_issues(data)
        + _time_issues(data, allocation_tolerance)
        + _cycle_time_issues(data)
        + _loss_tree_issues(data)
    )
    return ValidationResult(issues=tuple(issues))


__all__ = ["validate", "ALLOCATION_TOLERANCE"]
