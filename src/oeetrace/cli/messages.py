"""English rendering of engine message keys for console output.

Messages state what the numbers imply or conflict with; they never tell the reader what to fix.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

MESSAGES: dict[str, str] = {
    # validation
    "validation.production.counts_do_not_reconcile": (
        "Good ({good}) + scrap ({scrap}) + reworked ({reworked}) = {parts_sum}, which conflicts "
        "with the reported total of {total} units."
    ),
    "validation.production.good_exceeds_total": (
        "Good units ({good}) exceed total units ({total}), implying a quality above 100%."
    ),
    "validation.production.running_time_without_units": (
        "{running_seconds:.0f} s of running time with zero units implies a performance of 0."
    ),
    "validation.production.scrap_share_critical": (
        "Scrap is {scrap_share:.1%} of total units, above the {limit:.0%} level at which the "
        "counts are unlikely to describe a producing shift."
    ),
    "validation.production.scrap_share_high": (
        "Scrap is {scrap_share:.1%} of total units, above {limit:.0%}."
    ),
    "validation.production.scrap_share_elevated": (
        "Scrap is {scrap_share:.1%} of total units, above {limit:.0%}."
    ),
    "validation.time.allocations_exceed_planned": (
        "Allocated time ({allocated_seconds:.0f} s) exceeds planned time "
        "({planned_seconds:.0f} s) by {excess_seconds:.0f} s."
    ),
    "validation.time.planned_time_partly_unallocated": (
        "{unallocated_seconds:.0f} s of planned time ({planned_seconds:.0f} s) carry no state "
        "allocation; they appear as unallocated time in the loss tree."
    ),
    "validation.downtime.exceeds_planned_time": (
        "Downtime ({downtime_seconds:.0f} s) exceeds planned time ({planned_seconds:.0f} s), "
        "which leaves no room for running time."
    ),
    "validation.downtime.dominates_planned_time": (
        "Downtime covers {downtime_share:.0%} of planned time."
    ),
    "validation.teep.calendar_time_below_planned": (
        "Calendar time ({all_time_seconds:.0f} s) is shorter than planned time "
        "({planned_seconds:.0f} s), implying a utilisation above 100%."
    ),
    "validation.teep.utilization_factor_low": (
        "Planned time is only {utilization:.0%} of calendar time."
    ),
    "validation.cycle_time.ideal_not_positive": (
        "An ideal cycle time of {ideal_cycle_time} s cannot produce a performance figure."
    ),
    "validation.cycle_time.ideal_below_numeric_band": (
        "An ideal cycle time of {ideal_cycle_time} s lies below {band_min} s."
    ),
    "validation.cycle_time.ideal_above_numeric_band": (
        "An ideal cycle time of {ideal_cycle_time} s lies above {band_max} s."
    ),
    "validation.cycle_time.average_conflicts_with_implied": (
        "The average cycle time ({average_cycle_time:.2f} s) differs by {divergence:.0%} from "
        "the {implied_cycle_time:.2f} s implied by running time and units."
    ),
    "validation.cycle_time.implies_performance_above_one": (
        "An actual cycle time of {actual_cycle_time:.2f} s is faster than the ideal "
        "{ideal_cycle_time:.2f} s, implying a performance of {implied_performance:.0%}."
    ),
    "validation.loss_tree.micro_stoppages_exceed_performance_gap": (
        "Micro-stoppages ({micro_stoppage_seconds:.0f} s) exceed the derived performance gap "
        "({performance_gap_seconds:.0f} s); the micro-stoppage node is capped at the gap."
    ),
    "validation.loss_tree.quality_time_exceeds_operating_time": (
        "Scrap and rework at the ideal cycle time account for {quality_loss_seconds:.0f} s, "
        "more than the {operating_seconds:.0f} s of running time left after speed losses; "
        "the quality nodes are capped at that time."
    ),
    "validation.temporal_scrap.events_differ_from_production": (
        "Scrap events total {event_units} units while the production summary reports "
        "{scrap_units}."
    ),
    # ledger
    "ledger.warning.scrap_rate_elevated": (
        "Scrap rate {scrap_rate:.1%} is above the {threshold:.0%} threshold."
    ),
    "ledger.warning.operating_share_low": (
        "Running time is {operating_share:.0%} of planned time, below {threshold:.0%}."
    ),
    "ledger.warning.speed_loss_beyond_threshold": (
        "Performance of {performance:.1%} implies a speed loss beyond {threshold:.0%}."
    ),
    "ledger.warning.short_stops_recorded": (
        "{count} stop(s) totalling {total_seconds:.0f} s are shorter than {threshold:.0f} s."
    ),
    "ledger.warning.stoppages_without_reason": (
        "{count} non-running allocation(s) carry no reason code; they are grouped by state."
    ),
    "ledger.warning.default_values_dominate": (
        "{default_count} input value(s) ({default_share:.0%}) are defaults, above "
        "{threshold:.0%}; figures depending on them carry low confidence."
    ),
    # economics
    "economics.notes.material_exceeds_price": (
        "Material cost ({material_cost}) exceeds unit price ({unit_price}), implying a "
        "negative margin."
    ),
    "economics.notes.wide_price_range": (
        "The unit price range spans {relative_spread:.0%} of its central value."
    ),
    "economics.disclaimer.estimate_only": (
        "Figures are estimates derived from the supplied ranges, not accounting values."
    ),
    "economics.throughput_loss": "Throughput loss",
    "economics.material_waste": "Material waste",
    "economics.rework_cost": "Rework cost",
    "economics.opportunity_cost": "Opportunity cost",
    "economics.total_impact": "Total impact",
    # metrics
    "metrics.availability": "Availability",
    "metrics.performance": "Performance",
    "metrics.quality": "Quality",
    "metrics.oee": "OEE",
    "metrics.teep": "TEEP",
    "metrics.utilization": "Utilisation",
    "metrics.mtbf": "MTBF",
    "metrics.mttr": "MTTR",
    "metrics.scrap_rate": "Scrap rate",
    "metrics.rework_rate": "Rework rate",
    "metrics.net_operating_time": "Net operating time",
    # sensitivity
    "sensitivity.planned_time": "Planned time",
    "sensitivity.downtime": "Downtime",
    "sensitivity.cycle_time": "Actual cycle time",
    "sensitivity.ideal_cycle_time": "Ideal cycle time",
    "sensitivity.production_count": "Production count",
    "sensitivity.good_units": "Good units",
    "sensitivity.scrap_units": "Scrap units",
    # loss tree
    "loss_tree.planned_time": "Planned time",
    "loss_tree.availability_losses": "Availability losses",
    "loss_tree.performance_losses": "Performance losses",
    "loss_tree.quality_losses": "Quality losses",
    "loss_tree.unallocated_time": "Unallocated time",
    "loss_tree.valuable_operating_time": "Valuable operating time",
    "loss_tree.micro_stoppages": "Micro-stoppages",
    "loss_tree.speed_loss": "Speed loss",
    "loss_tree.scrap_time": "Scrap time",
    "loss_tree.rework_time": "Rework time",
    "loss_tree.unspecified": "Unspecified",
    # aggregation
    "aggregation.use_case.weighted_by_planned_time": "Parallel machines of unequal schedules",
    "aggregation.use_case.worst_performer": "Line limited by its bottleneck",
    "aggregation.use_case.multiplicative": "Strictly serial line",
    "aggregation.recommendation.serial_line": (
        "Every machine has a distinct line position, which describes a serial line."
    ),
    "aggregation.recommendation.dominant_machine": (
        "One machine holds more than half of the planned time, so it bounds the system."
    ),
    "aggregation.recommendation.balanced": (
        "Planned time is spread across machines without a serial order."
    ),
    "aggregation.action.bottleneck_below_threshold": (
        "The lowest-OEE machine sits below the 70% reference level."
    ),
    "aggregation.action.review_availability_losses": (
        "Availability is the smallest component of the bottleneck machine."
    ),
    "aggregation.action.review_performance_losses": (
        "Performance is the smallest component of the bottleneck machine."
    ),
    "aggregation.action.review_quality_losses": (
        "Quality is the smallest component of the bottleneck machine."
    ),
    "aggregation.action.several_machines_below_threshold": (
        "Several machines sit below the 70% reference level."
    ),
}


def render(key: str, params: Mapping[str, Any] | None = None) -> str:
    """Render ``key`` with ``params``; unknown keys fall back to the key and raw parameters."""
    params = dict(params or {})
    template = MESSAGES.get(key)
    if template is None:
        if not params:
            return key
        details = ", ".join(f"{name}={value}" for name, value in sorted(params.items()))
        return f"{key} ({details})"
    return template.format(**params)


def label(key: str) -> str:
    """Display label for a category or metric key; reason-code segments pass through."""
    if key.startswith("state."):
        return key.split(".", 1)[1].replace("_", " ").title()
    return MESSAGES.get(key, key)


__all__ = ["MESSAGES", "render", "label"]
