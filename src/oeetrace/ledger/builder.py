"""Build the assumption ledger: every input value, its trust, and advisory business rules."""

from __future__ import annotations

from collections.abc import Sequence

from oeetrace.core.types import ImpactLevel, ValueSource, safe_divide
from oeetrace.evaluation.metrics.core import oee_components
from oeetrace.evaluation.snapshot import MeasurementSnapshot
from oeetrace.ledger.models import (
    AssumptionEntry,
    AssumptionLedger,
    LedgerWarning,
    SourceStatistics,
    ThresholdRecord,
)
from oeetrace.scenario.contract.models import (
    DowntimeRecord,
    InputField,
    OeeInput,
    TimeAllocation,
)
from oeetrace.validation.issues import Severity, ValidationResult

HIGH_DEFAULT_SHARE = 0.30

_IMPACT_BY_NAME = {
    "planned_production_time": ImpactLevel.CRITICAL,
    "total_units": ImpactLevel.CRITICAL,
    "good_units": ImpactLevel.CRITICAL,
    "ideal_cycle_time": ImpactLevel.HIGH,
    "scrap_units": ImpactLevel.HIGH,
    "reworked_units": ImpactLevel.MEDIUM,
    "average_cycle_time": ImpactLevel.MEDIUM,
    "all_time": ImpactLevel.MEDIUM,
}


def impact_for(field: InputField) -> ImpactLevel:
    """Fixed impact tier for an input value."""
    if isinstance(field.owner, TimeAllocation):
        return ImpactLevel.HIGH if field.owner.is_running else ImpactLevel.MEDIUM
    if isinstance(field.owner, DowntimeRecord):
        return ImpactLevel.MEDIUM if field.owner.reason.is_failure else ImpactLevel.LOW
    return _IMPACT_BY_NAME.get(field.name, ImpactLevel.INFO)


def _entries(data: OeeInput) -> list[AssumptionEntry]:
    return [
        AssumptionEntry(
            assumption_key=field.key,
            description_key=f"ledger.assumptions.{field.name}",
            value=float(field.value.value),
            source=field.value.source,
            timestamp=data.window.end,
            impact=impact_for(field),
            related_assumptions=field.value.derived_from,
        )
        for field in data.input_fields()
    ]


def source_statistics(entries: list[AssumptionEntry]) -> SourceStatistics:
    total = len(entries)
    counts = {source: 0 for source in ValueSource}
    for entry in entries:
        counts[entry.source] += 1
    return SourceStatistics(
        total_count=total,
        explicit_count=counts[ValueSource.EXPLICIT],
        inferred_count=counts[ValueSource.INFERRED],
        default_count=counts[ValueSource.DEFAULT],
        explicit_share=safe_divide(counts[ValueSource.EXPLICIT], total),
        inferred_share=safe_divide(counts[ValueSource.INFERRED], total),
        default_share=safe_divide(counts[ValueSource.DEFAULT], total),
    )


def _threshold_records(data: OeeInput) -> list[ThresholdRecord]:
    config = data.thresholds
    records = [
        ThresholdRecord(
            threshold_key=f"thresholds.{name}",
            value=getattr(config, name),
            unit_key=unit_key,
            rationale_key=f"ledger.thresholds.{name}_rationale",
        )
        for name, unit_key in (
            ("micro_stoppage_threshold", "units.seconds"),
            ("small_stop_threshold", "units.seconds"),
            ("speed_loss_threshold", "units.fraction"),
            ("high_scrap_rate_threshold", "units.fraction"),
            ("low_utilization_threshold", "units.fraction"),
        )
    ]
    if data.temporal_scrap is not None:
        window = data.temporal_scrap.startup_window
        for name, value, unit_key in (
            ("fixed_duration", window.fixed_duration, "units.seconds"),
            ("percentage_of_total", window.percentage_of_total, "units.fraction"),
            ("dynamic_threshold", window.dynamic_threshold, "units.units"),
        ):
            if value is None:
                continue
            records.append(
                ThresholdRecord(
                    threshold_key=f"startup_window.{name}",
                    value=value,
                    unit_key=unit_key,
                    rationale_key=f"ledger.thresholds.startup_{name}_rationale",
                )
            )
    return records


def _business_rule_warnings(
    data: OeeInput, statistics: SourceStatistics
) -> list[LedgerWarning]:
    config = data.thresholds
    snapshot = MeasurementSnapshot.from_input(data)
    ratios = oee_components(snapshot)
    warnings: list[LedgerWarning] = []

    scrap_rate = safe_divide(snapshot.scrap, snapshot.total)
    if scrap_rate > config.high_scrap_rate_threshold:
        warnings.append(
            LedgerWarning(
                code="SCRAP_RATE_ELEVATED",
                message_key="ledger.warning.scrap_rate_elevated",
                params={"scrap_rate": scrap_rate, "threshold": config.high_scrap_rate_threshold},
                severity=Severity.WARNING,
                related_assumptions=snapshot.keys("scrap", "total"),
            )
        )

    if snapshot.planned > 0 and ratios.availability < config.low_utilization_threshold:
        warnings.append(
            LedgerWarning(
                code="LOW_UTILIZATION",
                message_key="ledger.warning.operating_share_low",
                params={
                    "operating_share": ratios.availability,
                    "threshold": config.low_utilization_threshold,
                },
                severity=Severity.WARNING,
                related_assumptions=snapshot.keys("planned", "running"),
            )
        )

    if snapshot.running > 0 and ratios.performance < 1.0 - config.speed_loss_threshold:
        warnings.append(
            LedgerWarning(
                code="SPEED_LOSS_BEYOND_THRESHOLD",
                message_key="ledger.warning.speed_loss_beyond_threshold",
                params={
                    "performance": ratios.performance,
                    "threshold": config.speed_loss_threshold,
                },
                severity=Severity.INFO,
                related_assumptions=snapshot.keys("running", "ideal", "total"),
            )
        )

    short_stops = [
        (f"downtimes[{index}].duration", record)
        for index, record in enumerate(data.downtimes)
        if config.micro_stoppage_threshold <= record.duration.value < config.small_stop_threshold
    ]
    if short_stops:
        warnings.append(
            LedgerWarning(
                code="SHORT_STOPS_RECORDED",
                message_key="ledger.warning.short_stops_recorded",
                params={
                    "count": len(short_stops),
                    "total_seconds": sum(record.duration.value for _, record in short_stops),
                    "threshold": config.small_stop_threshold,
                },
                severity=Severity.INFO,
                related_assumptions=tuple(key for key, _ in short_stops),
            )
        )

    unexplained = [
        f"time_model.allocations[{index}].duration"
        for index, allocation in enumerate(data.time_model.allocations)
        if not allocation.is_running and allocation.reason is None
    ]
    if unexplained:
        warnings.append(
            LedgerWarning(
                code="MISSING_REASON_CODES",
                message_key="ledger.warning.stoppages_without_reason",
                params={"count": len(unexplained)},
                severity=Severity.INFO,
                related_assumptions=tuple(unexplained),
            )
        )

    if statistics.default_share > HIGH_DEFAULT_SHARE:
        warnings.append(
            LedgerWarning(
                code="HIGH_DEFAULT_USAGE",
                message_key="ledger.warning.default_values_dominate",
                params={
                    "default_share": statistics.default_share,
                    "default_count": statistics.default_count,
                    "threshold": HIGH_DEFAULT_SHARE,
                },
                severity=Severity.WARNING,
            )
        )
    return warnings


def _related_keys(field_path: str | None, keys: Sequence[str]) -> tuple[str, ...]:
    """Ledger keys behind a validation field path; a list path expands to its items."""
    if field_path is None:
        return ()
    if field_path in keys:
        return (field_path,)
    return tuple(key for key in keys if key.startswith(f"{field_path}["))


def _validation_warnings(
    validation: ValidationResult, entries: Sequence[AssumptionEntry]
) -> list[LedgerWarning]:
    keys = [entry.assumption_key for entry in entries]
    return [
        LedgerWarning(
            code=issue.code,
            message_key=issue.message_key,
            params=dict(issue.params),
            severity=issue.severity,
            origin="validation",
            related_assumptions=_related_keys(issue.field_path, keys),
        )
        for issue in validation.issues
    ]


def _metadata(data: OeeInput) -> dict[str, str]:
    machine = data.machine
    metadata = {
        "machine_id": machine.machine_id,
        "window_start": data.window.start.isoformat(),
        "window_end": data.window.end.isoformat(),
    }
    for name in ("line_id", "product_id", "shift_id"):
        value = getattr(machine, name)
        if value is not None:
            metadata[name] = value
    return metadata


def build_ledger(data: OeeInput, validation: ValidationResult) -> AssumptionLedger:
    """Record every input value of ``data`` with its provenance and impact.

    Parameters
    ----------
    data:
        Calculation input. One entry is emitted per ``InputValue`` it contains.
    validation:
        Result of :func:`oeetrace.validation.validate`; its issues are folded in as warnings.

    Returns
    -------
    AssumptionLedger
        Entries, source statistics, threshold records, metadata, and warnings (business rules
        first, then validation issues).
    """
    entries = _entries(data)
    statistics = source_statistics(entries)
    warnings = _business_rule_warnings(data, statistics) + _validation_warnings(
        validation, entries
    )
    return AssumptionLedger(
        analysis_timestamp=data.window.end,
        entries=tuple(entries),
        warnings=tuple(warnings),
        thresholds=tuple(_threshold_records(data)),
        source_statistics=statistics,
        metadata=_metadata(data),
    )


__all__ = ["build_ledger", "impact_for", "source_statistics", "HIGH_DEFAULT_SHARE"]
