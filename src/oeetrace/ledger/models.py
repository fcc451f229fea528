"""Assumption ledger records."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, computed_field

from oeetrace.core.types import ImpactLevel, ValueSource
from oeetrace.validation.issues import ParamValue, Severity


class AssumptionEntry(BaseModel):
    """One input value as recorded in the ledger.

    Attributes
    ----------
    assumption_key:
        Stable key, e.g. ``time_model.allocations[2].duration``.
    description_key:
        Localisation key describing the value.
    value:
        Raw value (seconds or units).
    source:
        Provenance tag of the value.
    timestamp:
        Window end of the analysis the value belongs to.
    impact:
        Fixed tier for this kind of value.
    related_assumptions:
        Keys of entries this value was derived from (back-references only).
    """

    model_config = ConfigDict(frozen=True)

    assumption_key: str
    description_key: str
    value: float
    source: ValueSource
    timestamp: datetime
    impact: ImpactLevel
    related_assumptions: tuple[str, ...] = ()


class LedgerWarning(BaseModel):
    """Advisory note; never blocks a calculation.

    ``origin`` is ``business_rule`` for ledger rules and ``validation`` for folded-in
    consistency issues.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message_key: str
    params: dict[str, ParamValue] = {}
    severity: Severity
    origin: str = "business_rule"
    related_assumptions: tuple[str, ...] = ()


class ThresholdRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    threshold_key: str
    value: float
    unit_key: str
    rationale_key: str


class SourceStatistics(BaseModel):
    """Counts per provenance tag, and the same as 0-1 shares of all entries."""

    model_config = ConfigDict(frozen=True)

    total_count: int = 0
    explicit_count: int = 0
    inferred_count: int = 0
    default_count: int = 0
    explicit_share: float = 0.0
    inferred_share: float = 0.0
    default_share: float = 0.0


class AssumptionLedger(BaseModel):
    model_config = ConfigDict(frozen=True)

    analysis_timestamp: datetime
    entries: tuple[AssumptionEntry, ...] = ()
    warnings: tuple[LedgerWarning, ...] = ()
    thresholds: tuple[ThresholdRecord, ...] = ()
    source_statistics: SourceStatistics = SourceStatistics()
    metadata: dict[str, str] = {}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def critical_assumptions(self) -> tuple[str, ...]:
        return tuple(e.assumption_key for e in self.entries if e.impact is ImpactLevel.CRITICAL)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def default_values_used(self) -> tuple[str, ...]:
        return tuple(e.assumption_key for e in self.entries if e.source is ValueSource.DEFAULT)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def high_severity_warnings(self) -> tuple[str, ...]:
        return tuple(w.code for w in self.warnings if w.severity is Severity.FATAL)

    def entry(self, key: str) -> AssumptionEntry:
        for entry in self.entries:
            if entry.assumption_key == key:
                return entry
        raise KeyError(key)


__all__ = [
    "AssumptionEntry",
    "LedgerWarning",
    "ThresholdRecord",
    "SourceStatistics",
    "AssumptionLedger",
]
