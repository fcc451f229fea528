"""Assumption ledger: the audit trail of every input value."""

from .builder import build_ledger, impact_for
from .models import (
    AssumptionEntry,
    AssumptionLedger,
    LedgerWarning,
    SourceStatistics,
    ThresholdRecord,
)

__all__ = [
    "build_ledger",
    "impact_for",
    "AssumptionEntry",
    "AssumptionLedger",
    "LedgerWarning",
    "SourceStatistics",
    "ThresholdRecord",
]
