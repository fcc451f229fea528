"""Economic impact estimation."""

from .economics import (
    DISCLAIMER_KEY,
    EconomicAnalysis,
    EconomicImpact,
    EconomicParameters,
    EstimateRange,
    analyze_economics,
    plausibility_notes,
)

__all__ = [
    "EstimateRange",
    "EconomicParameters",
    "EconomicImpact",
    "EconomicAnalysis",
    "analyze_economics",
    "plausibility_notes",
    "DISCLAIMER_KEY",
]
