"""Traceable OEE analysis: metrics, loss tree, assumption ledger and perturbation analyses."""

from .engine import (
    aggregate_system,
    analyze_leverage,
    analyze_sensitivity,
    calculate,
    calculate_full,
    calculate_with_economics,
    compare_aggregation_methods,
)
from .results import FullCalculation, OeeResult
from .scenario.contract import OeeInput

__version__ = "0.1.0"

__all__ = [
    "OeeInput",
    "OeeResult",
    "FullCalculation",
    "calculate",
    "calculate_with_economics",
    "calculate_full",
    "analyze_sensitivity",
    "analyze_leverage",
    "aggregate_system",
    "compare_aggregation_methods",
    "__version__",
]
