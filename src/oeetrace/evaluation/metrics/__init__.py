"""Core and extended OEE metrics."""

from .core import CoreMetrics, OeeComponents, compute_core_metrics, oee_components
from .extended import ExtendedMetrics, compute_extended_metrics
from .tracked import Confidence, TrackedMetric

__all__ = [
    "Confidence",
    "TrackedMetric",
    "CoreMetrics",
    "OeeComponents",
    "ExtendedMetrics",
    "oee_components",
    "compute_core_metrics",
    "compute_extended_metrics",
]
