"""Metric, loss-tree and perturbation analyses over an ``OeeInput``."""

from .leverage import LeverageAnalysis, LeverageImpact, analyze_leverage, stability_score
from .loss_tree import LossTree, LossTreeNode, build_loss_tree, loss_tree_dataframe
from .metrics import (
    Confidence,
    CoreMetrics,
    ExtendedMetrics,
    TrackedMetric,
    compute_core_metrics,
    compute_extended_metrics,
)
from .sensitivity import SensitivityAnalysis, SensitivityResult, analyze_sensitivity
from .snapshot import MeasurementSnapshot
from .temporal_scrap import TemporalScrapAnalysis, analyze_temporal_scrap

__all__ = [
    "Confidence",
    "TrackedMetric",
    "CoreMetrics",
    "ExtendedMetrics",
    "compute_core_metrics",
    "compute_extended_metrics",
    "LossTree",
    "LossTreeNode",
    "build_loss_tree",
    "loss_tree_dataframe",
    "MeasurementSnapshot",
    "SensitivityAnalysis",
    "SensitivityResult",
    "analyze_sensitivity",
    "LeverageAnalysis",
    "LeverageImpact",
    "analyze_leverage",
    "stability_score",
    "TemporalScrapAnalysis",
    "analyze_temporal_scrap",
]
