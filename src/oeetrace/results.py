"""Response structures returned by the engine entry points."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from oeetrace.costing.economics import EconomicAnalysis
from oeetrace.evaluation.loss_tree import LossTree
from oeetrace.evaluation.metrics.core import CoreMetrics
from oeetrace.evaluation.metrics.extended import ExtendedMetrics
from oeetrace.evaluation.sensitivity import SensitivityAnalysis
from oeetrace.evaluation.temporal_scrap import TemporalScrapAnalysis
from oeetrace.ledger.models import AssumptionLedger
from oeetrace.validation.issues import ValidationResult


class OeeResult(BaseModel):
    """Complete, self-contained output of one calculation.

    Holds no reference back to the input; everything needed to explain a figure is carried in
    the metrics' formula parameters, the tree's sources and the ledger.
    """

    model_config = ConfigDict(frozen=True)

    core_metrics: CoreMetrics
    extended_metrics: ExtendedMetrics
    loss_tree: LossTree
    economic_analysis: EconomicAnalysis | None = None
    ledger: AssumptionLedger
    validation: ValidationResult

    def headline(self) -> dict[str, float]:
        """Core ratios keyed by name, for telemetry and summaries."""
        core = self.core_metrics
        return {
            "oee": core.oee.value,
            "availability": core.availability.value,
            "performance": core.performance.value,
            "quality": core.quality.value,
        }


class FullCalculation(BaseModel):
    model_config = ConfigDict(frozen=True)

    result: OeeResult
    sensitivity_analysis: SensitivityAnalysis | None = None
    temporal_scrap_analysis: TemporalScrapAnalysis | None = None


__all__ = ["OeeResult", "FullCalculation"]
