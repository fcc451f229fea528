"""Orchestrator: the entry points that compose every engine stage.

All stages are pure functions of the input. ``calculate_full`` may run the independent stages on
a thread pool; results are joined in a fixed order, so the output never depends on scheduling.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from oeetrace.aggregation import aggregate_system, compare_aggregation_methods
from oeetrace.costing.economics import EconomicParameters, analyze_economics
from oeetrace.evaluation.leverage import analyze_leverage
from oeetrace.evaluation.loss_tree import build_loss_tree
from oeetrace.evaluation.metrics.core import compute_core_metrics
from oeetrace.evaluation.metrics.extended import compute_extended_metrics
from oeetrace.evaluation.sensitivity import analyze_sensitivity, variation_fraction
from oeetrace.evaluation.temporal_scrap import temporal_scrap_from_input
from oeetrace.ledger.builder import build_ledger
from oeetrace.results import FullCalculation, OeeResult
from oeetrace.scenario.contract.models import OeeInput
from oeetrace.validation.consistency import validate


def calculate(data: OeeInput) -> OeeResult:
    """Validate ``data`` and compute metrics, loss tree and ledger.

    Validation issues never block the calculation; a best-effort result is always returned with
    them attached.
    """
    validation = validate(data)
    core = compute_core_metrics(data)
    return OeeResult(
        core_metrics=core,
        extended_metrics=compute_extended_metrics(data, core),
        loss_tree=build_loss_tree(data),
        ledger=build_ledger(data, validation),
        validation=validation,
    )


def calculate_with_economics(data: OeeInput, parameters: EconomicParameters) -> OeeResult:
    """:func:`calculate` plus the economic impact ranges."""
    result = calculate(data)
    economics = analyze_economics(
        result.loss_tree,
        result.core_metrics,
        parameters,
        extended=result.extended_metrics,
    )
    return result.model_copy(update={"economic_analysis": economics})


def _result(data: OeeInput, parameters: EconomicParameters | None) -> OeeResult:
    if parameters is None:
        return calculate(data)
    return calculate_with_economics(data, parameters)


def calculate_full(
    data: OeeInput,
    economic_parameters: EconomicParameters | None = None,
    *,
    include_sensitivity: bool = True,
    sensitivity_variation: float = 10.0,
    include_temporal_scrap: bool = True,
    max_workers: int | None = None,
) -> FullCalculation:
    """Run every stage that applies to ``data``.

    Parameters
    ----------
    data:
        Calculation input.
    economic_parameters:
        Adds the economic analysis to the result when supplied.
    include_sensitivity, sensitivity_variation:
        Run the sensitivity stage at ``±sensitivity_variation`` percent.
    include_temporal_scrap:
        Run the startup/steady-state split when the input carries scrap events.
    max_workers:
        Run the independent stages on a thread pool when greater than one.

    Raises
    ------
    OEEValueError
        If ``sensitivity_variation`` lies outside (0, 100) and sensitivity is requested.
    """
    if include_sensitivity:
        variation_fraction(sensitivity_variation)

    if max_workers is None or max_workers <= 1:
        result = _result(data, economic_parameters)
        sensitivity = (
            analyze_sensitivity(data, sensitivity_variation) if include_sensitivity else None
        )
        temporal = temporal_scrap_from_input(data) if include_temporal_scrap else None
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            result_future = executor.submit(_result, data, economic_parameters)
            sensitivity_future = (
                executor.submit(analyze_sensitivity, data, sensitivity_variation)
                if include_sensitivity
                else None
            )
            temporal_future = (
                executor.submit(temporal_scrap_from_input, data)
                if include_temporal_scrap
                else None
            )
            result = result_future.result()
            sensitivity = None if sensitivity_future is None else sensitivity_future.result()
            temporal = None if temporal_future is None else temporal_future.result()

    return FullCalculation(
        result=result,
        sensitivity_analysis=sensitivity,
        temporal_scrap_analysis=temporal,
    )


__all__ = [
    "calculate",
    "calculate_with_economics",
    "calculate_full",
    "analyze_sensitivity",
    "analyze_leverage",
    "aggregate_system",
    "compare_aggregation_methods",
]
