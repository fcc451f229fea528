"""Economic impact of OEE losses, carried as three-point estimate ranges.

Every figure is an estimate: the low/central/high bounds come straight from the caller's
parameter ranges and are never collapsed into a point value.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from oeetrace.core.types import safe_divide
from oeetrace.evaluation.loss_tree import (
    AVAILABILITY_BRANCH,
    MS_PER_SECOND,
    PERFORMANCE_BRANCH,
    UNALLOCATED,
    LossTree,
)
from oeetrace.evaluation.metrics.core import CoreMetrics
from oeetrace.evaluation.metrics.extended import ExtendedMetrics
from oeetrace.validation.issues import ValidationIssue

DEFAULT_SPREAD = 0.10
WIDE_PRICE_SPREAD = 0.50
SECONDS_PER_HOUR = 3600.0
DISCLAIMER_KEY = "economics.disclaimer.estimate_only"


class EstimateRange(BaseModel):
    """Low, central and high estimate of one quantity.

    A bare number is widened by ``DEFAULT_SPREAD`` on either side; a three-element sequence is
    read as ``(low, central, high)``.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    low: float
    central: float
    high: float

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return cls._spread(float(data), DEFAULT_SPREAD)
        if isinstance(data, Sequence) and not isinstance(data, str):
            if len(data) != 3:
                raise ValueError("EstimateRange sequences need exactly (low, central, high)")
            low, central, high = data
            return {"low": low, "central": central, "high": high}
        return data

    @model_validator(mode="after")
    def _ordered(self) -> EstimateRange:
        if not self.low <= self.central <= self.high:
            raise ValueError("EstimateRange requires low <= central <= high")
        return self

    @staticmethod
    def _spread(value: float, spread: float) -> dict[str, float]:
        bounds = sorted((value * (1.0 - spread), value * (1.0 + spread)))
        return {"low": bounds[0], "central": value, "high": bounds[1]}

    @classmethod
    def from_point(cls, value: float, spread: float = DEFAULT_SPREAD) -> EstimateRange:
        return cls(**cls._spread(value, spread))

    @classmethod
    def zero(cls) -> EstimateRange:
        return cls(low=0.0, central=0.0, high=0.0)

    def scale(self, factor: float) -> EstimateRange:
        low, high = sorted((self.low * factor, self.high * factor))
        return EstimateRange(low=low, central=self.central * factor, high=high)

    def __add__(self, other: EstimateRange) -> EstimateRange:
        return EstimateRange(
            low=self.low + other.low,
            central=self.central + other.central,
            high=self.high + other.high,
        )

    @property
    def relative_spread(self) -> float:
        return safe_divide(self.high - self.low, abs(self.central))


class EconomicParameters(BaseModel):
    """Caller-supplied money figures, each a three-point range.

    Attributes
    ----------
    unit_price:
        Sale price per good unit.
    marginal_contribution:
        Contribution margin per additional unit produced.
    material_cost:
        Material cost per unit.
    labor_cost_per_hour:
        Labour cost used for rework.
    rework_hours_per_unit:
        Labour hours spent per reworked unit; the ideal cycle time is used when omitted.
    currency:
        ISO 4217 code, reported unchanged on every figure.
    """

    model_config = ConfigDict(frozen=True)

    unit_price: EstimateRange
    marginal_contribution: EstimateRange
    material_cost: EstimateRange
    labor_cost_per_hour: EstimateRange
    rework_hours_per_unit: float | None = None
    currency: str = "USD"

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        code = value.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("currency must be a three-letter code")
        return code

    @field_validator("rework_hours_per_unit")
    @classmethod
    def _hours_non_negative(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError("rework_hours_per_unit must be non-negative")
        return value


class EconomicImpact(BaseModel):
    """One estimated money figure and the ledger keys it consumed."""

    model_config = ConfigDict(frozen=True)

    description_key: str
    estimate: EstimateRange
    currency: str
    quantity: float = 0.0
    assumptions: tuple[str, ...] = ()


class EconomicAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    throughput_loss: EconomicImpact
    material_waste: EconomicImpact
    rework_cost: EconomicImpact
    opportunity_cost: EconomicImpact
    total_impact: EconomicImpact
    currency: str
    notes: tuple[ValidationIssue, ...] = ()
    disclaimer_key: str = DISCLAIMER_KEY


def _keys(*groups: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted({key for group in groups for key in group}))


def _impact(
    name: str,
    estimate: EstimateRange,
    currency: str,
    quantity: float,
    assumptions: tuple[str, ...],
) -> EconomicImpact:
    return EconomicImpact(
        description_key=f"economics.{name}",
        estimate=estimate,
        currency=currency,
        quantity=quantity,
        assumptions=assumptions,
    )


def plausibility_notes(parameters: EconomicParameters) -> list[ValidationIssue]:
    """Info-level hints about the parameters themselves; never blocking."""
    notes: list[ValidationIssue] = []
    if parameters.material_cost.central > parameters.unit_price.central:
        notes.append(
            ValidationIssue.info(
                "NEGATIVE_MARGIN",
                "economics.notes.material_exceeds_price",
                "economics.material_cost",
                material_cost=parameters.material_cost.central,
                unit_price=parameters.unit_price.central,
            )
        )
    if parameters.unit_price.relative_spread > WIDE_PRICE_SPREAD:
        notes.append(
            ValidationIssue.info(
                "WIDE_PRICE_UNCERTAINTY",
                "economics.notes.wide_price_range",
                "economics.unit_price",
                relative_spread=parameters.unit_price.relative_spread,
                threshold=WIDE_PRICE_SPREAD,
            )
        )
    return notes


def analyze_economics(
    loss_tree: LossTree,
    metrics: CoreMetrics,
    parameters: EconomicParameters,
    *,
    extended: ExtendedMetrics,
) -> EconomicAnalysis:
    """Translate losses into estimated money ranges.

    Parameters
    ----------
    loss_tree:
        Partition of planned time; the availability and performance branches and the
        unallocated node supply the lost time.
    metrics:
        Core metrics; the ideal cycle time is read from the performance formula parameters.
    parameters:
        Money ranges and currency.
    extended:
        Extended metrics; scrap and reworked counts are read from their formula parameters.

    Returns
    -------
    EconomicAnalysis
        Four impact ranges, their element-wise total, and plausibility notes.
    """
    currency = parameters.currency
    ideal = metrics.performance.formula_params.get("ideal_cycle_time", 0.0)
    availability = loss_tree.branch(AVAILABILITY_BRANCH)
    performance = loss_tree.branch(PERFORMANCE_BRANCH)

    lost_seconds = (availability.duration_ms + performance.duration_ms) / MS_PER_SECOND
    lost_units = float(math.floor(safe_divide(lost_seconds, ideal)))
    throughput = _impact(
        "throughput_loss",
        parameters.marginal_contribution.scale(lost_units),
        currency,
        lost_units,
        _keys(availability.sources, performance.sources, ["economics.marginal_contribution"]),
    )

    scrap_units = extended.scrap_rate.formula_params.get("scrap_units", 0.0)
    material = _impact(
        "material_waste",
        parameters.material_cost.scale(scrap_units),
        currency,
        scrap_units,
        _keys(extended.scrap_rate.sources, ["economics.material_cost"]),
    )

    reworked_units = extended.rework_rate.formula_params.get("reworked_units", 0.0)
    if parameters.rework_hours_per_unit is None:
        hours = safe_divide(ideal, SECONDS_PER_HOUR)
        hours_keys = ["cycle_time.ideal_cycle_time"]
    else:
        hours = parameters.rework_hours_per_unit
        hours_keys = ["economics.rework_hours_per_unit"]
    per_unit = parameters.material_cost + parameters.labor_cost_per_hour.scale(hours)
    rework = _impact(
        "rework_cost",
        per_unit.scale(reworked_units),
        currency,
        reworked_units,
        _keys(
            extended.rework_rate.sources,
            ["economics.material_cost", "economics.labor_cost_per_hour"],
            hours_keys,
        ),
    )

    unallocated = loss_tree.find((UNALLOCATED,))
    unallocated_seconds = 0.0 if unallocated is None else unallocated.duration
    missed_units = float(math.floor(safe_divide(unallocated_seconds, ideal)))
    opportunity = _impact(
        "opportunity_cost",
        parameters.unit_price.scale(missed_units),
        currency,
        missed_units,
        _keys(() if unallocated is None else unallocated.sources, ["economics.unit_price"]),
    )

    parts = (throughput, material, rework, opportunity)
    total_estimate = EstimateRange.zero()
    for part in parts:
        total_estimate = total_estimate + part.estimate
    total = _impact(
        "total_impact",
        total_estimate,
        currency,
        0.0,
        _keys(*(part.assumptions for part in parts)),
    )

    return EconomicAnalysis(
        throughput_loss=throughput,
        material_waste=material,
        rework_cost=rework,
        opportunity_cost=opportunity,
        total_impact=total,
        currency=currency,
        notes=tuple(plausibility_notes(parameters)),
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
