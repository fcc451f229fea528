"""Tracked metric container: a value plus everything needed to explain it."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict

from oeetrace.core.types import ValueSource, weakest_source

UNIT_FRACTION = "units.fraction"
UNIT_SECONDS = "units.seconds"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_source(cls, source: ValueSource) -> Confidence:
        """High only for all-explicit inputs, Low once any default is involved."""
        return _CONFIDENCE_BY_SOURCE[source]

    @classmethod
    def from_sources(cls, sources: Iterable[ValueSource]) -> Confidence:
        return cls.from_source(weakest_source(sources))

    @classmethod
    def lowest(cls, confidences: Iterable[Confidence]) -> Confidence:
        order = [cls.HIGH, cls.MEDIUM, cls.LOW]
        return max(confidences, key=order.index, default=cls.HIGH)


_CONFIDENCE_BY_SOURCE = {
    ValueSource.EXPLICIT: Confidence.HIGH,
    ValueSource.INFERRED: Confidence.MEDIUM,
    ValueSource.DEFAULT: Confidence.LOW,
}


class TrackedMetric(BaseModel):
    """A computed figure with its formula, substituted parameters and input trust.

    Attributes
    ----------
    name_key:
        Localisation key of the metric name, e.g. ``metrics.availability``.
    value:
        The figure itself. Ratios are 0-1 fractions; times are seconds.
    unit_key:
        ``units.fraction`` or ``units.seconds``.
    formula_key:
        Localisation key of the formula, e.g. ``formulas.availability``.
    formula_params:
        Concrete values substituted into the formula.
    confidence:
        Derived from the provenance of every input value consumed.
    sources:
        Ledger keys of those input values.
    """

    model_config = ConfigDict(frozen=True)

    name_key: str
    value: float
    unit_key: str
    formula_key: str
    formula_params: dict[str, float] = {}
    confidence: Confidence = Confidence.HIGH
    sources: tuple[str, ...] = ()


__all__ = ["Confidence", "TrackedMetric", "UNIT_FRACTION", "UNIT_SECONDS"]
