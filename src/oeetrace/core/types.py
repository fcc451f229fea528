"""Provenance-tagged values and numeric helpers shared by every engine stage."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator

T = TypeVar("T")


class ValueSource(str, Enum):
    """Where a value came from, ordered from most to least trusted."""

    EXPLICIT = "explicit"
    INFERRED = "inferred"
    DEFAULT = "default"

    @property
    def rank(self) -> int:
        """Trust rank (0 = strongest)."""
        return _SOURCE_RANK[self]


_SOURCE_RANK = {
    ValueSource.EXPLICIT: 0,
    ValueSource.INFERRED: 1,
    ValueSource.DEFAULT: 2,
}


class ImpactLevel(str, Enum):
    """Tier describing how strongly a value (or perturbation) moves the outputs."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class InputValue(BaseModel, Generic[T]):
    """A scalar wrapped with its provenance tag.

    Attributes
    ----------
    value:
        The raw value (seconds for durations, units for counts).
    source:
        Provenance tag. Immutable once the value is constructed.
    derived_from:
        Ledger keys of the values this one was inferred from. Empty for explicit values.

    Notes
    -----
    A bare scalar is accepted wherever an ``InputValue`` is expected and is read as
    :attr:`ValueSource.EXPLICIT`, so YAML inputs can write ``planned_production_time: 28800``.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    value: T
    source: ValueSource = ValueSource.EXPLICIT
    derived_from: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _coerce_payload(cls, data: Any) -> Any:
        if isinstance(data, InputValue):
            return data.model_dump()
        if isinstance(data, Mapping) and "value" in data:
            return data
        return {"value": data}

    @classmethod
    def explicit(cls, value: T) -> InputValue[T]:
        return cls(value=value, source=ValueSource.EXPLICIT)

    @classmethod
    def inferred(cls, value: T, derived_from: Iterable[str] = ()) -> InputValue[T]:
        return cls(value=value, source=ValueSource.INFERRED, derived_from=tuple(derived_from))

    @classmethod
    def default(cls, value: T) -> InputValue[T]:
        return cls(value=value, source=ValueSource.DEFAULT)

    @property
    def is_explicit(self) -> bool:
        return self.source is ValueSource.EXPLICIT


def weakest_source(sources: Iterable[ValueSource]) -> ValueSource:
    """Return the least trusted tag in ``sources`` (``EXPLICIT`` when empty)."""
    weakest = ValueSource.EXPLICIT
    for source in sources:
        if source.rank > weakest.rank:
            weakest = source
    return weakest


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning ``default`` for a zero denominator or a non-finite result."""
    if denominator == 0:
        return default
    result = numerator / denominator
    if not math.isfinite(result):
        return default
    return result


__all__ = [
    "ValueSource",
    "ImpactLevel",
    "InputValue",
    "weakest_source",
    "safe_divide",
]
