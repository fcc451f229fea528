"""Inference rules that fill gaps in caller data with tagged values.

Every value produced here is tagged ``Inferred`` (or ``Default`` when a default fed into it) and
records the ledger keys it was derived from, so the assumption ledger can link it back to its
inputs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from oeetrace.core.types import InputValue, ValueSource, safe_divide, weakest_source

TOTAL_KEY = "production.total_units"
GOOD_KEY = "production.good_units"
SCRAP_KEY = "production.scrap_units"
REWORKED_KEY = "production.reworked_units"


def _count(raw: Any) -> InputValue[int] | None:
    if raw is None:
        return None
    return InputValue[int].model_validate(raw)


def derived_source(*values: InputValue[Any]) -> ValueSource:
    """Tag for a value computed from ``values``: the weakest of ``Inferred`` and the inputs."""
    return weakest_source([ValueSource.INFERRED, *(value.source for value in values)])


def complete_production_counts(data: Mapping[str, Any]) -> dict[str, Any]:
    """Fill a missing total or good count from the other counts.

    - missing ``total_units``: good + scrap + reworked
    - missing ``good_units``: total - scrap - reworked, floored at zero
    - missing scrap or reworked count: ``Default`` zero

    With both total and good missing there is nothing to infer from; good then defaults to zero
    and total is derived from the defaulted parts.
    """
    payload = dict(data)
    scrap = _count(payload.get("scrap_units")) or InputValue[int].default(0)
    reworked = _count(payload.get("reworked_units")) or InputValue[int].default(0)
    total = _count(payload.get("total_units"))
    good = _count(payload.get("good_units"))

    if good is None and total is not None:
        good = InputValue[int](
            value=max(total.value - scrap.value - reworked.value, 0),
            source=derived_source(total, scrap, reworked),
            derived_from=(TOTAL_KEY, SCRAP_KEY, REWORKED_KEY),
        )
    if good is None:
        good = InputValue[int].default(0)
    if total is None:
        total = InputValue[int](
            value=good.value + scrap.value + reworked.value,
            source=derived_source(good, scrap, reworked),
            derived_from=(GOOD_KEY, SCRAP_KEY, REWORKED_KEY),
        )

    payload.update(
        total_units=total, good_units=good, scrap_units=scrap, reworked_units=reworked
    )
    return payload


def infer_planned_time(window_seconds: float) -> InputValue[float]:
    """Planned production time taken from the analysis window length."""
    return InputValue[float].inferred(float(window_seconds))


def infer_average_cycle_time(
    running_values: Sequence[tuple[str, InputValue[float]]],
    total_units: InputValue[int],
) -> InputValue[float] | None:
    """Average cycle time implied by running time over total units.

    Returns ``None`` when no units were produced, since no average exists.
    """
    if total_units.value <= 0:
        return None
    running = sum(value.value for _, value in running_values)
    return InputValue[float](
        value=safe_divide(running, total_units.value),
        source=derived_source(total_units, *(value for _, value in running_values)),
        derived_from=tuple(key for key, _ in running_values) + (TOTAL_KEY,),
    )


__all__ = [
    "derived_source",
    "complete_production_counts",
    "infer_planned_time",
    "infer_average_cycle_time",
]
