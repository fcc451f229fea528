"""Core utilities shared across oeetrace modules."""

from .errors import OEEValueError
from .types import ImpactLevel, InputValue, ValueSource, safe_divide, weakest_source

__all__ = [
    "OEEValueError",
    "ImpactLevel",
    "InputValue",
    "ValueSource",
    "safe_divide",
    "weakest_source",
]
