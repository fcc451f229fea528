"""Common oeetrace-specific exceptions."""


class OEEValueError(ValueError):
    """Raised when an input cannot be calculated at all (structural error)."""


__all__ = ["OEEValueError"]
