"""Mathematical-consistency validation of OEE inputs."""

from .consistency import ALLOCATION_TOLERANCE, validate
from .issues import Severity, ValidationIssue, ValidationResult

__all__ = ["validate", "ALLOCATION_TOLERANCE", "Severity", "ValidationIssue", "ValidationResult"]
