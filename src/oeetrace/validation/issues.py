"""Structured validation issues (message key + parameters, never prose)."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, computed_field

ParamValue = float | int | str


class Severity(str, Enum):
    FATAL = "fatal"
    WARNING = "warning"
    INFO = "info"


class ValidationIssue(BaseModel):
    """A single coherence finding.

    Attributes
    ----------
    code:
        Machine-checkable identifier, e.g. ``PRODUCTION_COUNT_MISMATCH``.
    severity:
        ``fatal`` marks arithmetic that cannot be coherent; the calculation still proceeds.
    message_key, params:
        Localisation key and the values to substitute into it.
    field_path:
        Dotted path of the offending input field, when one applies.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    severity: Severity
    message_key: str
    params: dict[str, ParamValue] = {}
    field_path: str | None = None

    @classmethod
    def fatal(
        cls, code: str, message_key: str, field_path: str | None = None, **params: ParamValue
    ) -> ValidationIssue:
        return cls._build(Severity.FATAL, code, message_key, field_path, params)

    @classmethod
    def warning(
        cls, code: str, message_key: str, field_path: str | None = None, **params: ParamValue
    ) -> ValidationIssue:
        return cls._build(Severity.WARNING, code, message_key, field_path, params)

    @classmethod
    def info(
        cls, code: str, message_key: str, field_path: str | None = None, **params: ParamValue
    ) -> ValidationIssue:
        return cls._build(Severity.INFO, code, message_key, field_path, params)

    @classmethod
    def _build(
        cls,
        severity: Severity,
        code: str,
        message_key: str,
        field_path: str | None,
        params: dict[str, ParamValue],
    ) -> ValidationIssue:
        return cls(
            code=code,
            severity=severity,
            message_key=message_key,
            params=params,
            field_path=field_path,
        )


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    issues: tuple[ValidationIssue, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not self.has_fatal_errors

    @property
    def has_fatal_errors(self) -> bool:
        return any(issue.severity is Severity.FATAL for issue in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(issue.severity is Severity.WARNING for issue in self.issues)

    def codes(self) -> list[str]:
        return [issue.code for issue in self.issues]

    def by_severity(self, severity: Severity) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity is severity]

    def merge(self, other: ValidationResult) -> ValidationResult:
        return ValidationResult(issues=self.issues + other.issues)


__all__ = ["Severity", "ValidationIssue", "ValidationResult", "ParamValue"]
