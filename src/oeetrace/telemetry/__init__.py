"""Run telemetry helpers."""

from .jsonl import append_jsonl, read_jsonl
from .run_logger import CalculationRunLog

__all__ = ["append_jsonl", "read_jsonl", "CalculationRunLog"]
