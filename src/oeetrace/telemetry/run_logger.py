"""One JSONL run record per ``calculate`` invocation."""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from .jsonl import append_jsonl


@dataclass(slots=True)
class CalculationRunLog:
    """Context manager that appends a run record to ``log_path`` when the block exits.

    The record is written once, whether the block completes or raises; an exception marks the
    run as ``error`` and still propagates. Outcome fields stay empty unless
    :meth:`record_result` was called inside the block.
    """

    log_path: Path
    command: str
    machine_id: str | None = None
    config: Mapping[str, Any] = field(default_factory=dict)
    run_id: str = field(default_factory=lambda: uuid4().hex, init=False)
    _outcome: dict[str, Any] = field(default_factory=dict, init=False)
    _started: float | None = field(default=None, init=False)

    def __enter__(self) -> CalculationRunLog:
        self._started = time.perf_counter()
        return self

    def record_result(
        self,
        *,
        metrics: Mapping[str, float],
        validation: Mapping[str, int],
        artifacts: Iterable[str] = (),
    ) -> None:
        self._outcome = {
            "metrics": dict(metrics),
            "validation": dict(validation),
            "artifacts": [str(path) for path in artifacts],
        }

    def __exit__(self, exc_type, exc, tb) -> None:
        seconds = 0.0 if self._started is None else time.perf_counter() - self._started
        append_jsonl(
            self.log_path,
            {
                "record_type": "run",
                "run_id": self.run_id,
                "command": self.command,
                "machine_id": self.machine_id,
                "status": "ok" if exc is None else "error",
                "metrics": self._outcome.get("metrics", {}),
                "validation": self._outcome.get("validation", {}),
                "artifacts": self._outcome.get("artifacts", []),
                "config": dict(self.config),
                "error": None if exc is None else repr(exc),
                "finished_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
                "duration_seconds": round(seconds, 3),
            },
        )


__all__ = ["CalculationRunLog"]
