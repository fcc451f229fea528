"""Pydantic models describing one OEE analysis input."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from oeetrace.core.types import InputValue
from oeetrace.scenario.contract.builders import (
    complete_production_counts,
    infer_average_cycle_time,
    infer_planned_time,
)
from oeetrace.scenario.contract.thresholds import (
    DEFAULT_THRESHOLDS,
    ThresholdConfiguration,
    get_threshold_preset,
)

_FROZEN = ConfigDict(frozen=True, allow_inf_nan=False)


class MachineState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    SETUP = "setup"
    STARVED = "starved"
    BLOCKED = "blocked"
    MAINTENANCE = "maintenance"
    UNKNOWN = "unknown"

    @property
    def translation_key(self) -> str:
        return f"state.{self.value}"


class AnalysisWindow(BaseModel):
    """Time span covered by the shift summary.

    Attributes
    ----------
    start, end:
        Window bounds. ``end`` must not precede ``start``.
    """

    model_config = _FROZEN

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _ordered(self) -> AnalysisWindow:
        if self.end < self.start:
            raise ValueError("AnalysisWindow.end must be >= start")
        return self

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


class MachineContext(BaseModel):
    """Descriptive identifiers. Never used in any calculation."""

    model_config = _FROZEN

    machine_id: str
    line_id: str | None = None
    product_id: str | None = None
    shift_id: str | None = None

    @field_validator("machine_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("MachineContext.machine_id must be non-empty")
        return value


class ReasonCode(BaseModel):
    """Hierarchical reason path, e.g. ``("Mechanical", "Bearing Failure")``.

    Attributes
    ----------
    path:
        Ordered category segments from root to leaf. A string is split on ``">"``.
    is_failure:
        Whether the event counts as a failure for MTBF/MTTR.
    """

    model_config = _FROZEN

    path: tuple[str, ...]
    is_failure: bool = False

    @field_validator("path", mode="before")
    @classmethod
    def _split_path(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(segment.strip() for segment in value.split(">"))
        return value

    @field_validator("path")
    @classmethod
    def _segments_present(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value or any(not segment.strip() for segment in value):
            raise ValueError("ReasonCode.path needs at least one non-empty segment")
        return value

    @property
    def root(self) -> str:
        return self.path[0]

    @property
    def leaf(self) -> str:
        return self.path[-1]

    @property
    def full_path(self) -> str:
        return " > ".join(self.path)


def _non_negative(value: InputValue[Any], label: str) -> InputValue[Any]:
    if value.value < 0:
        raise ValueError(f"{label} must be non-negative")
    return value


class TimeAllocation(BaseModel):
    """A slice of planned time spent in one machine state."""

    model_config = _FROZEN

    state: MachineState
    duration: InputValue[float]
    reason: ReasonCode | None = None
    notes: str | None = None

    @field_validator("duration")
    @classmethod
    def _duration_non_negative(cls, value: InputValue[float]) -> InputValue[float]:
        return _non_negative(value, "TimeAllocation.duration")

    @property
    def is_running(self) -> bool:
        return self.state is MachineState.RUNNING


class TimeModel(BaseModel):
    """Planned time and how it was spent.

    Attributes
    ----------
    planned_production_time:
        Seconds the machine was scheduled to produce.
    allocations:
        Ordered state allocations within planned time.
    all_time:
        Calendar time (seconds) used for TEEP and utilisation. Optional.
    """

    model_config = _FROZEN

    planned_production_time: InputValue[float]
    allocations: tuple[TimeAllocation, ...] = ()
    all_time: InputValue[float] | None = None

    @field_validator("planned_production_time")
    @classmethod
    def _planned_non_negative(cls, value: InputValue[float]) -> InputValue[float]:
        return _non_negative(value, "TimeModel.planned_production_time")

    @field_validator("all_time")
    @classmethod
    def _all_time_non_negative(cls, value: InputValue[float] | None) -> InputValue[float] | None:
        if value is not None:
            _non_negative(value, "TimeModel.all_time")
        return value

    def time_in_state(self, state: MachineState) -> float:
        return sum(a.duration.value for a in self.allocations if a.state is state)

    def running_time(self) -> float:
        return self.time_in_state(MachineState.RUNNING)

    def total_allocated(self) -> float:
        return sum(a.duration.value for a in self.allocations)

    def non_running_time(self) -> float:
        return sum(a.duration.value for a in self.allocations if not a.is_running)

    def unallocated_time(self) -> float:
        return max(self.planned_production_time.value - self.total_allocated(), 0.0)


class ProductionSummary(BaseModel):
    """Unit counts for the window.

    ``good + scrap + reworked == total`` is checked by the validator, not enforced here. A missing
    total or good count is inferred from the others.
    """

    model_config = _FROZEN

    total_units: InputValue[int]
    good_units: InputValue[int]
    scrap_units: InputValue[int]
    reworked_units: InputValue[int]

    @model_validator(mode="before")
    @classmethod
    def _complete_counts(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return complete_production_counts(data)
        return data

    @field_validator("total_units", "good_units", "scrap_units", "reworked_units")
    @classmethod
    def _counts_non_negative(cls, value: InputValue[int]) -> InputValue[int]:
        return _non_negative(value, "ProductionSummary counts")

    def discrepancy(self) -> int:
        parts = self.good_units.value + self.scrap_units.value + self.reworked_units.value
        return parts - self.total_units.value

    @property
    def is_consistent(self) -> bool:
        return self.discrepancy() == 0


class CycleTimeModel(BaseModel):
    """Ideal (design) and optional observed average cycle time, in seconds per unit."""

    model_config = _FROZEN

    ideal_cycle_time: InputValue[float]
    average_cycle_time: InputValue[float] | None = None

    @field_validator("ideal_cycle_time")
    @classmethod
    def _ideal_positive(cls, value: InputValue[float]) -> InputValue[float]:
        if value.value <= 0:
            raise ValueError("CycleTimeModel.ideal_cycle_time must be > 0")
        return value

    @field_validator("average_cycle_time")
    @classmethod
    def _average_non_negative(
        cls, value: InputValue[float] | None
    ) -> InputValue[float] | None:
        if value is not None:
            _non_negative(value, "CycleTimeModel.average_cycle_time")
        return value


class DowntimeRecord(BaseModel):
    """Individual stoppage used for MTBF/MTTR and micro-stoppage attribution."""

    model_config = _FROZEN

    duration: InputValue[float]
    reason: ReasonCode
    timestamp: datetime | None = None
    notes: str | None = None

    @field_validator("duration")
    @classmethod
    def _duration_non_negative(cls, value: InputValue[float]) -> InputValue[float]:
        return _non_negative(value, "DowntimeRecord.duration")


class ScrapEvent(BaseModel):
    """A timestamped batch of scrapped units."""

    model_config = _FROZEN

    timestamp: datetime
    units: int
    reason: str | None = None
    notes: str | None = None

    @field_validator("units")
    @classmethod
    def _units_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("ScrapEvent.units must be non-negative")
        return value


class StartupWindowConfig(BaseModel):
    """How the startup phase is delimited. At least one criterion is required.

    Attributes
    ----------
    fixed_duration:
        Startup lasts this many seconds from the window start.
    percentage_of_total:
        Startup lasts this fraction (0-1] of the analysis window.
    dynamic_threshold:
        Startup ends at the first event where the rolling mean of the last
        ``dynamic_window_events`` event sizes drops below this many units.
    dynamic_window_events:
        Rolling window size for the dynamic criterion.

    When several criteria are given the shortest resulting window wins.
    """

    model_config = _FROZEN

    fixed_duration: float | None = None
    percentage_of_total: float | None = None
    dynamic_threshold: float | None = None
    dynamic_window_events: int = 10

    @field_validator("fixed_duration", "dynamic_threshold")
    @classmethod
    def _positive(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("Startup window criteria must be positive")
        return value

    @field_validator("percentage_of_total")
    @classmethod
    def _fraction(cls, value: float | None) -> float | None:
        if value is not None and not 0.0 < value <= 1.0:
            raise ValueError("percentage_of_total must lie within (0, 1]")
        return value

    @field_validator("dynamic_window_events")
    @classmethod
    def _window_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("dynamic_window_events must be >= 1")
        return value

    @model_validator(mode="after")
    def _has_criterion(self) -> StartupWindowConfig:
        if (
            self.fixed_duration is None
            and self.percentage_of_total is None
            and self.dynamic_threshold is None
        ):
            raise ValueError(
                "StartupWindowConfig needs fixed_duration, percentage_of_total or dynamic_threshold"
            )
        return self


class TemporalScrapData(BaseModel):
    model_config = _FROZEN

    events: tuple[ScrapEvent, ...] = ()
    startup_window: StartupWindowConfig


class InputField(NamedTuple):
    """One ``InputValue`` reachable from an :class:`OeeInput`, with its stable ledger key."""

    key: str
    name: str
    value: InputValue[Any]
    owner: BaseModel | None = None


class OeeInput(BaseModel):
    """Complete, immutable input of one OEE calculation.

    Attributes
    ----------
    window:
        Analysis window. Its length becomes the planned time when none is supplied.
    machine:
        Descriptive identifiers.
    time_model, production, cycle_time:
        Time allocations, unit counts and cycle times.
    downtimes:
        Optional individual stoppage records.
    thresholds:
        Categorisation thresholds; a preset name (``"strict"``) is accepted.
    temporal_scrap:
        Optional timestamped scrap events for the startup/steady-state split.
    """

    model_config = _FROZEN

    window: AnalysisWindow
    machine: MachineContext
    time_model: TimeModel
    production: ProductionSummary
    cycle_time: CycleTimeModel
    downtimes: tuple[DowntimeRecord, ...] = ()
    thresholds: ThresholdConfiguration = DEFAULT_THRESHOLDS
    temporal_scrap: TemporalScrapData | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_inferred(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        window = data.get("window")
        time_model = data.get("time_model")
        if isinstance(time_model, dict) and time_model.get("planned_production_time") is None:
            window_model = AnalysisWindow.model_validate(window)
            data["time_model"] = {
                **time_model,
                "planned_production_time": infer_planned_time(window_model.duration_seconds),
            }
        cycle_time = data.get("cycle_time")
        if isinstance(cycle_time, dict) and cycle_time.get("average_cycle_time") == "infer":
            missing = [name for name in ("time_model", "production") if data.get(name) is None]
            if missing:
                raise ValueError(
                    "average_cycle_time 'infer' needs running time and units; missing "
                    + ", ".join(missing)
                )
            tm = TimeModel.model_validate(data["time_model"])
            production = ProductionSummary.model_validate(data["production"])
            running = [
                (f"time_model.allocations[{index}].duration", allocation.duration)
                for index, allocation in enumerate(tm.allocations)
                if allocation.is_running
            ]
            data["cycle_time"] = {
                **cycle_time,
                "average_cycle_time": infer_average_cycle_time(running, production.total_units),
            }
        return data

    @field_validator("thresholds", mode="before")
    @classmethod
    def _preset_by_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return get_threshold_preset(value)
            except KeyError as exc:
                raise ValueError(str(exc)) from exc
        return value

    def input_fields(self) -> list[InputField]:
        """Every ``InputValue`` in the input, in a stable order, keyed for the ledger."""
        fields = [
            InputField(
                "time_model.planned_production_time",
                "planned_production_time",
                self.time_model.planned_production_time,
            )
        ]
        if self.time_model.all_time is not None:
            fields.append(InputField("time_model.all_time", "all_time", self.time_model.all_time))
        for index, allocation in enumerate(self.time_model.allocations):
            fields.append(
                InputField(
                    f"time_model.allocations[{index}].duration",
                    "allocation_duration",
                    allocation.duration,
                    allocation,
                )
            )
        for name in ("total_units", "good_units", "scrap_units", "reworked_units"):
            fields.append(InputField(f"production.{name}", name, getattr(self.production, name)))
        fields.append(
            InputField(
                "cycle_time.ideal_cycle_time", "ideal_cycle_time", self.cycle_time.ideal_cycle_time
            )
        )
        if self.cycle_time.average_cycle_time is not None:
            fields.append(
                InputField(
                    "cycle_time.average_cycle_time",
                    "average_cycle_time",
                    self.cycle_time.average_cycle_time,
                )
            )
        for index, record in enumerate(self.downtimes):
            fields.append(
                InputField(
                    f"downtimes[{index}].duration", "downtime_duration", record.duration, record
                )
            )
        return fields


__all__ = [
    "MachineState",
    "AnalysisWindow",
    "MachineContext",
    "ReasonCode",
    "TimeAllocation",
    "TimeModel",
    "ProductionSummary",
    "CycleTimeModel",
    "DowntimeRecord",
    "ScrapEvent",
    "StartupWindowConfig",
    "TemporalScrapData",
    "InputField",
    "OeeInput",
]
