"""Split timestamped scrap events into startup and steady-state phases."""

from __future__ import annotations

from collections import deque

from pydantic import BaseModel, ConfigDict

from oeetrace.core.types import safe_divide
from oeetrace.scenario.contract.models import (
    AnalysisWindow,
    OeeInput,
    ScrapEvent,
    StartupWindowConfig,
    TemporalScrapData,
)
from oeetrace.validation.issues import ValidationIssue

FIXED_DURATION = "fixed_duration"
PERCENTAGE_OF_TOTAL = "percentage_of_total"
DYNAMIC_THRESHOLD = "dynamic_threshold"


class TemporalScrapAnalysis(BaseModel):
    """Startup versus steady-state scrap for one analysis window.

    Attributes
    ----------
    startup_window_seconds:
        Length of the startup phase measured from the window start.
    window_criterion:
        Criterion that produced the shortest startup window.
    startup_scrap_units, steady_state_scrap_units:
        Units scrapped in each phase.
    startup_share:
        Startup units as a 0-1 fraction of all event units.
    startup_time_loss, steady_state_time_loss:
        Time-equivalent of each phase's scrap (units x ideal cycle time, seconds).
    ignored_event_count:
        Events outside the analysis window.
    reconciles_with_production:
        Whether the in-window event units equal the production scrap count.
    """

    model_config = ConfigDict(frozen=True)

    startup_window_seconds: float
    window_criterion: str
    startup_scrap_units: int
    steady_state_scrap_units: int
    total_event_units: int
    startup_share: float
    startup_time_loss: float
    steady_state_time_loss: float
    startup_event_count: int
    steady_state_event_count: int
    ignored_event_count: int = 0
    expected_scrap_units: int
    reconciles_with_production: bool
    issues: tuple[ValidationIssue, ...] = ()


def _offset(event: ScrapEvent, window: AnalysisWindow) -> float:
    return (event.timestamp - window.start).total_seconds()


def _dynamic_end(
    events: list[ScrapEvent], window: AnalysisWindow, threshold: float, size: int
) -> float:
    """Offset of the first event at which a full rolling window averages below the threshold."""
    recent: deque[int] = deque(maxlen=size)
    for event in events:
        recent.append(event.units)
        if len(recent) < size:
            continue
        if sum(recent) / len(recent) < threshold:
            return _offset(event, window)
    return window.duration_seconds


def startup_window(
    events: list[ScrapEvent], window: AnalysisWindow, config: StartupWindowConfig
) -> tuple[float, str]:
    """Return the startup length in seconds and the criterion that set it.

    Several criteria combine to the shortest window. ``events`` must be in-window and sorted.
    """
    total = window.duration_seconds
    candidates: list[tuple[float, str]] = []
    if config.fixed_duration is not None:
        candidates.append((min(config.fixed_duration, total), FIXED_DURATION))
    if config.percentage_of_total is not None:
        candidates.append((config.percentage_of_total * total, PERCENTAGE_OF_TOTAL))
    if config.dynamic_threshold is not None:
        end = _dynamic_end(events, window, config.dynamic_threshold, config.dynamic_window_events)
        candidates.append((end, DYNAMIC_THRESHOLD))
    return min(candidates, key=lambda item: item[0])


def analyze_temporal_scrap(
    data: TemporalScrapData,
    window: AnalysisWindow,
    ideal_cycle_time: float,
    expected_scrap_units: int,
) -> TemporalScrapAnalysis:
    """Split scrap events of ``data`` at the startup window boundary.

    Parameters
    ----------
    data:
        Events plus the startup window configuration.
    window:
        Analysis window; events outside it are counted as ignored.
    ideal_cycle_time:
        Seconds per unit used for the time-equivalent of scrap.
    expected_scrap_units:
        Scrap count of the production summary, checked against the event total.
    """
    in_window = sorted(
        (event for event in data.events if window.start <= event.timestamp <= window.end),
        key=lambda event: event.timestamp,
    )
    ignored = len(data.events) - len(in_window)
    boundary, criterion = startup_window(in_window, window, data.startup_window)

    startup = [event for event in in_window if _offset(event, window) < boundary]
    steady = in_window[len(startup):]
    startup_units = sum(event.units for event in startup)
    steady_units = sum(event.units for event in steady)
    total_units = startup_units + steady_units

    reconciles = total_units == expected_scrap_units
    issues: tuple[ValidationIssue, ...] = ()
    if not reconciles:
        issues = (
            ValidationIssue.info(
                "SCRAP_EVENTS_DIFFER_FROM_PRODUCTION",
                "validation.temporal_scrap.events_differ_from_production",
                "temporal_scrap.events",
                event_units=total_units,
                scrap_units=expected_scrap_units,
            ),
        )

    return TemporalScrapAnalysis(
        startup_window_seconds=boundary,
        window_criterion=criterion,
        startup_scrap_units=startup_units,
        steady_state_scrap_units=steady_units,
        total_event_units=total_units,
        startup_share=safe_divide(startup_units, total_units),
        startup_time_loss=startup_units * ideal_cycle_time,
        steady_state_time_loss=steady_units * ideal_cycle_time,
        startup_event_count=len(startup),
        steady_state_event_count=len(steady),
        ignored_event_count=ignored,
        expected_scrap_units=expected_scrap_units,
        reconciles_with_production=reconciles,
        issues=issues,
    )


def temporal_scrap_from_input(data: OeeInput) -> TemporalScrapAnalysis | None:
    """Run the split for an input carrying ``temporal_scrap`` data, else return ``None``."""
    if data.temporal_scrap is None:
        return None
    return analyze_temporal_scrap(
        data.temporal_scrap,
        data.window,
        data.cycle_time.ideal_cycle_time.value,
        data.production.scrap_units.value,
    )


__all__ = [
    "TemporalScrapAnalysis",
    "analyze_temporal_scrap",
    "temporal_scrap_from_input",
    "startup_window",
]
