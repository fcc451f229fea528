"""Immutable numeric view of an input shared by every recomputation.

The metrics engine, the loss-tree builder and the perturbation analyses all read from a
:class:`MeasurementSnapshot`, so a perturbed snapshot is recomputed through exactly the same
formulas as the baseline.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

from oeetrace.core.types import ValueSource, safe_divide, weakest_source
from oeetrace.scenario.contract.models import OeeInput


@dataclass(frozen=True, slots=True)
class Contribution:
    """A duration that feeds a reason-grouped branch of the loss tree.

    Attributes
    ----------
    path:
        Reason-code path, or the machine-state key when no reason was recorded.
    duration:
        Seconds.
    source:
        Provenance of the underlying ``InputValue``.
    key:
        Ledger key of the underlying ``InputValue``.
    """

    path: tuple[str, ...]
    duration: float
    source: ValueSource
    key: str


@dataclass(frozen=True, slots=True)
class MeasurementSnapshot:
    """Plain floats extracted from an :class:`OeeInput`, plus provenance per input group.

    ``groups`` maps a group name (``planned``, ``running``, ``stoppages``, ``ideal``, ``total``,
    ``good``, ``scrap``, ``reworked``, ``all_time``, ``average``, ``failures``, ``micro``) to the
    ledger keys it covers; ``sources`` maps the same names to the weakest provenance among them.
    """

    planned: float
    running: float
    ideal: float
    total: float
    good: float
    scrap: float
    reworked: float
    all_time: float | None = None
    average: float | None = None
    stoppages: tuple[Contribution, ...] = ()
    micro_stops: tuple[Contribution, ...] = ()
    groups: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    sources: Mapping[str, ValueSource] = field(default_factory=dict)

    @classmethod
    def from_input(
        cls, data: OeeInput, micro_stoppage_threshold: float | None = None
    ) -> MeasurementSnapshot:
        threshold = (
            data.thresholds.micro_stoppage_threshold
            if micro_stoppage_threshold is None
            else micro_stoppage_threshold
        )
        groups: dict[str, list[str]] = {name: [] for name in _GROUP_NAMES}
        sources: dict[str, list[ValueSource]] = {name: [] for name in _GROUP_NAMES}

        def track(group: str, key: str, source: ValueSource) -> None:
            groups[group].append(key)
            sources[group].append(source)

        time_model = data.time_model
        planned = time_model.planned_production_time
        track("planned", "time_model.planned_production_time", planned.source)
        if time_model.all_time is not None:
            track("all_time", "time_model.all_time", time_model.all_time.source)

        running = 0.0
        stoppages: list[Contribution] = []
        for index, allocation in enumerate(time_model.allocations):
            key = f"time_model.allocations[{index}].duration"
            if allocation.is_running:
                running += allocation.duration.value
                track("running", key, allocation.duration.source)
                continue
            if allocation.reason is not None:
                path = allocation.reason.path
            else:
                path = (allocation.state.translation_key,)
            duration = allocation.duration
            stoppages.append(Contribution(path, duration.value, duration.source, key))
            track("stoppages", key, allocation.duration.source)

        production = data.production
        for group, name in (
            ("total", "total_units"),
            ("good", "good_units"),
            ("scrap", "scrap_units"),
            ("reworked", "reworked_units"),
        ):
            track(group, f"production.{name}", getattr(production, name).source)

        cycle = data.cycle_time
        track("ideal", "cycle_time.ideal_cycle_time", cycle.ideal_cycle_time.source)
        if cycle.average_cycle_time is not None:
            track("average", "cycle_time.average_cycle_time", cycle.average_cycle_time.source)

        micro: list[Contribution] = []
        for index, record in enumerate(data.downtimes):
            key = f"downtimes[{index}].duration"
            if record.reason.is_failure:
                track("failures", key, record.duration.source)
            if record.duration.value < threshold:
                duration = record.duration
                micro.append(Contribution(record.reason.path, duration.value, duration.source, key))
                track("micro", key, record.duration.source)

        return cls(
            planned=planned.value,
            running=running,
            ideal=cycle.ideal_cycle_time.value,
            total=float(production.total_units.value),
            good=float(production.good_units.value),
            scrap=float(production.scrap_units.value),
            reworked=float(production.reworked_units.value),
            all_time=None if time_model.all_time is None else time_model.all_time.value,
            average=None if cycle.average_cycle_time is None else cycle.average_cycle_time.value,
            stoppages=tuple(stoppages),
            micro_stops=tuple(micro),
            groups={name: tuple(keys) for name, keys in groups.items()},
            sources={name: weakest_source(values) for name, values in sources.items()},
        )

    @property
    def stoppage_time(self) -> float:
        return sum(c.duration for c in self.stoppages)

    @property
    def allocated(self) -> float:
        return self.running + self.stoppage_time

    @property
    def actual_cycle_time(self) -> float | None:
        """Observed average when supplied, else running time per unit (``None`` without units)."""
        if self.average is not None and self.average > 0:
            return self.average
        if self.total > 0 and self.running > 0:
            return safe_divide(self.running, self.total)
        return None

    def keys(self, *names: str) -> tuple[str, ...]:
        """Sorted, de-duplicated ledger keys of the named groups."""
        return tuple(sorted({key for name in names for key in self.groups.get(name, ())}))

    def source(self, *names: str) -> ValueSource:
        """Weakest provenance across the named groups, ignoring empty groups."""
        return weakest_source(self.sources[name] for name in names if self.groups.get(name))

    def with_counts(
        self, total: float, good: float, scrap: float, reworked: float
    ) -> MeasurementSnapshot:
        return replace(
            self,
            total=max(total, 0.0),
            good=max(good, 0.0),
            scrap=max(scrap, 0.0),
            reworked=max(reworked, 0.0),
        )

    def scale_counts(self, factor: float) -> MeasurementSnapshot:
        return self.with_counts(
            self.total * factor, self.good * factor, self.scrap * factor, self.reworked * factor
        )


_GROUP_NAMES = (
    "planned",
    "all_time",
    "running",
    "stoppages",
    "total",
    "good",
    "scrap",
    "reworked",
    "ideal",
    "average",
    "failures",
    "micro",
)


def union_keys(key_sets: Iterable[Iterable[str]]) -> tuple[str, ...]:
    return tuple(sorted({key for keys in key_sets for key in keys}))


__all__ = ["Contribution", "MeasurementSnapshot", "union_keys"]
