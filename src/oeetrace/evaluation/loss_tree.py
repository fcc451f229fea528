"""Arithmetic partition of planned production time into loss categories.

Every node states how much planned time is attributed to a category; none states why it was
lost. Durations are held as integer milliseconds so that each node equals the exact sum of its
children. The root's children are the three loss branches, any unallocated planned time, and the
valuable operating time that balances the partition.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

import pandas as pd
from pydantic import BaseModel, ConfigDict, computed_field

from oeetrace.core.types import ValueSource, safe_divide, weakest_source
from oeetrace.evaluation.snapshot import Contribution, MeasurementSnapshot
from oeetrace.scenario.contract.models import OeeInput
from oeetrace.scenario.contract.thresholds import ThresholdConfiguration

MS_PER_SECOND = 1000

AVAILABILITY_BRANCH = "availability_losses"
PERFORMANCE_BRANCH = "performance_losses"
QUALITY_BRANCH = "quality_losses"
LOSS_BRANCHES = (AVAILABILITY_BRANCH, PERFORMANCE_BRANCH, QUALITY_BRANCH)
UNALLOCATED = "unallocated_time"
VALUABLE_OPERATING = "valuable_operating_time"
MICRO_STOPPAGES = "micro_stoppages"
SPEED_LOSS = "speed_loss"
SCRAP_TIME = "scrap_time"
REWORK_TIME = "rework_time"
UNSPECIFIED = "unspecified"


def to_milliseconds(seconds: float) -> int:
    return int(round(seconds * MS_PER_SECOND))


class LossTreeNode(BaseModel):
    """One category in the partition.

    Attributes
    ----------
    category_key, description_key:
        Localisation keys. Reason-code segments are user labels and are used verbatim.
    path:
        Segments from the root to this node; the stable identity of the node.
    duration_ms:
        Attributed time in milliseconds. ``duration`` exposes it in seconds.
    percentage_of_planned, percentage_of_parent:
        0-1 fractions. ``percentage_of_parent`` is ``None`` at the root.
    source:
        Weakest provenance among the values that fed this node.
    sources:
        Ledger keys of those values.
    """

    model_config = ConfigDict(frozen=True)

    category_key: str
    description_key: str
    path: tuple[str, ...]
    duration_ms: int
    percentage_of_planned: float
    percentage_of_parent: float | None = None
    source: ValueSource = ValueSource.EXPLICIT
    sources: tuple[str, ...] = ()
    children: tuple[LossTreeNode, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration(self) -> float:
        return safe_divide(self.duration_ms, MS_PER_SECOND)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_nodes(self) -> Iterator[LossTreeNode]:
        """Pre-order traversal starting at this node."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    def leaves(self) -> list[LossTreeNode]:
        return [node for node in self.iter_nodes() if node.is_leaf]

    def find(self, path: Sequence[str]) -> LossTreeNode | None:
        path = tuple(path)
        node = self
        for depth in range(len(self.path), len(path)):
            node = next((c for c in node.children if c.path[depth] == path[depth]), None)
            if node is None:
                return None
        return node if node.path == path else None


class LossTree(BaseModel):
    model_config = ConfigDict(frozen=True)

    root: LossTreeNode
    planned_time: float

    def branch(self, name: str) -> LossTreeNode:
        node = self.root.find((name,))
        if node is None:
            raise KeyError(name)
        return node

    def find(self, path: Sequence[str]) -> LossTreeNode | None:
        return self.root.find(path)

    def iter_nodes(self) -> Iterator[LossTreeNode]:
        return self.root.iter_nodes()

    def loss_leaves(self) -> list[LossTreeNode]:
        """Leaves of the three loss branches with a non-zero duration."""
        leaves: list[LossTreeNode] = []
        for name in LOSS_BRANCHES:
            leaves.extend(node for node in self.branch(name).leaves() if node.duration_ms > 0)
        return leaves


@dataclass(slots=True)
class _Draft:
    category_key: str
    description_key: str
    segment: str
    duration_ms: int
    source: ValueSource
    sources: tuple[str, ...]
    children: list[_Draft] = field(default_factory=list)


def _category(segment: str, description_key: str | None = None) -> tuple[str, str]:
    return f"loss_tree.{segment}", description_key or f"loss_tree.{segment}_desc"


def _derived(
    segment: str, duration_ms: int, snapshot: MeasurementSnapshot, groups: tuple[str, ...]
) -> _Draft:
    category_key, description_key = _category(segment)
    return _Draft(
        category_key,
        description_key,
        segment,
        duration_ms,
        snapshot.source(*groups),
        snapshot.keys(*groups),
    )


def _parent(segment: str, children: list[_Draft], source: ValueSource) -> _Draft:
    category_key, description_key = _category(segment)
    keys = tuple(sorted({key for child in children for key in child.sources}))
    return _Draft(
        category_key,
        description_key,
        segment,
        sum(child.duration_ms for child in children),
        source,
        keys,
        children,
    )


def _leaf(segment: str, members: Sequence[Contribution]) -> _Draft:
    if segment.startswith("state."):
        category_key, description_key = segment, "loss_tree.machine_state"
    elif segment == UNSPECIFIED:
        category_key, description_key = _category(UNSPECIFIED)
    else:
        category_key, description_key = segment, "loss_tree.reason_code"
    return _Draft(
        category_key,
        description_key,
        segment,
        sum(to_milliseconds(m.duration) for m in members),
        weakest_source(m.source for m in members),
        tuple(sorted({m.key for m in members})),
    )


def _reason_children(contributions: Sequence[Contribution], depth: int) -> list[_Draft]:
    """Group contributions by their path segment at ``depth`` and recurse."""
    groups: dict[str, list[Contribution]] = {}
    for contribution in contributions:
        groups.setdefault(contribution.path[depth], []).append(contribution)

    drafts: list[_Draft] = []
    for segment, members in groups.items():
        deeper = [m for m in members if len(m.path) > depth + 1]
        if not deeper:
            drafts.append(_leaf(segment, members))
            continue
        children = _reason_children(deeper, depth + 1)
        ending = [m for m in members if len(m.path) == depth + 1]
        if ending:
            children.append(_leaf(UNSPECIFIED, ending))
        node = _leaf(segment, members)
        node.children = children
        node.duration_ms = sum(child.duration_ms for child in children)
        drafts.append(node)
    return drafts


def _non_zero(drafts: list[_Draft]) -> list[_Draft]:
    return [draft for draft in drafts if draft.duration_ms != 0]


def _availability_branch(snapshot: MeasurementSnapshot) -> _Draft:
    children = _reason_children(snapshot.stoppages, 0)
    return _parent(AVAILABILITY_BRANCH, _non_zero(children), snapshot.source("stoppages"))


def _performance_branch(snapshot: MeasurementSnapshot, running_ms: int) -> _Draft:
    groups = ("running", "ideal", "total")
    gap_ms = max(running_ms - to_milliseconds(snapshot.ideal * snapshot.total), 0)
    micro_ms = sum(to_milliseconds(c.duration) for c in snapshot.micro_stops)

    if micro_ms > gap_ms:
        # Recorded micro-stoppages exceed the derived gap; the validator reports it.
        micro = _derived(MICRO_STOPPAGES, gap_ms, snapshot, ("micro",))
        speed = _derived(SPEED_LOSS, 0, snapshot, groups)
    else:
        micro = _parent(
            MICRO_STOPPAGES,
            _non_zero(_reason_children(snapshot.micro_stops, 0)),
            snapshot.source("micro"),
        )
        speed = _derived(SPEED_LOSS, gap_ms - micro_ms, snapshot, groups)

    children = _non_zero([micro, speed])
    branch = _derived(PERFORMANCE_BRANCH, gap_ms, snapshot, groups + ("micro",))
    branch.children = children
    return branch


def _quality_branch(snapshot: MeasurementSnapshot, available_ms: int) -> _Draft:
    # Quality time cannot exceed the running time left after the performance gap;
    # the validator reports inputs that hit the cap.
    scrap_ms = min(to_milliseconds(snapshot.scrap * snapshot.ideal), available_ms)
    rework_ms = min(to_milliseconds(snapshot.reworked * snapshot.ideal), available_ms - scrap_ms)
    scrap = _derived(SCRAP_TIME, scrap_ms, snapshot, ("scrap", "ideal"))
    rework = _derived(REWORK_TIME, rework_ms, snapshot, ("reworked", "ideal"))
    return _parent(
        QUALITY_BRANCH, _non_zero([scrap, rework]), snapshot.source("scrap", "reworked", "ideal")
    )


def _finalize(
    draft: _Draft, parent_path: tuple[str, ...], parent_ms: int | None, planned_ms: int
) -> LossTreeNode:
    path = parent_path + (draft.segment,) if parent_ms is not None else ()
    return LossTreeNode(
        category_key=draft.category_key,
        description_key=draft.description_key,
        path=path,
        duration_ms=draft.duration_ms,
        percentage_of_planned=safe_divide(draft.duration_ms, planned_ms),
        percentage_of_parent=(
            None if parent_ms is None else safe_divide(draft.duration_ms, parent_ms)
        ),
        source=draft.source,
        sources=draft.sources,
        children=tuple(
            _finalize(child, path, draft.duration_ms, planned_ms) for child in draft.children
        ),
    )


def loss_tree_from_snapshot(snapshot: MeasurementSnapshot) -> LossTree:
    """Build the partition for an already-extracted snapshot."""
    planned_ms = to_milliseconds(snapshot.planned)
    running_ms = to_milliseconds(snapshot.running)

    availability = _availability_branch(snapshot)
    performance = _performance_branch(snapshot, running_ms)
    quality = _quality_branch(snapshot, running_ms - performance.duration_ms)
    allocated_ms = running_ms + availability.duration_ms
    unallocated = _derived(
        UNALLOCATED,
        max(planned_ms - allocated_ms, 0),
        snapshot,
        ("planned", "running", "stoppages"),
    )
    # Running time not attributed to a speed or quality loss; never negative.
    valuable = _derived(
        VALUABLE_OPERATING,
        running_ms - performance.duration_ms - quality.duration_ms,
        snapshot,
        ("planned", "running", "stoppages", "ideal", "total", "scrap", "reworked", "micro"),
    )

    children = [availability, performance, quality] + _non_zero([unallocated, valuable])
    root = _Draft(
        "loss_tree.planned_time",
        "loss_tree.planned_time_desc",
        "planned_time",
        sum(child.duration_ms for child in children),
        snapshot.source("planned"),
        snapshot.keys("planned"),
        children,
    )
    return LossTree(root=_finalize(root, (), None, planned_ms), planned_time=snapshot.planned)


def build_loss_tree(data: OeeInput, thresholds: ThresholdConfiguration | None = None) -> LossTree:
    """Partition planned production time of ``data`` into loss categories.

    Parameters
    ----------
    data:
        Calculation input.
    thresholds:
        Categorisation thresholds; defaults to ``data.thresholds``. Only the micro-stoppage
        threshold affects the tree.

    Returns
    -------
    LossTree
        Root equal to planned time, or to the allocated time when allocations exceed planned
        time; every node equals the exact sum of its children and none is negative.
    """
    config = thresholds or data.thresholds
    snapshot = MeasurementSnapshot.from_input(data, config.micro_stoppage_threshold)
    return loss_tree_from_snapshot(snapshot)


def loss_tree_dataframe(tree: LossTree) -> pd.DataFrame:
    """Flatten a loss tree into one row per node (pre-order)."""
    rows = [
        {
            "path": " > ".join(node.path),
            "depth": len(node.path),
            "category_key": node.category_key,
            "duration_seconds": node.duration,
            "percentage_of_planned": node.percentage_of_planned,
            "percentage_of_parent": node.percentage_of_parent,
            "source": node.source.value,
            "is_leaf": node.is_leaf,
        }
        for node in tree.iter_nodes()
    ]
    columns = [
        "path",
        "depth",
        "category_key",
        "duration_seconds",
        "percentage_of_planned",
        "percentage_of_parent",
        "source",
        "is_leaf",
    ]
    return pd.DataFrame(rows).reindex(columns=columns)


__all__ = [
    "MS_PER_SECOND",
    "AVAILABILITY_BRANCH",
    "PERFORMANCE_BRANCH",
    "QUALITY_BRANCH",
    "LOSS_BRANCHES",
    "UNALLOCATED",
    "VALUABLE_OPERATING",
    "MICRO_STOPPAGES",
    "SPEED_LOSS",
    "SCRAP_TIME",
    "REWORK_TIME",
    "LossTreeNode",
    "LossTree",
    "to_milliseconds",
    "build_loss_tree",
    "loss_tree_from_snapshot",
    "loss_tree_dataframe",
]
