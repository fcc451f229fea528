import pytest
from hypothesis import given, settings, strategies as st

from oeetrace.core.types import ValueSource
from oeetrace.evaluation.loss_tree import (
    AVAILABILITY_BRANCH,
    MICRO_STOPPAGES,
    PERFORMANCE_BRANCH,
    QUALITY_BRANCH,
    REWORK_TIME,
    SCRAP_TIME,
    SPEED_LOSS,
    UNALLOCATED,
    UNSPECIFIED,
    VALUABLE_OPERATING,
    build_loss_tree,
    loss_tree_dataframe,
    to_milliseconds,
)
from oeetrace.scenario.contract import OeeInput
from oeetrace.scenario.contract.thresholds import STRICT_THRESHOLDS

STATES = ["running", "stopped", "setup", "starved", "blocked", "maintenance", "unknown"]
REASONS = [
    None,
    "Mechanical",
    "Mechanical > Bearing",
    "Mechanical > Gearbox",
    "Material > Wet > Lot",
]


def _assert_reconciles(node):
    if node.children:
        assert node.duration_ms == sum(child.duration_ms for child in node.children)
    for child in node.children:
        assert child.path[:-1] == node.path
        _assert_reconciles(child)


def _child_segments(node):
    return [child.path[-1] for child in node.children]


def test_reference_shift_partition(shift_input):
    tree = build_loss_tree(shift_input)
    assert tree.root.path == ()
    assert tree.root.duration_ms == 28_800_000
    assert tree.root.percentage_of_planned == pytest.approx(1.0)
    assert tree.root.percentage_of_parent is None
    assert _child_segments(tree.root) == [
        AVAILABILITY_BRANCH,
        PERFORMANCE_BRANCH,
        QUALITY_BRANCH,
        VALUABLE_OPERATING,
    ]

    availability = tree.branch(AVAILABILITY_BRANCH)
    assert availability.duration == pytest.approx(3600)
    assert availability.percentage_of_planned == pytest.approx(0.125)
    bearing = tree.find((AVAILABILITY_BRANCH, "Mechanical", "Bearing Failure"))
    assert bearing.duration_ms == 2_400_000
    assert bearing.is_leaf
    assert bearing.category_key == "Bearing Failure"
    assert bearing.description_key == "loss_tree.reason_code"
    assert bearing.sources == ("time_model.allocations[1].duration",)
    assert tree.find((AVAILABILITY_BRANCH, "Changeover")).duration_ms == 1_200_000

    assert tree.branch(PERFORMANCE_BRANCH).duration_ms == 0
    assert tree.branch(PERFORMANCE_BRANCH).is_leaf

    quality = tree.branch(QUALITY_BRANCH)
    assert quality.find((QUALITY_BRANCH, SCRAP_TIME)).duration_ms == 756_000
    assert quality.find((QUALITY_BRANCH, REWORK_TIME)).duration_ms == 504_000

    assert tree.branch(VALUABLE_OPERATING).duration_ms == 23_940_000
    with pytest.raises(KeyError):
        tree.branch(UNALLOCATED)
    _assert_reconciles(tree.root)


def test_percentage_of_parent_uses_the_immediate_parent(shift_input):
    tree = build_loss_tree(shift_input)
    assert tree.branch(AVAILABILITY_BRANCH).percentage_of_parent == pytest.approx(0.125)
    mechanical = tree.find((AVAILABILITY_BRANCH, "Mechanical"))
    assert mechanical.percentage_of_parent == pytest.approx(2400 / 3600)
    assert mechanical.percentage_of_planned == pytest.approx(2400 / 28800)
    bearing = tree.find((AVAILABILITY_BRANCH, "Mechanical", "Bearing Failure"))
    assert bearing.percentage_of_parent == pytest.approx(1.0)
    assert bearing.percentage_of_planned == pytest.approx(2400 / 28800)
    changeover = tree.find((AVAILABILITY_BRANCH, "Changeover"))
    assert changeover.percentage_of_parent == pytest.approx(1200 / 3600)
    assert tree.find((QUALITY_BRANCH, SCRAP_TIME)).percentage_of_parent == pytest.approx(0.6)
    assert tree.find((QUALITY_BRANCH, REWORK_TIME)).percentage_of_parent == pytest.approx(0.4)
    assert tree.branch(VALUABLE_OPERATING).percentage_of_parent == pytest.approx(23940 / 28800)


def test_quality_time_is_capped_by_the_remaining_running_time(build_input):
    data = build_input(
        production={
            "total_units": 1000,
            "good_units": 100,
            "scrap_units": 0,
            "reworked_units": 900,
        },
        cycle_time={"ideal_cycle_time": 29.0, "average_cycle_time": 29.0},
    )
    tree = build_loss_tree(data)
    assert all(node.duration_ms >= 0 for node in tree.iter_nodes())
    assert tree.root.duration_ms == 28_800_000
    assert tree.branch(PERFORMANCE_BRANCH).duration_ms == 0
    assert tree.find((QUALITY_BRANCH, REWORK_TIME)).duration_ms == 25_200_000
    assert tree.find((QUALITY_BRANCH, SCRAP_TIME)) is None
    assert tree.find((VALUABLE_OPERATING,)) is None
    _assert_reconciles(tree.root)


def test_loss_leaves_skip_empty_branches(shift_input):
    leaves = build_loss_tree(shift_input).loss_leaves()
    assert [leaf.path[-1] for leaf in leaves] == [
        "Bearing Failure",
        "Changeover",
        SCRAP_TIME,
        REWORK_TIME,
    ]


def test_micro_stoppages_split_the_performance_gap(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [
                {"state": "running", "duration": 27000},
                {"state": "setup", "duration": 1800, "reason": {"path": "Changeover"}},
            ],
        },
        production={"total_units": 1000, "good_units": 1000, "scrap_units": 0, "reworked_units": 0},
        downtimes=[
            {"duration": 20, "reason": {"path": "Minor > Jam"}},
            {"duration": 20, "reason": {"path": "Minor > Jam"}},
            {"duration": 20, "reason": {"path": "Minor > Jam"}},
            {"duration": 15, "reason": {"path": "Minor > Sensor"}},
            {"duration": 600, "reason": {"path": "Changeover"}},
        ],
    )
    tree = build_loss_tree(data)
    performance = tree.branch(PERFORMANCE_BRANCH)
    assert performance.duration_ms == 1_800_000
    assert _child_segments(performance) == [MICRO_STOPPAGES, SPEED_LOSS]

    micro = tree.find((PERFORMANCE_BRANCH, MICRO_STOPPAGES))
    assert micro.duration_ms == 75_000
    assert tree.find((PERFORMANCE_BRANCH, MICRO_STOPPAGES, "Minor", "Jam")).duration_ms == 60_000
    assert tree.find((PERFORMANCE_BRANCH, SPEED_LOSS)).duration_ms == 1_725_000
    _assert_reconciles(tree.root)

    # Under the strict preset none of the records is shorter than the micro threshold.
    strict = build_loss_tree(data, STRICT_THRESHOLDS)
    assert strict.find((PERFORMANCE_BRANCH, MICRO_STOPPAGES)) is None
    assert strict.find((PERFORMANCE_BRANCH, SPEED_LOSS)).duration_ms == 1_800_000


def test_micro_stoppages_are_capped_by_the_gap(build_input):
    data = build_input(downtimes=[{"duration": 10, "reason": {"path": "Minor > Jam"}}])
    tree = build_loss_tree(data)
    assert tree.branch(PERFORMANCE_BRANCH).duration_ms == 0
    assert tree.root.duration_ms == 28_800_000
    _assert_reconciles(tree.root)


def test_shallow_reason_becomes_unspecified_sibling(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [
                {"state": "running", "duration": 25200},
                {"state": "stopped", "duration": 1200, "reason": {"path": "Mechanical"}},
                {"state": "stopped", "duration": 2400, "reason": {"path": "Mechanical > Bearing"}},
            ],
        }
    )
    mechanical = build_loss_tree(data).find((AVAILABILITY_BRANCH, "Mechanical"))
    assert mechanical.duration_ms == 3_600_000
    assert _child_segments(mechanical) == ["Bearing", UNSPECIFIED]
    assert mechanical.children[1].duration_ms == 1_200_000


def test_missing_reason_groups_by_machine_state(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [
                {"state": "running", "duration": 25200},
                {"state": "starved", "duration": 3000},
                {"state": "starved", "duration": 600},
            ],
        }
    )
    leaf = build_loss_tree(data).find((AVAILABILITY_BRANCH, "state.starved"))
    assert leaf.duration_ms == 3_600_000
    assert leaf.category_key == "state.starved"
    assert leaf.description_key == "loss_tree.machine_state"


def test_unallocated_time_is_its_own_category(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [{"state": "running", "duration": 25200}],
        }
    )
    tree = build_loss_tree(data)
    assert tree.branch(UNALLOCATED).duration_ms == 3_600_000
    assert tree.branch(AVAILABILITY_BRANCH).duration_ms == 0
    _assert_reconciles(tree.root)


def test_node_source_is_weakest_of_its_inputs(build_input):
    data = build_input(
        production={
            "total_units": 1000,
            "good_units": 950,
            "scrap_units": {"value": 30, "source": "default"},
            "reworked_units": 20,
        }
    )
    tree = build_loss_tree(data)
    assert tree.find((QUALITY_BRANCH, SCRAP_TIME)).source is ValueSource.DEFAULT
    assert tree.find((QUALITY_BRANCH, REWORK_TIME)).source is ValueSource.EXPLICIT
    assert tree.branch(QUALITY_BRANCH).source is ValueSource.DEFAULT


def test_dataframe_has_one_row_per_node(shift_input):
    tree = build_loss_tree(shift_input)
    frame = loss_tree_dataframe(tree)
    assert list(frame.columns) == [
        "path",
        "depth",
        "category_key",
        "duration_seconds",
        "percentage_of_planned",
        "percentage_of_parent",
        "source",
        "is_leaf",
    ]
    assert len(frame) == len(list(tree.iter_nodes()))
    assert frame.iloc[0]["depth"] == 0
    assert frame.iloc[0]["duration_seconds"] == pytest.approx(28800)


allocation_strategy = st.tuples(
    st.sampled_from(STATES),
    st.floats(min_value=0, max_value=20_000, allow_nan=False, allow_infinity=False),
    st.sampled_from(REASONS),
)


@settings(max_examples=40, deadline=None)
@given(
    planned=st.floats(min_value=0, max_value=100_000, allow_nan=False, allow_infinity=False),
    allocations=st.lists(allocation_strategy, max_size=6),
    counts=st.tuples(*(st.integers(min_value=0, max_value=3_000) for _ in range(3))),
    ideal=st.floats(min_value=0.01, max_value=120, allow_nan=False, allow_infinity=False),
    micro=st.lists(
        st.floats(min_value=0, max_value=60, allow_nan=False, allow_infinity=False), max_size=4
    ),
)
def test_every_node_is_the_sum_of_its_children(planned, allocations, counts, ideal, micro):
    good, scrap, reworked = counts
    payload = {
        "window": {"start": "2024-03-04T06:00:00+00:00", "end": "2024-03-04T14:00:00+00:00"},
        "machine": {"machine_id": "m"},
        "time_model": {
            "planned_production_time": planned,
            "allocations": [
                {
                    "state": state,
                    "duration": duration,
                    "reason": None if reason is None else {"path": reason},
                }
                for state, duration, reason in allocations
            ],
        },
        "production": {"good_units": good, "scrap_units": scrap, "reworked_units": reworked},
        "cycle_time": {"ideal_cycle_time": ideal},
        "downtimes": [{"duration": d, "reason": {"path": "Minor > Jam"}} for d in micro],
    }
    tree = build_loss_tree(OeeInput.model_validate(payload))
    running = 0.0
    for state, duration, _ in allocations:
        if state == "running":
            running += duration
    allocated_ms = to_milliseconds(running) + tree.branch(AVAILABILITY_BRANCH).duration_ms
    assert tree.root.duration_ms == max(to_milliseconds(planned), allocated_ms)
    assert all(node.duration_ms >= 0 for node in tree.iter_nodes())
    _assert_reconciles(tree.root)
