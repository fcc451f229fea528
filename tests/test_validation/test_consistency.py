import pytest

from oeetrace.validation import Severity, validate

RUNNING_ONLY = {
    "planned_production_time": 28800,
    "allocations": [{"state": "running", "duration": 25200}],
}


def _codes(result, severity=None):
    if severity is None:
        return result.codes()
    return [issue.code for issue in result.by_severity(severity)]


def test_reference_shift_is_coherent(shift_input):
    result = validate(shift_input)
    assert result.issues == ()
    assert result.is_valid


def test_count_mismatch_is_fatal_but_reported_with_params(build_input):
    data = build_input(
        production={"total_units": 999, "good_units": 950, "scrap_units": 30, "reworked_units": 20}
    )
    result = validate(data)
    assert not result.is_valid
    issue = result.issues[0]
    assert issue.code == "PRODUCTION_COUNT_MISMATCH"
    assert issue.severity is Severity.FATAL
    assert issue.field_path == "production.total_units"
    assert issue.params["parts_sum"] == 1000
    assert issue.params["difference"] == 1


def test_downtime_records_exceeding_planned_time(build_input):
    data = build_input(
        downtimes=[
            {"duration": 20000, "reason": {"path": "Mechanical > Gearbox", "is_failure": True}},
            {"duration": 10000, "reason": {"path": "Electrical", "is_failure": True}},
        ]
    )
    result = validate(data)
    assert _codes(result, Severity.FATAL) == ["DOWNTIME_EXCEEDS_PLANNED"]
    assert result.issues[0].field_path == "downtimes"


def test_allocations_exceeding_planned_time(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [
                {"state": "running", "duration": 25200},
                {"state": "stopped", "duration": 4000, "reason": {"path": "Material"}},
            ],
        }
    )
    assert "TIME_ALLOCATION_EXCEEDS_PLANNED" in _codes(validate(data), Severity.FATAL)


def test_unallocated_gap_is_a_warning(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [{"state": "running", "duration": 27000}],
        },
        production={"total_units": 1000, "good_units": 1000, "scrap_units": 0, "reworked_units": 0},
        cycle_time={"ideal_cycle_time": 25.0},
    )
    result = validate(data)
    assert result.is_valid
    assert _codes(result) == ["TIME_ALLOCATION_GAP"]
    assert result.issues[0].params["unallocated_seconds"] == pytest.approx(1800)


def test_gap_within_tolerance_is_silent(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [{"state": "running", "duration": 28700}],
        },
        production={"total_units": 1000, "good_units": 1000, "scrap_units": 0, "reworked_units": 0},
        cycle_time={"ideal_cycle_time": 28.0},
    )
    assert validate(data).issues == ()


def test_dominant_downtime_is_a_warning(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [
                {"state": "running", "duration": 2800},
                {"state": "maintenance", "duration": 26000},
            ],
        },
        production={"total_units": 100, "good_units": 100, "scrap_units": 0, "reworked_units": 0},
        cycle_time={"ideal_cycle_time": 25.0},
    )
    assert _codes(validate(data)) == ["HIGH_DOWNTIME_SHARE"]


@pytest.mark.parametrize(
    "scrap, good, code, severity",
    [
        (600, 400, "SCRAP_SHARE_CRITICAL", Severity.FATAL),
        (250, 750, "SCRAP_SHARE_HIGH", Severity.WARNING),
        (150, 850, "SCRAP_SHARE_ELEVATED", Severity.INFO),
    ],
)
def test_scrap_share_tiers(build_input, scrap, good, code, severity):
    production = {"total_units": 1000, "good_units": good, "scrap_units": scrap}
    data = build_input(production={**production, "reworked_units": 0})
    result = validate(data)
    assert _codes(result) == [code]
    assert result.issues[0].severity is severity


def test_good_exceeding_total(build_input):
    data = build_input(
        production={"total_units": 900, "good_units": 950, "scrap_units": 0, "reworked_units": 0}
    )
    assert _codes(validate(data), Severity.FATAL) == [
        "PRODUCTION_COUNT_MISMATCH",
        "GOOD_EXCEEDS_TOTAL",
    ]


def test_zero_production_with_running_time(build_input):
    data = build_input(
        production={"total_units": 0, "good_units": 0, "scrap_units": 0, "reworked_units": 0}
    )
    assert "ZERO_PRODUCTION" in _codes(validate(data), Severity.INFO)


def test_calendar_time_checks(build_input):
    below = build_input(time_model={**RUNNING_ONLY, "all_time": 20000})
    assert "ALL_TIME_BELOW_PLANNED" in _codes(validate(below), Severity.FATAL)

    week = build_input(time_model={**RUNNING_ONLY, "all_time": 604800})
    assert "LOW_UTILIZATION_FACTOR" in _codes(validate(week), Severity.INFO)


def test_cycle_time_band_and_speed_checks(build_input):
    short = build_input(cycle_time={"ideal_cycle_time": 0.05})
    assert "IDEAL_CYCLE_TIME_VERY_SHORT" in _codes(validate(short), Severity.WARNING)

    faster = build_input(cycle_time={"ideal_cycle_time": 30.0})
    issue = next(i for i in validate(faster).issues if i.code == "CYCLE_TIME_FASTER_THAN_IDEAL")
    assert issue.params["implied_performance"] == pytest.approx(30.0 / 25.2)

    diverging = build_input(cycle_time={"ideal_cycle_time": 25.2, "average_cycle_time": 35.0})
    assert _codes(validate(diverging)) == ["AVERAGE_CYCLE_TIME_DIVERGES"]


def test_micro_stoppages_exceeding_performance_gap(build_input):
    data = build_input(downtimes=[{"duration": 10, "reason": {"path": "Minor > Jam"}}])
    result = validate(data)
    assert result.is_valid
    assert _codes(result) == ["MICRO_STOPPAGES_EXCEED_PERFORMANCE_GAP"]


def test_quality_time_beyond_running_time_is_reported(build_input):
    data = build_input(
        production={
            "total_units": 1000,
            "good_units": 100,
            "scrap_units": 0,
            "reworked_units": 900,
        },
        cycle_time={"ideal_cycle_time": 29.0, "average_cycle_time": 29.0},
    )
    result = validate(data)
    assert result.is_valid
    assert _codes(result, Severity.WARNING) == [
        "CYCLE_TIME_FASTER_THAN_IDEAL",
        "QUALITY_TIME_EXCEEDS_OPERATING_TIME",
    ]
    faster = result.issues[0]
    assert faster.params["actual_cycle_time"] == pytest.approx(25.2)
    assert faster.params["implied_performance"] == pytest.approx(29.0 / 25.2)
    quality = result.issues[1]
    assert quality.field_path == "production.reworked_units"
    assert quality.params["quality_loss_seconds"] == pytest.approx(26100)
    assert quality.params["operating_seconds"] == pytest.approx(25200)


def test_issue_order_is_stable(build_input):
    data = build_input(
        production={"total_units": 999, "good_units": 400, "scrap_units": 600, "reworked_units": 0},
        cycle_time={"ideal_cycle_time": 0.05},
    )
    first = validate(data)
    assert first == validate(data)
    assert first.codes()[:2] == ["PRODUCTION_COUNT_MISMATCH", "SCRAP_SHARE_CRITICAL"]
