from pydantic import BaseModel

from oeetrace.core.types import ImpactLevel, InputValue, ValueSource
from oeetrace.ledger import build_ledger
from oeetrace.validation import Severity, validate


def _count_input_values(model) -> int:
    """Walk a model independently of ``input_fields`` and count every wrapped value."""
    if isinstance(model, InputValue):
        return 1
    if isinstance(model, BaseModel):
        return sum(
            _count_input_values(getattr(model, name)) for name in type(model).model_fields
        )
    if isinstance(model, tuple):
        return sum(_count_input_values(item) for item in model)
    return 0


def _ledger(data):
    return build_ledger(data, validate(data))


def _warning_codes(ledger, origin=None):
    return [w.code for w in ledger.warnings if origin is None or w.origin == origin]


def test_every_input_value_has_exactly_one_entry(shift_input):
    ledger = _ledger(shift_input)
    assert len(ledger.entries) == _count_input_values(shift_input) == 9
    keys = [entry.assumption_key for entry in ledger.entries]
    assert len(set(keys)) == len(keys)


def test_completeness_with_optional_values(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "all_time": 86400,
            "allocations": [
                {"state": "running", "duration": 25200},
                {"state": "stopped", "duration": 3600, "reason": {"path": "Material"}},
            ],
        },
        cycle_time={"ideal_cycle_time": 25.2, "average_cycle_time": 25.0},
        downtimes=[
            {"duration": 1800, "reason": {"path": "Mechanical", "is_failure": True}},
            {"duration": 120, "reason": {"path": "Material"}},
        ],
    )
    ledger = _ledger(data)
    assert len(ledger.entries) == _count_input_values(data) == 12
    assert ledger.entry("downtimes[0].duration").impact is ImpactLevel.MEDIUM
    assert ledger.entry("downtimes[1].duration").impact is ImpactLevel.LOW
    assert ledger.entry("time_model.all_time").impact is ImpactLevel.MEDIUM


def test_entries_carry_value_source_impact_and_timestamp(shift_input):
    ledger = _ledger(shift_input)
    planned = ledger.entry("time_model.planned_production_time")
    assert planned.value == 28800
    assert planned.source is ValueSource.EXPLICIT
    assert planned.impact is ImpactLevel.CRITICAL
    assert planned.timestamp == shift_input.window.end
    assert planned.description_key == "ledger.assumptions.planned_production_time"

    assert ledger.entry("time_model.allocations[0].duration").impact is ImpactLevel.HIGH
    assert ledger.entry("time_model.allocations[1].duration").impact is ImpactLevel.MEDIUM
    assert ledger.entry("cycle_time.ideal_cycle_time").impact is ImpactLevel.HIGH
    assert ledger.entry("production.reworked_units").impact is ImpactLevel.MEDIUM
    assert ledger.critical_assumptions == (
        "time_model.planned_production_time",
        "production.total_units",
        "production.good_units",
    )
    assert ledger.analysis_timestamp == shift_input.window.end


def test_inferred_value_links_back_to_its_inputs(build_input):
    data = build_input(production={"good_units": 950, "scrap_units": 30, "reworked_units": 20})
    total = _ledger(data).entry("production.total_units")
    assert total.source is ValueSource.INFERRED
    assert total.related_assumptions == (
        "production.good_units",
        "production.scrap_units",
        "production.reworked_units",
    )


def test_source_statistics(shift_input, build_input):
    stats = _ledger(shift_input).source_statistics
    assert stats.total_count == 9
    assert stats.explicit_share == 1.0
    assert stats.default_count == 0

    data = build_input(production={"total_units": 1000, "good_units": 1000})
    ledger = _ledger(data)
    assert ledger.source_statistics.default_count == 2
    assert ledger.default_values_used == ("production.scrap_units", "production.reworked_units")


def test_default_heavy_input_is_flagged(build_input):
    default = {"value": 28800, "source": "default"}
    data = build_input(
        time_model={
            "planned_production_time": default,
            "allocations": [{"state": "running", "duration": {**default, "value": 25200}}],
        },
        production={"total_units": 1000, "good_units": 1000},
    )
    ledger = _ledger(data)
    assert ledger.source_statistics.default_share > 0.3
    assert "HIGH_DEFAULT_USAGE" in _warning_codes(ledger, "business_rule")


def test_business_rule_warnings(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [
                {"state": "running", "duration": 7200},
                {"state": "stopped", "duration": 21600},
            ],
        },
        production={"total_units": 250, "good_units": 150, "scrap_units": 100, "reworked_units": 0},
        downtimes=[{"duration": 120, "reason": {"path": "Material > Shortage"}}],
    )
    ledger = _ledger(data)
    assert _warning_codes(ledger, "business_rule") == [
        "SCRAP_RATE_ELEVATED",
        "LOW_UTILIZATION",
        "SPEED_LOSS_BEYOND_THRESHOLD",
        "SHORT_STOPS_RECORDED",
        "MISSING_REASON_CODES",
    ]
    missing = next(w for w in ledger.warnings if w.code == "MISSING_REASON_CODES")
    assert missing.related_assumptions == ("time_model.allocations[1].duration",)
    short = next(w for w in ledger.warnings if w.code == "SHORT_STOPS_RECORDED")
    assert short.params == {"count": 1, "total_seconds": 120, "threshold": 300.0}


def test_validation_issues_are_folded_in_after_business_rules(build_input):
    data = build_input(
        production={"total_units": 999, "good_units": 950, "scrap_units": 30, "reworked_units": 20}
    )
    ledger = _ledger(data)
    folded = [w for w in ledger.warnings if w.origin == "validation"]
    assert [w.code for w in folded] == ["PRODUCTION_COUNT_MISMATCH"]
    assert folded[0].severity is Severity.FATAL
    assert folded[0].related_assumptions == ("production.total_units",)
    assert ledger.high_severity_warnings == ("PRODUCTION_COUNT_MISMATCH",)
    assert ledger.warnings[-1] == folded[-1]


def test_thresholds_and_metadata(shift_input):
    ledger = _ledger(shift_input)
    assert [record.threshold_key for record in ledger.thresholds] == [
        "thresholds.micro_stoppage_threshold",
        "thresholds.small_stop_threshold",
        "thresholds.speed_loss_threshold",
        "thresholds.high_scrap_rate_threshold",
        "thresholds.low_utilization_threshold",
    ]
    assert ledger.metadata["machine_id"] == "press-01"
    assert ledger.metadata["line_id"] == "line-a"
    assert "product_id" not in ledger.metadata


def test_ledger_is_deterministic(shift_input):
    assert _ledger(shift_input) == _ledger(shift_input)


def test_folded_issues_point_at_ledger_keys(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [{"state": "running", "duration": 27000}],
        },
        production={"total_units": 1000, "good_units": 1000, "scrap_units": 0, "reworked_units": 0},
        cycle_time={"ideal_cycle_time": 25.0},
        downtimes=[
            {"duration": 20000, "reason": {"path": "Mechanical > Gearbox", "is_failure": True}},
            {"duration": 10000, "reason": {"path": "Electrical", "is_failure": True}},
        ],
    )
    ledger = _ledger(data)
    folded = {w.code: w.related_assumptions for w in ledger.warnings if w.origin == "validation"}
    assert folded["DOWNTIME_EXCEEDS_PLANNED"] == ("downtimes[0].duration", "downtimes[1].duration")
    assert folded["TIME_ALLOCATION_GAP"] == ("time_model.allocations[0].duration",)
    for keys in folded.values():
        for key in keys:
            assert ledger.entry(key).assumption_key == key
