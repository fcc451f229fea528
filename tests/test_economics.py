import pytest
from pydantic import ValidationError

from oeetrace.costing import (
    DISCLAIMER_KEY,
    EconomicParameters,
    EstimateRange,
    analyze_economics,
    plausibility_notes,
)
from oeetrace.evaluation.loss_tree import build_loss_tree
from oeetrace.evaluation.metrics import compute_core_metrics, compute_extended_metrics

PARAMETERS = {
    "unit_price": [8, 10, 12],
    "marginal_contribution": [4, 5, 6],
    "material_cost": [2, 2.5, 3],
    "labor_cost_per_hour": [30, 40, 50],
    "currency": "eur",
}


def _analysis(data, **overrides):
    parameters = EconomicParameters.model_validate({**PARAMETERS, **overrides})
    core = compute_core_metrics(data)
    extended = compute_extended_metrics(data, core)
    return analyze_economics(build_loss_tree(data), core, parameters, extended=extended)


def _bounds(impact):
    estimate = impact.estimate
    return (estimate.low, estimate.central, estimate.high)


def test_estimate_range_coercion():
    spread = EstimateRange.model_validate(10)
    assert (spread.low, spread.central, spread.high) == pytest.approx((9, 10, 11))
    assert EstimateRange.model_validate([1, 2, 3]).central == 2
    point = EstimateRange.from_point(100, 0.2)
    assert (point.low, point.high) == pytest.approx((80, 120))
    with pytest.raises(ValidationError):
        EstimateRange.model_validate([3, 2, 1])
    with pytest.raises(ValidationError):
        EstimateRange.model_validate([1, 2])


def test_estimate_range_arithmetic():
    total = EstimateRange(low=1, central=2, high=3) + EstimateRange(low=10, central=20, high=30)
    assert total == EstimateRange(low=11, central=22, high=33)
    assert EstimateRange(low=1, central=2, high=3).scale(-1) == EstimateRange(
        low=-3, central=-2, high=-1
    )
    assert EstimateRange(low=5, central=10, high=15).relative_spread == pytest.approx(1.0)


def test_currency_is_normalised_and_checked():
    assert EconomicParameters.model_validate(PARAMETERS).currency == "EUR"
    with pytest.raises(ValidationError):
        EconomicParameters.model_validate({**PARAMETERS, "currency": "euro"})


def test_reference_shift_impacts(shift_input):
    analysis = _analysis(shift_input)
    assert analysis.currency == "EUR"
    assert analysis.disclaimer_key == DISCLAIMER_KEY

    # 3600 s lost to stoppages at 25.2 s per unit is 142 whole units.
    assert analysis.throughput_loss.quantity == 142
    assert _bounds(analysis.throughput_loss) == pytest.approx((568, 710, 852))
    assert "economics.marginal_contribution" in analysis.throughput_loss.assumptions
    assert "time_model.allocations[1].duration" in analysis.throughput_loss.assumptions

    assert analysis.material_waste.quantity == 30
    assert _bounds(analysis.material_waste) == pytest.approx((60, 75, 90))

    # Rework labour defaults to one ideal cycle per unit.
    assert _bounds(analysis.rework_cost) == pytest.approx((44.2, 55.6, 67.0))
    assert "cycle_time.ideal_cycle_time" in analysis.rework_cost.assumptions

    assert _bounds(analysis.opportunity_cost) == (0, 0, 0)
    assert _bounds(analysis.total_impact) == pytest.approx((672.2, 840.6, 1009.0))
    impacts = (
        analysis.throughput_loss,
        analysis.material_waste,
        analysis.rework_cost,
        analysis.opportunity_cost,
        analysis.total_impact,
    )
    assert {impact.currency for impact in impacts} == {"EUR"}


def test_explicit_rework_hours(shift_input):
    analysis = _analysis(shift_input, rework_hours_per_unit=0.5)
    # (material + 0.5 h of labour) per reworked unit, 20 units.
    assert _bounds(analysis.rework_cost) == pytest.approx((340, 450, 560))
    assert "economics.rework_hours_per_unit" in analysis.rework_cost.assumptions


def test_unallocated_time_becomes_opportunity_cost(build_input):
    data = build_input(
        time_model={
            "planned_production_time": 28800,
            "allocations": [{"state": "running", "duration": 25200}],
        }
    )
    analysis = _analysis(data)
    assert analysis.opportunity_cost.quantity == 142
    assert _bounds(analysis.opportunity_cost) == pytest.approx((1136, 1420, 1704))
    assert analysis.throughput_loss.quantity == 0


def test_plausibility_notes():
    assert plausibility_notes(EconomicParameters.model_validate(PARAMETERS)) == []

    negative = EconomicParameters.model_validate({**PARAMETERS, "material_cost": 12})
    assert [note.code for note in plausibility_notes(negative)] == ["NEGATIVE_MARGIN"]

    wide = EconomicParameters.model_validate({**PARAMETERS, "unit_price": [2, 10, 20]})
    assert [note.code for note in plausibility_notes(wide)] == ["WIDE_PRICE_UNCERTAINTY"]


def test_notes_travel_with_the_analysis(shift_input):
    analysis = _analysis(shift_input, material_cost=[11, 12, 13])
    assert [note.code for note in analysis.notes] == ["NEGATIVE_MARGIN"]
