import json

import pytest
import yaml
from pydantic import ValidationError

from oeetrace.core.types import ValueSource
from oeetrace.scenario.io import load_economic_parameters, load_input, load_machines
from oeetrace.scenario.io.loaders import read_document


def _write_yaml(path, payload):
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


def test_load_input_from_yaml(tmp_path, make_payload):
    payload = make_payload()
    payload["production"]["good_units"] = {"value": 950, "source": "inferred"}
    data = load_input(_write_yaml(tmp_path / "shift.yaml", payload))
    assert data.machine.machine_id == "press-01"
    assert data.time_model.planned_production_time.value == 28800
    assert data.time_model.planned_production_time.source is ValueSource.EXPLICIT
    assert data.production.good_units.source is ValueSource.INFERRED


def test_load_input_from_json(tmp_path, make_payload):
    path = tmp_path / "shift.json"
    path.write_text(json.dumps(make_payload()), encoding="utf-8")
    assert load_input(path).production.total_units.value == 1000


def test_threshold_argument_overrides_the_file(tmp_path, make_payload):
    payload = make_payload()
    payload["thresholds"] = {"micro_stoppage_threshold": 45}
    path = _write_yaml(tmp_path / "shift.yaml", payload)
    assert load_input(path).thresholds.micro_stoppage_threshold == 45
    assert load_input(path, thresholds="strict").thresholds.micro_stoppage_threshold == 15


def test_structurally_invalid_input_is_rejected(tmp_path, make_payload):
    payload = make_payload(cycle_time=None)
    with pytest.raises(ValidationError):
        load_input(_write_yaml(tmp_path / "shift.yaml", payload))


def test_read_document_rejects_non_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        read_document(path)


def test_economic_parameters_section_is_unwrapped(tmp_path):
    wrapped = _write_yaml(
        tmp_path / "plant.yaml",
        {
            "economics": {
                "unit_price": [8, 10, 12],
                "marginal_contribution": 5,
                "material_cost": [2, 2.5, 3],
                "labor_cost_per_hour": 40,
                "currency": "EUR",
            }
        },
    )
    parameters = load_economic_parameters(wrapped)
    assert parameters.currency == "EUR"
    assert parameters.unit_price.central == 10
    assert parameters.marginal_contribution.low == pytest.approx(4.5)

    bare = _write_yaml(
        tmp_path / "bare.yaml",
        {
            "unit_price": 10,
            "marginal_contribution": 5,
            "material_cost": 2.5,
            "labor_cost_per_hour": 40,
        },
    )
    assert load_economic_parameters(bare).currency == "USD"


def test_machines_inline_and_by_path(tmp_path, make_payload):
    second = make_payload(machine={"machine_id": "press-02"})
    (tmp_path / "inputs").mkdir()
    _write_yaml(tmp_path / "inputs" / "press-02.yaml", second)
    path = _write_yaml(
        tmp_path / "line.yaml",
        {
            "machines": [
                {"input": make_payload(), "machine_name": "Press 1", "sequence_position": 1},
                {"machine_id": "p2", "input": "inputs/press-02.yaml", "sequence_position": 2},
            ]
        },
    )
    entries = load_machines(path, thresholds="lenient")
    assert [entry.machine_id for entry in entries] == ["press-01", "p2"]
    assert entries[0].machine_name == "Press 1"
    assert entries[1].data.machine.machine_id == "press-02"
    assert [entry.sequence_position for entry in entries] == [1, 2]
    assert all(entry.data.thresholds.micro_stoppage_threshold != 30 for entry in entries)


def test_machines_document_needs_a_list(tmp_path, make_payload):
    path = _write_yaml(tmp_path / "line.yaml", {"machine": make_payload()})
    with pytest.raises(ValueError, match="'machines' list"):
        load_machines(path)


def test_machine_without_input_is_rejected(tmp_path):
    path = _write_yaml(tmp_path / "line.yaml", {"machines": [{"machine_id": "m1"}]})
    with pytest.raises(ValueError, match="'input'"):
        load_machines(path)


def test_missing_machine_input_file(tmp_path):
    path = _write_yaml(tmp_path / "line.yaml", {"machines": [{"input": "missing.yaml"}]})
    with pytest.raises(FileNotFoundError):
        load_machines(path)
