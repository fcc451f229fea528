import pytest

from oeetrace.telemetry import CalculationRunLog, append_jsonl, read_jsonl


def test_recorded_result_is_written_on_exit(tmp_path):
    log_path = tmp_path / "telemetry" / "runs.jsonl"
    run_log = CalculationRunLog(
        log_path=log_path,
        command="calculate",
        machine_id="press-01",
        config={"thresholds": "strict"},
    )
    with run_log:
        run_log.record_result(
            metrics={"oee": 0.83125}, validation={"fatal": 0}, artifacts=["out.json"]
        )
        assert not log_path.exists()

    (record,) = read_jsonl(log_path)
    assert record["record_type"] == "run"
    assert record["run_id"] == run_log.run_id
    assert record["status"] == "ok"
    assert record["command"] == "calculate"
    assert record["machine_id"] == "press-01"
    assert record["metrics"] == {"oee": 0.83125}
    assert record["validation"] == {"fatal": 0}
    assert record["config"] == {"thresholds": "strict"}
    assert record["artifacts"] == ["out.json"]
    assert record["error"] is None
    assert record["duration_seconds"] >= 0


def test_exit_without_a_result_records_ok(tmp_path):
    log_path = tmp_path / "runs.jsonl"
    with CalculationRunLog(log_path=log_path, command="calculate"):
        pass
    (record,) = read_jsonl(log_path)
    assert record["status"] == "ok"
    assert record["metrics"] == {}
    assert record["artifacts"] == []


def test_exception_records_error_and_propagates(tmp_path):
    log_path = tmp_path / "runs.jsonl"
    with pytest.raises(ValueError):
        with CalculationRunLog(log_path=log_path, command="calculate"):
            raise ValueError("planned time missing")
    (record,) = read_jsonl(log_path)
    assert record["status"] == "error"
    assert "planned time missing" in record["error"]


def test_runs_append_to_the_same_file(tmp_path):
    log_path = tmp_path / "runs.jsonl"
    for command in ("calculate", "aggregate"):
        with CalculationRunLog(log_path=log_path, command=command):
            pass
    records = read_jsonl(log_path)
    assert [record["command"] for record in records] == ["calculate", "aggregate"]
    assert records[0]["run_id"] != records[1]["run_id"]


def test_jsonl_helpers_skip_blank_lines(tmp_path):
    path = tmp_path / "records.jsonl"
    append_jsonl(path, {"a": 1})
    with path.open("a", encoding="utf-8") as handle:
        handle.write("\n")
    append_jsonl(path, {"b": "é"})
    assert read_jsonl(path) == [{"a": 1}, {"b": "é"}]
