import copy
import os

import pytest

from oeetrace.scenario.contract import OeeInput

_CLI_ENV_FLAG = "OEETRACE_RUN_FULL_CLI_TESTS"
_CLI_PREFIXES = ("tests/test_cli_",)

# Reference shift: 8 h planned, 7 h running, 1000 units at 25.2 s ideal.
SHIFT_PAYLOAD = {
    "window": {"start": "2024-03-04T06:00:00+00:00", "end": "2024-03-04T14:00:00+00:00"},
    "machine": {"machine_id": "press-01", "line_id": "line-a", "shift_id": "early"},
    "time_model": {
        "planned_production_time": 28800,
        "allocations": [
            {"state": "running", "duration": 25200},
            {
                "state": "stopped",
                "duration": 2400,
                "reason": {"path": "Mechanical > Bearing Failure", "is_failure": True},
            },
            {"state": "setup", "duration": 1200, "reason": {"path": ["Changeover"]}},
        ],
    },
    "production": {
        "total_units": 1000,
        "good_units": 950,
        "scrap_units": 30,
        "reworked_units": 20,
    },
    "cycle_time": {"ideal_cycle_time": 25.2},
}


def pytest_collection_modifyitems(config, items):
    """Skip CLI integration tests unless explicitly enabled."""

    if os.getenv(_CLI_ENV_FLAG):
        return
    skip_cli = pytest.mark.skip(
        reason=f"Set {_CLI_ENV_FLAG}=1 to run the CLI integration test suite."
    )
    for item in items:
        nodeid = item.nodeid
        if nodeid.startswith(_CLI_PREFIXES):
            item.add_marker(skip_cli)


def shift_payload(**sections):
    """Deep copy of the reference shift with whole top-level sections replaced."""
    payload = copy.deepcopy(SHIFT_PAYLOAD)
    for name, value in sections.items():
        if value is None:
            payload.pop(name, None)
        else:
            payload[name] = copy.deepcopy(value)
    return payload


@pytest.fixture
def shift_input() -> OeeInput:
    return OeeInput.model_validate(shift_payload())


@pytest.fixture
def build_input():
    """Factory: ``build_input(production={...})`` returns a validated ``OeeInput``."""

    def _build(**sections) -> OeeInput:
        return OeeInput.model_validate(shift_payload(**sections))

    return _build


@pytest.fixture
def make_payload():
    """Factory returning raw reference-shift payloads for file-based tests."""
    return shift_payload
