"""Input loading utilities (YAML or JSON documents)."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, TypeAdapter, model_validator

from oeetrace.costing.economics import EconomicParameters
from oeetrace.scenario.contract.models import OeeInput
from oeetrace.scenario.contract.thresholds import ThresholdConfiguration

__all__ = [
    "load_input",
    "load_economic_parameters",
    "load_machines",
    "MachineEntry",
    "read_document",
]


def read_document(path: str | Path) -> dict[str, Any]:
    """Read a YAML or JSON document whose top level is a mapping."""
    path = Path(path)
    with path.open("r", encoding="utf-8") as handle:
        if path.suffix.lower() == ".json":
            payload = json.load(handle)
        else:
            payload = yaml.safe_load(handle)
    if not isinstance(payload, Mapping):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return dict(payload)


def _resolve_path(root: Path, value: str | Path) -> Path:
    path = Path(value)
    if not path.is_absolute():
        path = root / path
    if not path.exists():
        raise FileNotFoundError(path)
    return path


def _input_payload(
    payload: Mapping[str, Any], thresholds: str | ThresholdConfiguration | None
) -> dict[str, Any]:
    payload = dict(payload)
    if thresholds is not None:
        payload["thresholds"] = thresholds
    return payload


def load_input(
    path: str | Path, thresholds: str | ThresholdConfiguration | None = None
) -> OeeInput:
    """Load an :class:`OeeInput` from a YAML or JSON file.

    Parameters
    ----------
    path:
        Input document. Bare scalars are read as explicit values; ``{value, source}`` mappings
        carry their own provenance tag.
    thresholds:
        Preset name or configuration overriding any ``thresholds`` section in the file.

    Raises
    ------
    pydantic.ValidationError
        If the document is structurally invalid.
    """
    payload = read_document(path)
    return TypeAdapter(OeeInput).validate_python(_input_payload(payload, thresholds))


def load_economic_parameters(path: str | Path) -> EconomicParameters:
    """Load economic parameters; an ``economics`` top-level section is unwrapped."""
    payload = read_document(path)
    section = payload.get("economics", payload)
    return TypeAdapter(EconomicParameters).validate_python(section)


class MachineEntry(BaseModel):
    """One machine of a multi-machine document.

    ``input`` is either an inline input mapping or a path (relative to the machines document) to
    an input file. ``machine_id`` defaults to the input's machine identifier.
    """

    model_config = ConfigDict(frozen=True)

    machine_id: str
    machine_name: str | None = None
    sequence_position: int | None = None
    data: OeeInput

    @model_validator(mode="before")
    @classmethod
    def _default_id(cls, payload: Any) -> Any:
        if isinstance(payload, dict) and payload.get("machine_id") is None:
            data = payload.get("data")
            if isinstance(data, OeeInput):
                payload = {**payload, "machine_id": data.machine.machine_id}
            elif isinstance(data, Mapping):
                payload = {**payload, "machine_id": data.get("machine", {}).get("machine_id")}
        return payload


def load_machines(
    path: str | Path, thresholds: str | ThresholdConfiguration | None = None
) -> list[MachineEntry]:
    """Load the ``machines`` list of a multi-machine document.

    Each item carries ``input`` (inline mapping or file path) plus optional ``machine_id``,
    ``machine_name`` and ``sequence_position``.
    """
    path = Path(path)
    payload = read_document(path)
    items = payload.get("machines")
    if not isinstance(items, list):
        raise ValueError(f"{path} must contain a 'machines' list")

    entries: list[dict[str, Any]] = []
    for item in items:
        item = dict(item)
        source = item.pop("input", None)
        if source is None:
            raise ValueError(f"{path}: every machine needs an 'input' entry")
        if isinstance(source, Mapping):
            raw = dict(source)
        else:
            raw = read_document(_resolve_path(path.parent, source))
        item["data"] = TypeAdapter(OeeInput).validate_python(_input_payload(raw, thresholds))
        entries.append(item)
    return TypeAdapter(list[MachineEntry]).validate_python(entries)
