"""Input file loaders."""

from .loaders import MachineEntry, load_economic_parameters, load_input, load_machines

__all__ = ["load_input", "load_economic_parameters", "load_machines", "MachineEntry"]
