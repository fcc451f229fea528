"""Input contract models (Pydantic schemas, validators, threshold presets)."""

from .models import (
    AnalysisWindow,
    CycleTimeModel,
    DowntimeRecord,
    InputField,
    MachineContext,
    MachineState,
    OeeInput,
    ProductionSummary,
    ReasonCode,
    ScrapEvent,
    StartupWindowConfig,
    TemporalScrapData,
    TimeAllocation,
    TimeModel,
)
from .thresholds import (
    DEFAULT_THRESHOLDS,
    LENIENT_THRESHOLDS,
    STRICT_THRESHOLDS,
    THRESHOLD_PRESETS,
    ThresholdConfiguration,
    get_threshold_preset,
)

__all__ = [
    "AnalysisWindow",
    "MachineContext",
    "MachineState",
    "ReasonCode",
    "TimeAllocation",
    "TimeModel",
    "ProductionSummary",
    "CycleTimeModel",
    "DowntimeRecord",
    "ScrapEvent",
    "StartupWindowConfig",
    "TemporalScrapData",
    "InputField",
    "OeeInput",
    "ThresholdConfiguration",
    "DEFAULT_THRESHOLDS",
    "STRICT_THRESHOLDS",
    "LENIENT_THRESHOLDS",
    "THRESHOLD_PRESETS",
    "get_threshold_preset",
]
