"""Threshold configurations used for leaf categorisation and advisory warnings."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class ThresholdConfiguration(BaseModel):
    """Categorisation thresholds. None of these ever blocks a calculation.

    Attributes
    ----------
    micro_stoppage_threshold:
        Downtime records shorter than this (seconds) are micro-stoppages and are attributed to the
        performance branch of the loss tree.
    small_stop_threshold:
        Records shorter than this (seconds) but not micro-stoppages count as short stops in the
        ledger.
    speed_loss_threshold:
        Fractional shortfall of performance below 1.0 that raises a speed-loss ledger warning.
    high_scrap_rate_threshold:
        Scrap fraction of total units above which the ledger flags an elevated scrap rate.
    low_utilization_threshold:
        Operating share of planned time below which the ledger flags low utilisation.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    micro_stoppage_threshold: float = 30.0
    small_stop_threshold: float = 300.0
    speed_loss_threshold: float = 0.05
    high_scrap_rate_threshold: float = 0.20
    low_utilization_threshold: float = 0.30

    @field_validator("micro_stoppage_threshold", "small_stop_threshold")
    @classmethod
    def _non_negative_seconds(cls, value: float) -> float:
        if value < 0:
            raise ValueError("Duration thresholds must be non-negative seconds")
        return value

    @field_validator(
        "speed_loss_threshold", "high_scrap_rate_threshold", "low_utilization_threshold"
    )
    @classmethod
    def _fraction(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("Fractional thresholds must lie within [0, 1]")
        return value

    @model_validator(mode="after")
    def _ordered(self) -> ThresholdConfiguration:
        if self.micro_stoppage_threshold > self.small_stop_threshold:
            raise ValueError("micro_stoppage_threshold must not exceed small_stop_threshold")
        return self


DEFAULT_THRESHOLDS = ThresholdConfiguration()
STRICT_THRESHOLDS = ThresholdConfiguration(
    micro_stoppage_threshold=15.0,
    small_stop_threshold=180.0,
    speed_loss_threshold=0.02,
    high_scrap_rate_threshold=0.10,
    low_utilization_threshold=0.50,
)
LENIENT_THRESHOLDS = ThresholdConfiguration(
    micro_stoppage_threshold=60.0,
    small_stop_threshold=600.0,
    speed_loss_threshold=0.10,
    high_scrap_rate_threshold=0.30,
    low_utilization_threshold=0.20,
)

THRESHOLD_PRESETS: dict[str, ThresholdConfiguration] = {
    "default": DEFAULT_THRESHOLDS,
    "strict": STRICT_THRESHOLDS,
    "lenient": LENIENT_THRESHOLDS,
}

PRESET_DESCRIPTIONS: dict[str, str] = {
    "default": "Balanced categorisation for typical discrete manufacturing lines.",
    "strict": "Tighter limits for high-volume lines where small losses matter.",
    "lenient": "Looser limits for batch or low-volume operations.",
}


def get_threshold_preset(name: str) -> ThresholdConfiguration:
    """Return the named threshold preset or raise ``KeyError`` listing valid names."""
    key = name.lower()
    if key not in THRESHOLD_PRESETS:
        available = ", ".join(sorted(THRESHOLD_PRESETS))
        raise KeyError(f"Unknown threshold preset '{name}'. Available: {available}")
    return THRESHOLD_PRESETS[key]


def format_presets() -> list[str]:
    """Return human-readable lines describing the presets (used by the CLI)."""
    lines = []
    for name in sorted(THRESHOLD_PRESETS):
        preset = THRESHOLD_PRESETS[name]
        lines.append(
            f"{name}: {PRESET_DESCRIPTIONS[name]} "
            f"(micro<{preset.micro_stoppage_threshold:g}s, "
            f"small<{preset.small_stop_threshold:g}s, "
            f"speed>{preset.speed_loss_threshold:.0%}, "
            f"scrap>{preset.high_scrap_rate_threshold:.0%}, "
            f"utilisation<{preset.low_utilization_threshold:.0%})"
        )
    return lines


__all__ = [
    "ThresholdConfiguration",
    "DEFAULT_THRESHOLDS",
    "STRICT_THRESHOLDS",
    "LENIENT_THRESHOLDS",
    "THRESHOLD_PRESETS",
    "get_threshold_preset",
    "format_presets",
]
