"""Reconciliation settings."""

import os
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class ReconciliationSettings:
    """Tunable thresholds for the normalizer, matcher and recurring detector."""

    transfer_window_days: int = 3
    fee_tolerance_cents: int = 150
    rounding_tolerance_cents: int = 0
    auto_confidence_threshold: float = 0.82
    delimiter_sample_chars: int = 2000
    header_scan_rows: int = 30
    recurring_amount_tolerance: float = 0.12
    recurring_day_tolerance: int = 3

    def __post_init__(self):
        if self.transfer_window_days < 0:
            raise ValueError("transfer_window_days must not be negative")
        if self.fee_tolerance_cents < self.rounding_tolerance_cents:
            raise ValueError("fee_tolerance_cents must be >= rounding_tolerance_cents")
        if not 0 <= self.auto_confidence_threshold <= 1:
            raise ValueError("auto_confidence_threshold must be between 0 and 1")

    @classmethod
    def from_env(cls, **overrides) -> "ReconciliationSettings":
        """Build settings from LEDGERKIT_* environment variables.

        Keyword overrides that are not None take precedence over the
        environment.
        """
        env_fields = {
            "transfer_window_days": "LEDGERKIT_TRANSFER_WINDOW_DAYS",
            "fee_tolerance_cents": "LEDGERKIT_FEE_TOLERANCE_CENTS",
            "rounding_tolerance_cents": "LEDGERKIT_ROUNDING_TOLERANCE_CENTS",
        }
        values = {}
        for field_name, env_name in env_fields.items():
            raw = os.environ.get(env_name)
            if raw is not None and raw.strip():
                try:
                    values[field_name] = int(raw)
                except ValueError:
                    raise ValueError(f"{env_name} must be an integer, got '{raw}'")
        settings = cls(**values)
        return replace(settings, **{k: v for k, v in overrides.items() if v is not None})


DEFAULT_SETTINGS = ReconciliationSettings()
