"""Configuration models and helpers for the reconciler."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_ACTIVITYWATCH_URL = "http://localhost:5600"
DEFAULT_TEMPO_URL = "https://api.tempo.io/4"


@dataclass(slots=True)
class ReconcileSettings:
    """Tunable thresholds for status classification and aggregation."""

    logged_threshold_percent: int = 80
    conflict_overlap_ratio: float = 1.0
    short_description_length: int = 50
    allow_midnight_wrap: bool = False

    @classmethod
    def from_values(
        cls,
        logged_threshold_percent: Optional[int] = None,
        short_description_length: Optional[int] = None,
        allow_midnight_wrap: bool = False,
    ) -> "ReconcileSettings":
        threshold = 80 if logged_threshold_percent is None else logged_threshold_percent
        if not 1 <= threshold <= 100:
            raise ValueError("logged_threshold_percent must be within 1..100")
        length = 50 if short_description_length is None else short_description_length
        return cls(
            logged_threshold_percent=threshold,
            short_description_length=max(length, 1),
            allow_midnight_wrap=allow_midnight_wrap,
        )


@dataclass(slots=True)
class ServiceSettings:
    """Connection settings for the activity source and the work-log system."""

    activitywatch_url: str = DEFAULT_ACTIVITYWATCH_URL
    tempo_url: str = DEFAULT_TEMPO_URL
    tempo_token: Optional[str] = None
    tempo_account_id: Optional[str] = None
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServiceSettings":
        env = os.environ if environ is None else environ
        return cls(
            activitywatch_url=env.get("ACTIVITYWATCH_URL") or DEFAULT_ACTIVITYWATCH_URL,
            tempo_url=env.get("TEMPO_API_URL") or DEFAULT_TEMPO_URL,
            tempo_token=env.get("TEMPO_API_TOKEN") or None,
            tempo_account_id=env.get("TEMPO_ACCOUNT_ID") or None,
        )
