"""Runtime settings for the planner, read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

from dotenv import load_dotenv

from rendezvous.errors import InvalidInputError

load_dotenv()

_PREFIX = "RENDEZVOUS_"

T = TypeVar("T")


@dataclass(frozen=True)
class PlannerSettings:
    # BALANCED objective: the caps only bring cost and duration onto the same
    # scale, options beyond them score above 1 on that term.
    cost_cap_minor: int = 100_000
    duration_cap_minutes: int = 1440
    cost_weight: float = 0.4
    time_weight: float = 0.6

    max_gap_minutes: int = 60
    max_workers: int = 8
    plan_timeout_seconds: Optional[float] = 30.0

    provider_retries: int = 3
    provider_backoff_seconds: float = 0.2
    provider_max_backoff_seconds: float = 2.0

    currency: str = "EUR"
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.cost_cap_minor <= 0 or self.duration_cap_minutes <= 0:
            raise InvalidInputError("normalisation caps must be positive")
        if self.cost_weight < 0 or self.time_weight < 0:
            raise InvalidInputError("objective weights cannot be negative")
        if self.max_gap_minutes <= 0:
            raise InvalidInputError("max_gap_minutes must be positive")
        if self.max_workers <= 0:
            raise InvalidInputError("max_workers must be positive")
        if self.provider_retries <= 0:
            raise InvalidInputError("provider_retries must be at least 1")
        if self.provider_backoff_seconds < 0 or self.provider_max_backoff_seconds < 0:
            raise InvalidInputError("backoff cannot be negative")
        if self.plan_timeout_seconds is not None and self.plan_timeout_seconds <= 0:
            raise InvalidInputError("plan_timeout_seconds must be positive or unset")
        if len(self.currency) != 3:
            raise InvalidInputError(f"currency must be an ISO 4217 code, got {self.currency!r}")


def load_settings(env: Mapping[str, str] | None = None) -> PlannerSettings:
    """Build settings from ``RENDEZVOUS_*`` variables, falling back to defaults."""
    source = os.environ if env is None else env
    defaults = PlannerSettings()

    def read(name: str, cast: Callable[[str], T], default: T) -> T:
        raw = source.get(_PREFIX + name)
        if raw is None or not raw.strip():
            return default
        try:
            return cast(raw.strip())
        except ValueError as exc:
            raise InvalidInputError(f"{_PREFIX}{name}={raw!r} is not valid") from exc

    timeout = read("PLAN_TIMEOUT_SECONDS", float, defaults.plan_timeout_seconds)
    return PlannerSettings(
        cost_cap_minor=read("COST_CAP_MINOR", int, defaults.cost_cap_minor),
        duration_cap_minutes=read("DURATION_CAP_MINUTES", int, defaults.duration_cap_minutes),
        cost_weight=read("COST_WEIGHT", float, defaults.cost_weight),
        time_weight=read("TIME_WEIGHT", float, defaults.time_weight),
        max_gap_minutes=read("MAX_GAP_MINUTES", int, defaults.max_gap_minutes),
        max_workers=read("MAX_WORKERS", int, defaults.max_workers),
        # 0 disables the deadline
        plan_timeout_seconds=timeout if timeout else None,
        provider_retries=read("PROVIDER_RETRIES", int, defaults.provider_retries),
        provider_backoff_seconds=read("PROVIDER_BACKOFF_SECONDS", float, defaults.provider_backoff_seconds),
        provider_max_backoff_seconds=read(
            "PROVIDER_MAX_BACKOFF_SECONDS", float, defaults.provider_max_backoff_seconds
        ),
        currency=read("CURRENCY", str.upper, defaults.currency),
        seed=read("SEED", int, defaults.seed),
    )
