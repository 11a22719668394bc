"""
Per-participant route selection. Pure functions, no I/O.
MINIMIZE_COST and MINIMIZE_TIME take the first minimum in the aggregator's
cost order; BALANCED weighs normalised cost against normalised duration.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from rendezvous.config import PlannerSettings
from rendezvous.schemas import OptimizationObjective, Route, TransportOption

_DEFAULT_SETTINGS = PlannerSettings()


def balanced_score(option: TransportOption, settings: PlannerSettings = _DEFAULT_SETTINGS) -> float:
    """Weighted sum of cost and duration, each divided by its cap (not clamped)."""
    normalized_cost = option.cost / settings.cost_cap_minor
    normalized_time = option.duration_minutes / settings.duration_cap_minutes
    return settings.cost_weight * normalized_cost + settings.time_weight * normalized_time


def objective_score(
    option: TransportOption,
    objective: OptimizationObjective,
    settings: PlannerSettings = _DEFAULT_SETTINGS,
) -> float:
    if objective == OptimizationObjective.MINIMIZE_COST:
        return float(option.cost)
    if objective == OptimizationObjective.MINIMIZE_TIME:
        return float(option.duration_minutes)
    return balanced_score(option, settings)


def select_best_route(
    options: Sequence[TransportOption],
    objective: OptimizationObjective,
    *,
    participant_id: str = "participant",
    target_arrival: Optional[datetime] = None,
    settings: PlannerSettings = _DEFAULT_SETTINGS,
) -> Optional[Route]:
    """Return the best option wrapped as a Route, or None when there is nothing to choose."""
    if not options:
        return None
    # min() keeps the first of equal keys, which preserves the cost-ascending tie-break
    best = min(options, key=lambda option: objective_score(option, objective, settings))
    return Route.from_option(
        participant_id,
        best,
        score=objective_score(best, objective, settings),
        target_arrival=target_arrival,
    )
