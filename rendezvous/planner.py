"""Group plan builder: resolve every participant, then cluster their arrivals."""
from __future__ import annotations

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Union

from rendezvous.aggregator import OptionAggregator
from rendezvous.clustering import find_group_meeting_points
from rendezvous.config import PlannerSettings
from rendezvous.errors import CurrencyMismatchError, InvalidInputError
from rendezvous.schemas import (
    Location,
    OptimizationObjective,
    Route,
    TransportPlan,
    UnresolvedParticipant,
    UnresolvedReason,
)
from rendezvous.selector import select_best_route

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("RENDEZVOUS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


@dataclass(frozen=True)
class Resolved:
    participant_id: str
    route: Route


@dataclass(frozen=True)
class Unresolved:
    participant_id: str
    reason: UnresolvedReason


Resolution = Union[Resolved, Unresolved]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GroupPlanBuilder:
    def __init__(
        self,
        aggregator: OptionAggregator,
        settings: PlannerSettings | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.aggregator = aggregator
        self.settings = settings or aggregator.settings
        self.clock = clock
        # Shared across runs so threads left behind by a timed-out run still count
        # against max_workers. Never joined on the planning path.
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.max_workers,
            thread_name_prefix="rendezvous-provider",
        )

    def close(self) -> None:
        """Release the provider threads without waiting on calls still in flight."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    async def build_plan(
        self,
        participants: Mapping[str, Location],
        destination: Location,
        target_arrival: datetime,
        objective: OptimizationObjective = OptimizationObjective.BALANCED,
        *,
        event_id: str = "unassigned-event",
        max_gap_minutes: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> TransportPlan:
        """
        1. Validate input before touching any provider.
        2. Resolve participants concurrently, at most ``max_workers`` at a time.
        3. Wait for all of them or the deadline; stragglers become timeouts.
        4. Sum costs and cluster the resolved arrivals.
        """
        gap = max_gap_minutes if max_gap_minutes is not None else self.settings.max_gap_minutes
        deadline = timeout if timeout is not None else self.settings.plan_timeout_seconds
        self._validate(destination, target_arrival, gap)

        logger.info(
            "Planning %d participant(s) to %s for %s (objective=%s)",
            len(participants),
            destination.code,
            target_arrival.isoformat(),
            objective.value,
        )
        resolutions = await self._resolve_all(participants, destination, target_arrival, objective, deadline)

        routes: Dict[str, Route] = {}
        unresolved: List[UnresolvedParticipant] = []
        for participant_id in participants:
            outcome = resolutions[participant_id]
            if isinstance(outcome, Resolved):
                routes[participant_id] = outcome.route
            else:
                unresolved.append(UnresolvedParticipant(participant_id=participant_id, reason=outcome.reason))
                logger.warning("Participant %s unresolved (%s)", participant_id, outcome.reason)

        currency = self._plan_currency(routes)
        total_cost = sum(route.total_cost for route in routes.values())
        meeting_points = find_group_meeting_points(routes, gap)

        plan = TransportPlan(
            event_id=event_id,
            participant_routes=routes,
            group_arrivals=meeting_points,
            total_group_cost=total_cost,
            currency=currency,
            objective=objective,
            created_at=self.clock(),
            status="partial" if unresolved else "complete",
            unresolved=unresolved,
        )
        logger.info(
            "Plan %s: %d resolved, %d unresolved, total %d %s minor units, %d meeting point(s)",
            event_id,
            len(routes),
            len(unresolved),
            total_cost,
            currency,
            len(meeting_points),
        )
        return plan

    def build_plan_blocking(
        self,
        participants: Mapping[str, Location],
        destination: Location,
        target_arrival: datetime,
        objective: OptimizationObjective = OptimizationObjective.BALANCED,
        *,
        event_id: str = "unassigned-event",
        max_gap_minutes: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> TransportPlan:
        """Synchronous wrapper for callers without an event loop. Returns at the deadline."""
        return asyncio.run(
            self.build_plan(
                participants,
                destination,
                target_arrival,
                objective,
                event_id=event_id,
                max_gap_minutes=max_gap_minutes,
                timeout=timeout,
            )
        )

    async def _resolve_all(
        self,
        participants: Mapping[str, Location],
        destination: Location,
        target_arrival: datetime,
        objective: OptimizationObjective,
        deadline: Optional[float],
    ) -> Dict[str, Resolution]:
        if not participants:
            return {}

        loop = asyncio.get_running_loop()

        async def resolve(participant_id: str, home: Location) -> Resolution:
            # Cancelling the task drops a queued call; one already running is abandoned.
            options = await loop.run_in_executor(
                self._executor, self.aggregator.get_options, home, destination, target_arrival
            )
            route = select_best_route(
                options,
                objective,
                participant_id=participant_id,
                target_arrival=target_arrival,
                settings=self.settings,
            )
            if route is None:
                return Unresolved(participant_id, "no_options")
            return Resolved(participant_id, route)

        tasks = {
            asyncio.create_task(resolve(participant_id, home)): participant_id
            for participant_id, home in participants.items()
        }
        done, pending = await asyncio.wait(tasks, timeout=deadline)

        resolutions: Dict[str, Resolution] = {}
        for task in done:
            # Unexpected errors are bugs, not partial results; let them surface.
            resolutions[tasks[task]] = task.result()
        if pending:
            logger.warning("Planning deadline of %.1fs hit; %d participant(s) still pending", deadline, len(pending))
            for task in pending:
                task.cancel()
                resolutions[tasks[task]] = Unresolved(tasks[task], "timeout")
            await asyncio.gather(*pending, return_exceptions=True)
        return resolutions

    def _validate(self, destination: Location, target_arrival: datetime, gap: int) -> None:
        if not destination.code or not destination.code.strip():
            raise InvalidInputError("destination needs a location code")
        if target_arrival.tzinfo is None or target_arrival.utcoffset() is None:
            raise InvalidInputError("target_arrival must be timezone-aware")
        if gap <= 0:
            raise InvalidInputError("max_gap_minutes must be positive")

    def _plan_currency(self, routes: Mapping[str, Route]) -> str:
        currencies = {route.currency for route in routes.values()}
        if len(currencies) > 1:
            raise CurrencyMismatchError(f"routes quote several currencies: {sorted(currencies)}")
        return currencies.pop() if currencies else self.settings.currency


def build_default_planner(settings: PlannerSettings) -> GroupPlanBuilder:
    return GroupPlanBuilder(OptionAggregator.with_defaults(settings), settings)
