import asyncio
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from rendezvous.aggregator import OptionAggregator
from rendezvous.config import PlannerSettings
from rendezvous.errors import CurrencyMismatchError, InvalidInputError
from rendezvous.planner import GroupPlanBuilder, build_default_planner
from rendezvous.providers.base import OptionProvider
from rendezvous.schemas import Location, OptimizationObjective, TransportMode, TransportOption, TransportPlan

TARGET = datetime(2025, 12, 25, 14, 0, tzinfo=timezone.utc)
CREATED = datetime(2025, 12, 1, 9, 0, tzinfo=timezone.utc)
DESTINATION = Location(code="BCN", name="Barcelona")
SETTINGS = PlannerSettings(provider_backoff_seconds=0.0, plan_timeout_seconds=5.0)

# origin code -> [(cost, duration)] quoted by the stub rail provider
FARES = {
    "A": [(4_000, 300), (2_500, 480)],
    "B": [(6_000, 240), (3_100, 200)],
    "C": [(1_800, 600), (9_000, 90)],
}


class TableProvider(OptionProvider):
    mode = TransportMode.RAIL

    def __init__(self, fares, currency="EUR", delay=0.0, slow_origins=(), slow_seconds=3.0):
        self.fares = fares
        self.currency = currency
        self.delay = delay
        self.slow_origins = set(slow_origins)
        self.slow_seconds = slow_seconds
        self.calls = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def generate(self, origin, destination, departure):
        with self._lock:
            self.calls.append(origin.code)
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            if origin.code in self.slow_origins:
                time.sleep(self.slow_seconds)
            elif self.delay:
                time.sleep(self.delay)
            return [
                TransportOption(
                    id=f"{origin.code}-{index}",
                    mode=self.mode,
                    provider="Table Rail",
                    departure=origin,
                    arrival=destination,
                    departure_time=departure,
                    arrival_time=departure + timedelta(minutes=duration),
                    duration_minutes=duration,
                    cost=cost,
                    currency=self.currency,
                )
                for index, (cost, duration) in enumerate(self.fares.get(origin.code, []))
            ]
        finally:
            with self._lock:
                self.active -= 1


def _builder(provider, settings=SETTINGS):
    return GroupPlanBuilder(OptionAggregator([provider], settings), settings, clock=lambda: CREATED)


def _participants(*codes):
    return {f"user-{code.lower()}": Location(code=code, name=f"Home {code}") for code in codes}


def test_cost_plan_sums_cheapest_fares():
    builder = _builder(TableProvider(FARES))

    plan = builder.build_plan_blocking(
        _participants("A", "B", "C"), DESTINATION, TARGET, OptimizationObjective.MINIMIZE_COST, event_id="evt-1"
    )

    assert plan.event_id == "evt-1"
    assert plan.status == "complete"
    assert plan.unresolved == []
    assert list(plan.participant_routes) == ["user-a", "user-b", "user-c"]
    assert plan.total_group_cost == 2_500 + 3_100 + 1_800
    assert plan.currency == "EUR"
    assert plan.objective == OptimizationObjective.MINIMIZE_COST
    assert plan.created_at == CREATED


def test_time_plan_picks_fastest_per_participant():
    plan = _builder(TableProvider(FARES)).build_plan_blocking(
        _participants("A", "B", "C"), DESTINATION, TARGET, OptimizationObjective.MINIMIZE_TIME
    )

    durations = {pid: route.total_duration_minutes for pid, route in plan.participant_routes.items()}
    assert durations == {"user-a": 300, "user-b": 200, "user-c": 90}


def test_rendezvous_windows_cluster_resolved_arrivals():
    plan = _builder(TableProvider(FARES)).build_plan_blocking(
        _participants("A", "B", "C"),
        DESTINATION,
        TARGET,
        OptimizationObjective.MINIMIZE_TIME,
        max_gap_minutes=60,
    )

    # Arrivals: +90 (C), +200 (B), +300 (A) minutes after the target; gaps of 110 and 100.
    assert plan.group_arrivals == [
        TARGET + timedelta(minutes=90),
        TARGET + timedelta(minutes=200),
        TARGET + timedelta(minutes=300),
    ]

    wide = _builder(TableProvider(FARES)).build_plan_blocking(
        _participants("A", "B", "C"),
        DESTINATION,
        TARGET,
        OptimizationObjective.MINIMIZE_TIME,
        max_gap_minutes=120,
    )
    # mean of +90, +200 and +300 minutes
    assert wide.group_arrivals == [TARGET + timedelta(seconds=11_800)]


def test_routes_expose_latest_departure():
    plan = _builder(TableProvider(FARES)).build_plan_blocking(
        _participants("C"), DESTINATION, TARGET, OptimizationObjective.MINIMIZE_COST
    )

    route = plan.participant_routes["user-c"]
    assert route.latest_departure == TARGET - timedelta(minutes=600)


def test_empty_participants_give_empty_plan():
    provider = TableProvider(FARES)

    plan = _builder(provider).build_plan_blocking({}, DESTINATION, TARGET, OptimizationObjective.BALANCED)

    assert plan.participant_routes == {}
    assert plan.total_group_cost == 0
    assert plan.group_arrivals == []
    assert plan.status == "complete"
    assert provider.calls == []


def test_participant_without_options_makes_plan_partial():
    plan = _builder(TableProvider(FARES)).build_plan_blocking(
        _participants("A", "NOWHERE", "B"), DESTINATION, TARGET, OptimizationObjective.MINIMIZE_COST
    )

    assert plan.is_partial
    assert [(u.participant_id, u.reason) for u in plan.unresolved] == [("user-nowhere", "no_options")]
    assert set(plan.participant_routes) == {"user-a", "user-b"}
    assert plan.total_group_cost == 2_500 + 3_100
    assert len(plan.group_arrivals) >= 1


def test_slow_participant_times_out_without_blocking_the_rest():
    builder = _builder(TableProvider(FARES, slow_origins={"B"}))

    started = time.monotonic()
    plan = builder.build_plan_blocking(
        _participants("A", "B", "C"), DESTINATION, TARGET, OptimizationObjective.MINIMIZE_COST, timeout=0.2
    )
    elapsed = time.monotonic() - started
    builder.close()

    assert elapsed < 1.0
    assert plan.status == "partial"
    assert [(u.participant_id, u.reason) for u in plan.unresolved] == [("user-b", "timeout")]
    assert set(plan.participant_routes) == {"user-a", "user-c"}


def test_async_plan_returns_at_the_deadline():
    builder = _builder(TableProvider(FARES, slow_origins={"C"}))

    async def run():
        started = time.monotonic()
        plan = await builder.build_plan(
            _participants("A", "C"), DESTINATION, TARGET, OptimizationObjective.MINIMIZE_COST, timeout=0.2
        )
        return plan, time.monotonic() - started

    plan, elapsed = asyncio.run(run())
    builder.close()

    assert elapsed < 1.0
    assert [(u.participant_id, u.reason) for u in plan.unresolved] == [("user-c", "timeout")]
    assert set(plan.participant_routes) == {"user-a"}


def test_worker_bound_holds_across_a_timed_out_run():
    settings = PlannerSettings(provider_backoff_seconds=0.0, max_workers=2, plan_timeout_seconds=5.0)
    fares = {code: [(1_000, 60)] for code in "DEFG"}
    provider = TableProvider(fares, delay=0.05, slow_origins={"S"}, slow_seconds=1.0)
    builder = _builder(provider, settings)

    first = builder.build_plan_blocking(_participants("S"), DESTINATION, TARGET, timeout=0.1)
    second = builder.build_plan_blocking(_participants(*"DEFG"), DESTINATION, TARGET)
    builder.close()

    assert first.unresolved[0].reason == "timeout"
    assert len(second.participant_routes) == 4
    assert provider.peak <= 2


def test_fan_out_respects_worker_bound():
    settings = PlannerSettings(provider_backoff_seconds=0.0, max_workers=2, plan_timeout_seconds=5.0)
    fares = {code: [(1_000, 60)] for code in "DEFGHI"}
    provider = TableProvider(fares, delay=0.05)

    plan = _builder(provider, settings).build_plan_blocking(
        _participants(*"DEFGHI"), DESTINATION, TARGET, OptimizationObjective.BALANCED
    )

    assert len(plan.participant_routes) == 6
    assert provider.peak <= 2


@pytest.mark.parametrize(
    "destination, target, gap",
    [
        (Location(code="  ", name="Nowhere"), TARGET, None),
        (DESTINATION, datetime(2025, 12, 25, 14, 0), None),
        (DESTINATION, TARGET, 0),
    ],
)
def test_invalid_input_rejected_before_provider_calls(destination, target, gap):
    provider = TableProvider(FARES)

    with pytest.raises(InvalidInputError):
        _builder(provider).build_plan_blocking(
            _participants("A"), destination, target, OptimizationObjective.BALANCED, max_gap_minutes=gap
        )
    assert provider.calls == []


def test_mixed_currencies_cannot_be_totalled():
    class SplitCurrencyProvider(TableProvider):
        def generate(self, origin, destination, departure):
            options = super().generate(origin, destination, departure)
            if origin.code == "B":
                return [o.model_copy(update={"currency": "GBP"}) for o in options]
            return options

    with pytest.raises(CurrencyMismatchError):
        _builder(SplitCurrencyProvider(FARES)).build_plan_blocking(
            _participants("A", "B"), DESTINATION, TARGET, OptimizationObjective.MINIMIZE_COST
        )


def test_plan_survives_json_round_trip():
    plan = _builder(TableProvider(FARES)).build_plan_blocking(
        _participants("A", "NOWHERE", "C"), DESTINATION, TARGET, OptimizationObjective.BALANCED
    )

    restored = TransportPlan.from_json(plan.to_json())

    assert restored == plan
    assert restored.participant_routes == plan.participant_routes
    assert restored.group_arrivals == plan.group_arrivals
    assert restored.total_group_cost == plan.total_group_cost
    assert restored.unresolved == plan.unresolved


def test_default_planner_resolves_everyone():
    async def run() -> None:
        planner = build_default_planner(PlannerSettings(seed=11))
        participants = {
            "user1": Location(code="PAR", name="Paris"),
            "user2": Location(code="LYS", name="Lyon"),
        }

        for objective in OptimizationObjective:
            plan = await planner.build_plan(participants, DESTINATION, TARGET, objective)
            assert plan.objective == objective
            assert set(plan.participant_routes) == {"user1", "user2"}
            assert plan.total_group_cost == sum(r.total_cost for r in plan.participant_routes.values())
            assert plan.total_group_cost > 0
            assert 1 <= len(plan.group_arrivals) <= 2

    asyncio.run(run())
