from datetime import datetime, timedelta, timezone

import pytest

from rendezvous.config import PlannerSettings
from rendezvous.schemas import Location, OptimizationObjective, TransportMode, TransportOption
from rendezvous.selector import balanced_score, select_best_route

DEPART = datetime(2025, 12, 25, 8, 0, tzinfo=timezone.utc)
PARIS = Location(code="PAR", name="Paris")
BARCELONA = Location(code="BCN", name="Barcelona")


def _option(option_id: str, cost: int, duration: int, mode: TransportMode = TransportMode.RAIL) -> TransportOption:
    return TransportOption(
        id=option_id,
        mode=mode,
        provider="Stub",
        departure=PARIS,
        arrival=BARCELONA,
        departure_time=DEPART,
        arrival_time=DEPART + timedelta(minutes=duration),
        duration_minutes=duration,
        cost=cost,
    )


def _options():
    # Already in the aggregator's cost-ascending order.
    return [
        _option("A", 1_000, 300),
        _option("B", 1_000, 100),
        _option("C", 5_000, 60, TransportMode.AIR),
    ]


def test_minimize_cost_takes_first_of_tied_cheapest():
    route = select_best_route(_options(), OptimizationObjective.MINIMIZE_COST)

    assert route.segments[0].id == "A"
    assert route.total_cost == 1_000
    assert route.score == 1_000.0


def test_minimize_cost_never_beaten_by_another_option():
    options = _options()
    route = select_best_route(options, OptimizationObjective.MINIMIZE_COST)

    assert all(route.total_cost <= option.cost for option in options)


def test_minimize_time_picks_fastest():
    route = select_best_route(_options(), OptimizationObjective.MINIMIZE_TIME)

    assert route.segments[0].id == "C"
    assert route.total_duration_minutes == 60
    assert route.score == 60.0


def test_minimize_time_ties_keep_cost_order():
    options = [_option("cheap", 900, 120), _option("dear", 4_000, 120)]

    route = select_best_route(options, OptimizationObjective.MINIMIZE_TIME)

    assert route.segments[0].id == "cheap"


def test_balanced_weighs_cost_against_time():
    route = select_best_route(_options(), OptimizationObjective.BALANCED)

    # A: 0.004 + 0.125, B: 0.004 + 0.0417, C: 0.02 + 0.025
    assert route.segments[0].id == "C"
    assert route.score == pytest.approx(0.045)


def test_balanced_caps_normalise_without_clamping():
    option = _option("long-haul", 200_000, 2_880)

    assert balanced_score(option) == pytest.approx(2.0)


def test_balanced_weights_come_from_settings():
    cost_only = PlannerSettings(cost_weight=1.0, time_weight=0.0)

    route = select_best_route(_options(), OptimizationObjective.BALANCED, settings=cost_only)

    assert route.segments[0].id == "A"
    assert route.score == pytest.approx(1_000 / 100_000)


def test_selected_option_is_one_of_the_inputs():
    options = _options()
    for objective in OptimizationObjective:
        route = select_best_route(options, objective)
        assert route.segments[0] in options
        assert len(route.segments) == 1


def test_no_options_means_no_route():
    assert select_best_route([], OptimizationObjective.BALANCED) is None


def test_route_carries_participant_and_departure_deadline():
    target = datetime(2025, 12, 25, 14, 0, tzinfo=timezone.utc)

    route = select_best_route(
        _options(),
        OptimizationObjective.MINIMIZE_COST,
        participant_id="user1",
        target_arrival=target,
    )

    assert route.participant_id == "user1"
    assert route.id == "route-user1-A"
    assert route.currency == "EUR"
    assert route.latest_departure == target - timedelta(minutes=300)
