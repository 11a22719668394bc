"""Synthetic option providers, one per transport mode.

They stand in for real fare and schedule sources. Each draws from a price and
duration band typical for its mode (rail runs longer and cheaper than air, the
bus longer and cheaper still). With a seed, the random source for a query is
derived from the seed and the query itself, so results do not depend on the
order in which concurrent participants reach the provider.
"""
from __future__ import annotations

import random
import re
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from rendezvous.providers.base import OptionProvider
from rendezvous.schemas import Location, TransportMode, TransportOption


class SyntheticProvider(OptionProvider):
    carriers: Tuple[str, ...] = ()
    departures_per_query: int = 1
    base_minutes: int = 60
    spread_minutes: int = 60
    base_cost: int = 0
    spread_cost: int = 1
    booking_url_template: Optional[str] = None

    def __init__(self, seed: Optional[int] = None, currency: str = "EUR") -> None:
        self.seed = seed
        self.currency = currency

    def generate(self, origin: Location, destination: Location, departure: datetime) -> List[TransportOption]:
        rng = self._rng_for(origin, destination, departure)
        return [self._draft(rng, origin, destination, departure) for _ in range(self.departures_per_query)]

    def _rng_for(self, origin: Location, destination: Location, departure: datetime) -> random.Random:
        if self.seed is None:
            return random.Random()
        return random.Random(
            f"{self.seed}:{self.mode.value}:{origin.code}:{destination.code}:{departure.isoformat()}"
        )

    def _draft(
        self,
        rng: random.Random,
        origin: Location,
        destination: Location,
        departure: datetime,
    ) -> TransportOption:
        carrier = rng.choice(self.carriers)
        duration = self.base_minutes + rng.randrange(self.spread_minutes)
        return self._option(rng, carrier, origin, destination, departure, duration, self._fare(rng, carrier))

    def _fare(self, rng: random.Random, carrier: str) -> int:
        return self.base_cost + rng.randrange(self.spread_cost)

    def _option(
        self,
        rng: random.Random,
        carrier: str,
        origin: Location,
        destination: Location,
        departure: datetime,
        duration: int,
        cost: int,
        stops: Sequence[Location] = (),
    ) -> TransportOption:
        return TransportOption(
            id=f"{self.mode.value}-{rng.getrandbits(32):08x}",
            mode=self.mode,
            provider=carrier,
            departure=origin,
            arrival=destination,
            departure_time=departure,
            arrival_time=departure + timedelta(minutes=duration),
            duration_minutes=duration,
            cost=cost,
            currency=self.currency,
            stops=list(stops),
            booking_url=self._booking_url(carrier),
        )

    def _booking_url(self, carrier: str) -> Optional[str]:
        if not self.booking_url_template:
            return None
        slug = re.sub(r"[^a-z0-9]+", "", carrier.lower())
        return self.booking_url_template.format(slug=slug)


class AirProvider(SyntheticProvider):
    mode = TransportMode.AIR
    carriers = ("Air France", "Ryanair", "EasyJet", "Lufthansa")
    departures_per_query = 3
    base_minutes = 120
    spread_minutes = 240
    booking_url_template = "https://{slug}.com/booking"

    STOPOVER_MINUTES = 60
    STOPOVER_HUB = Location(code="CDG", name="Paris Charles de Gaulle", iata_code="CDG")
    # carrier -> (floor, spread) in minor units
    FARE_BANDS = {
        "Ryanair": (5_000, 10_000),
        "EasyJet": (8_000, 12_000),
    }
    FULL_SERVICE_BAND = (15_000, 30_000)

    def _draft(self, rng, origin, destination, departure):
        carrier = rng.choice(self.carriers)
        has_stopover = rng.random() < 0.5
        duration = self.base_minutes + rng.randrange(self.spread_minutes)
        stops: List[Location] = []
        if has_stopover:
            duration += self.STOPOVER_MINUTES
            stops.append(self.STOPOVER_HUB)
        cost = self._fare(rng, carrier)
        return self._option(rng, carrier, origin, destination, departure, duration, cost, stops)

    def _fare(self, rng, carrier):
        floor, spread = self.FARE_BANDS.get(carrier, self.FULL_SERVICE_BAND)
        return floor + rng.randrange(spread)


class RailProvider(SyntheticProvider):
    mode = TransportMode.RAIL
    carriers = ("TGV", "Eurostar", "Thalys", "SNCF")
    departures_per_query = 2
    base_minutes = 180
    spread_minutes = 300
    base_cost = 4_500
    spread_cost = 15_500
    booking_url_template = "https://sncf.com/booking"


class BusProvider(SyntheticProvider):
    mode = TransportMode.BUS
    carriers = ("FlixBus", "Eurolines", "BlaBlaBus")
    departures_per_query = 2
    base_minutes = 300
    spread_minutes = 600
    base_cost = 2_000
    spread_cost = 8_000
    booking_url_template = "https://{slug}.com/booking"


class CarProvider(SyntheticProvider):
    mode = TransportMode.CAR
    carriers = ("Personal Car",)
    base_minutes = 240
    spread_minutes = 480
    # fuel and tolls
    base_cost = 3_000
    spread_cost = 10_000


class RideshareProvider(SyntheticProvider):
    mode = TransportMode.RIDESHARE
    carriers = ("BlaBlaCar", "Uber", "Lyft")
    departures_per_query = 2
    base_minutes = 180
    spread_minutes = 300
    base_cost = 2_500
    spread_cost = 7_500
    booking_url_template = "https://{slug}.com/booking"


class TaxiProvider(SyntheticProvider):
    mode = TransportMode.TAXI
    carriers = ("Local Taxi",)
    base_minutes = 60
    spread_minutes = 180
    base_cost = 5_000
    spread_cost = 20_000


class WalkProvider(SyntheticProvider):
    """Walking is only offered when origin and destination are the same place."""

    mode = TransportMode.WALK
    carriers = ("Walking",)
    WALK_MINUTES = 30

    def generate(self, origin, destination, departure):
        if not origin.same_place(destination):
            return []
        rng = self._rng_for(origin, destination, departure)
        return [self._option(rng, "Walking", origin, destination, departure, self.WALK_MINUTES, 0)]


def default_providers(seed: Optional[int] = None, currency: str = "EUR") -> List[OptionProvider]:
    """One synthetic provider per mode, in ``TransportMode`` order."""
    return [
        AirProvider(seed, currency),
        RailProvider(seed, currency),
        BusProvider(seed, currency),
        CarProvider(seed, currency),
        RideshareProvider(seed, currency),
        TaxiProvider(seed, currency),
        WalkProvider(seed, currency),
    ]
