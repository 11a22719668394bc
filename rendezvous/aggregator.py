"""Fan a leg query out to the mode providers and merge the answers."""
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import List, Optional, Sequence

from rendezvous.config import PlannerSettings
from rendezvous.errors import InvalidInputError
from rendezvous.providers.base import OptionProvider, fetch_with_retry
from rendezvous.providers.synthetic import default_providers
from rendezvous.schemas import Location, TransportMode, TransportOption

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("RENDEZVOUS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class OptionAggregator:
    def __init__(
        self,
        providers: Sequence[OptionProvider],
        settings: PlannerSettings | None = None,
    ) -> None:
        self.providers = list(providers)
        self.settings = settings or PlannerSettings()

    @classmethod
    def with_defaults(cls, settings: PlannerSettings) -> "OptionAggregator":
        return cls(default_providers(settings.seed, settings.currency), settings)

    def get_options(
        self,
        origin: Location,
        destination: Location,
        departure: datetime,
        mode: Optional[TransportMode] = None,
    ) -> List[TransportOption]:
        """Collect options from every provider (or only ``mode``'s) sorted by cost.

        The sort is stable, so equal fares keep provider order. An empty list
        means the leg is unreachable.
        """
        if departure.tzinfo is None or departure.utcoffset() is None:
            raise InvalidInputError("departure must be timezone-aware")

        queried = [p for p in self.providers if mode is None or p.mode == mode]
        if not queried:
            logger.warning("No provider registered for mode %s", mode.value if mode else "any")
            return []

        options: List[TransportOption] = []
        for provider in queried:
            found = fetch_with_retry(
                provider,
                origin,
                destination,
                departure,
                attempts=self.settings.provider_retries,
                backoff_seconds=self.settings.provider_backoff_seconds,
                max_backoff_seconds=self.settings.provider_max_backoff_seconds,
            )
            logger.debug("%s returned %d option(s) for %s->%s", provider.name, len(found), origin.code, destination.code)
            options.extend(found)

        options.sort(key=lambda option: option.cost)
        logger.info(
            "Collected %d option(s) for %s->%s from %d provider(s)",
            len(options),
            origin.code,
            destination.code,
            len(queried),
        )
        return options
