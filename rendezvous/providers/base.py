"""Adapter contract shared by every transport-mode option provider."""
from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List

from rendezvous.errors import ProviderAdapterError
from rendezvous.schemas import Location, TransportMode, TransportOption

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("RENDEZVOUS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class OptionProvider(ABC):
    """
    Blueprint for one transport mode's source of candidate itineraries.
    Synthetic generators and real fare/schedule clients sit behind the same
    method, so the aggregator never needs to know which one it is talking to.
    """

    mode: TransportMode

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def generate(self, origin: Location, destination: Location, departure: datetime) -> List[TransportOption]:
        """Return candidate options; an empty list means no service, not an error.

        Transient provider failures are raised as ``ProviderAdapterError``.
        """


def fetch_with_retry(
    provider: OptionProvider,
    origin: Location,
    destination: Location,
    departure: datetime,
    *,
    attempts: int = 3,
    backoff_seconds: float = 0.2,
    max_backoff_seconds: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> List[TransportOption]:
    """Call ``provider`` with exponential backoff; degrade to ``[]`` once retries run out."""
    for attempt in range(1, attempts + 1):
        try:
            return provider.generate(origin, destination, departure)
        except ProviderAdapterError as exc:
            if attempt == attempts:
                logger.error(
                    "%s gave up after %d attempt(s) for %s->%s: %s",
                    provider.name,
                    attempts,
                    origin.code,
                    destination.code,
                    exc,
                )
                return []
            delay = min(max_backoff_seconds, backoff_seconds * (2 ** (attempt - 1)))
            logger.warning(
                "%s attempt %d/%d failed (%s); retrying in %.2fs",
                provider.name,
                attempt,
                attempts,
                exc,
                delay,
            )
            sleep(delay)
    return []
