"""Meeting-point clustering: group close-in-time arrivals into rendezvous windows."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Mapping

from rendezvous.errors import InvalidInputError
from rendezvous.schemas import Route

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def cluster(arrivals: Iterable[datetime], max_gap_minutes: int) -> List[datetime]:
    """
    Sort the arrivals and walk them once. An arrival joins the open cluster when
    its gap to the previous arrival is at most ``max_gap_minutes`` (inclusive);
    otherwise the open cluster is closed and a new one starts. Each cluster is
    emitted as the mean of its members, truncated to the millisecond.

    Gaps are chained, not measured from the first member, so a cluster of three
    or more arrivals can span more than ``max_gap_minutes``.
    """
    if max_gap_minutes <= 0:
        raise InvalidInputError("max_gap_minutes must be positive")
    instants = list(arrivals)
    for instant in instants:
        if instant.tzinfo is None or instant.utcoffset() is None:
            raise InvalidInputError("arrival instants must be timezone-aware")
    ordered = sorted(instants)
    if not ordered:
        return []

    max_gap = timedelta(minutes=max_gap_minutes)
    meeting_points: List[datetime] = []
    current: List[datetime] = [ordered[0]]
    for previous, instant in zip(ordered, ordered[1:]):
        if instant - previous <= max_gap:
            current.append(instant)
        else:
            meeting_points.append(_mean_instant(current))
            current = [instant]
    meeting_points.append(_mean_instant(current))
    return meeting_points


def find_group_meeting_points(routes: Mapping[str, Route], max_gap_minutes: int = 60) -> List[datetime]:
    """Cluster the arrival instant of every segment of every route."""
    arrivals = [instant for route in routes.values() for instant in route.arrival_times]
    return cluster(arrivals, max_gap_minutes)


def _mean_instant(instants: List[datetime]) -> datetime:
    # Python ints do not overflow, so summing epoch milliseconds is safe for any group size.
    total_ms = sum(_epoch_millis(instant) for instant in instants)
    return _EPOCH + timedelta(milliseconds=total_ms // len(instants))


def _epoch_millis(instant: datetime) -> int:
    delta = instant - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000
