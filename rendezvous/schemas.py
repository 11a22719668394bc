from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator


class TransportMode(str, Enum):
    AIR = "air"
    RAIL = "rail"
    BUS = "bus"
    CAR = "car"
    RIDESHARE = "rideshare"
    TAXI = "taxi"
    WALK = "walk"


class OptimizationObjective(str, Enum):
    MINIMIZE_COST = "minimize_cost"
    MINIMIZE_TIME = "minimize_time"
    BALANCED = "balanced"


UnresolvedReason = Literal["no_options", "timeout"]
PlanStatus = Literal["complete", "partial"]


# ------- Value types -------
class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    iata_code: Optional[str] = None

    def same_place(self, other: "Location") -> bool:
        return self.code.strip().casefold() == other.code.strip().casefold()


class TransportOption(BaseModel):
    """One single-leg candidate itinerary. Costs are integer minor units (cents)."""

    model_config = ConfigDict(frozen=True)

    id: str
    mode: TransportMode
    provider: str
    departure: Location
    arrival: Location
    departure_time: AwareDatetime
    arrival_time: AwareDatetime
    duration_minutes: int = Field(..., ge=0)
    cost: int = Field(..., ge=0)
    currency: str = "EUR"
    stops: List[Location] = Field(default_factory=list)
    booking_url: Optional[str] = None

    @model_validator(mode="after")
    def _duration_matches_timestamps(self) -> "TransportOption":
        if self.arrival_time - self.departure_time != timedelta(minutes=self.duration_minutes):
            raise ValueError(
                f"duration_minutes={self.duration_minutes} does not match "
                f"{self.departure_time.isoformat()} -> {self.arrival_time.isoformat()}"
            )
        return self


class Route(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    participant_id: str
    segments: List[TransportOption] = Field(..., min_length=1)
    total_duration_minutes: int = Field(..., ge=0)
    total_cost: int = Field(..., ge=0)
    currency: str
    score: float
    # Latest moment the participant can leave home and still arrive by the target time.
    latest_departure: Optional[AwareDatetime] = None

    @classmethod
    def from_option(
        cls,
        participant_id: str,
        option: TransportOption,
        score: float,
        target_arrival: Optional[datetime] = None,
    ) -> "Route":
        return cls(
            id=f"route-{participant_id}-{option.id}",
            participant_id=participant_id,
            segments=[option],
            total_duration_minutes=option.duration_minutes,
            total_cost=option.cost,
            currency=option.currency,
            score=score,
            latest_departure=(
                target_arrival - timedelta(minutes=option.duration_minutes)
                if target_arrival is not None
                else None
            ),
        )

    @property
    def arrival_times(self) -> List[datetime]:
        return [segment.arrival_time for segment in self.segments]


class UnresolvedParticipant(BaseModel):
    model_config = ConfigDict(frozen=True)

    participant_id: str
    reason: UnresolvedReason


class TransportPlan(BaseModel):
    """Snapshot of one planning run; re-planning builds a new plan."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    participant_routes: Dict[str, Route] = Field(default_factory=dict)
    group_arrivals: List[AwareDatetime] = Field(default_factory=list)
    total_group_cost: int = Field(0, ge=0)
    currency: str = "EUR"
    objective: OptimizationObjective
    created_at: AwareDatetime
    status: PlanStatus = "complete"
    unresolved: List[UnresolvedParticipant] = Field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return self.status == "partial"

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str | bytes) -> "TransportPlan":
        return cls.model_validate_json(raw)


# ------- Request models -------
class OptionsRequest(BaseModel):
    origin: Location
    destination: Location
    departure_time: AwareDatetime
    mode: Optional[TransportMode] = None


class PlanRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_id: str = "unassigned-event"
    participants: Dict[str, Location]
    destination: Location
    target_arrival: AwareDatetime
    objective: OptimizationObjective = OptimizationObjective.BALANCED
    max_gap_minutes: Optional[int] = None


class MeetingPointsRequest(BaseModel):
    arrivals: List[AwareDatetime]
    max_gap_minutes: int = 60


# ------- Response models -------
class MeetingPointsResponse(BaseModel):
    meeting_points: List[AwareDatetime] = Field(default_factory=list)
