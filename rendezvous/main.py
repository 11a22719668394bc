from __future__ import annotations

import os
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from rendezvous.clustering import cluster
from rendezvous.config import load_settings
from rendezvous.errors import CurrencyMismatchError, InvalidInputError
from rendezvous.planner import build_default_planner
from rendezvous.schemas import (
    MeetingPointsRequest,
    MeetingPointsResponse,
    OptionsRequest,
    PlanRequest,
    TransportOption,
    TransportPlan,
)

settings = load_settings()
planner = build_default_planner(settings)

app = FastAPI(title="Rendezvous Group Transport API")

# Local UIs reach the API from other origins; RENDEZVOUS_ALLOWED_ORIGINS narrows it.
raw_origins = os.getenv("RENDEZVOUS_ALLOWED_ORIGINS") or "*"
allowed_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
if not allowed_origins:
    allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/api/transport/options", response_model=List[TransportOption])
def api_options(request: OptionsRequest) -> List[TransportOption]:
    """Candidate legs between two places, cheapest first."""
    try:
        return planner.aggregator.get_options(
            request.origin,
            request.destination,
            request.departure_time,
            request.mode,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.post("/api/transport/plan", response_model=TransportPlan)
async def api_plan(request: PlanRequest) -> TransportPlan:
    """Primary endpoint: best route per participant plus rendezvous windows."""
    try:
        return await planner.build_plan(
            request.participants,
            request.destination,
            request.target_arrival,
            request.objective,
            event_id=request.event_id,
            max_gap_minutes=request.max_gap_minutes,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except CurrencyMismatchError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.post("/api/transport/meeting-points", response_model=MeetingPointsResponse)
def api_meeting_points(request: MeetingPointsRequest) -> MeetingPointsResponse:
    try:
        return MeetingPointsResponse(meeting_points=cluster(request.arrivals, request.max_gap_minutes))
    except InvalidInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
