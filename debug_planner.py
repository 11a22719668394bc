# debug_planner.py
import asyncio
from datetime import datetime, timezone

from rendezvous.config import load_settings
from rendezvous.planner import build_default_planner
from rendezvous.schemas import Location, OptimizationObjective


async def main():
    settings = load_settings()
    planner = build_default_planner(settings)

    participants = {
        "alice": Location(code="PAR", name="Paris", iata_code="CDG"),
        "bruno": Location(code="LYS", name="Lyon", iata_code="LYS"),
        "chloe": Location(code="MRS", name="Marseille", iata_code="MRS"),
        "dario": Location(code="BCN", name="Barcelona", iata_code="BCN"),
    }
    destination = Location(code="BCN", name="Barcelona", iata_code="BCN")
    target_arrival = datetime(2025, 12, 25, 14, 0, tzinfo=timezone.utc)

    # Call the planner directly
    plan = await planner.build_plan(
        participants,
        destination,
        target_arrival,
        OptimizationObjective.BALANCED,
        event_id="debug-event",
    )
    print("➡️ Planner returned:\n")
    print(plan.model_dump_json(indent=2))


if __name__ == "__main__":
    asyncio.run(main())
