"""Stop every running timer in a database."""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient

from app.services.time_tracking_service import TimeTrackingService


async def stop_all_timers(mongodb_url: str, db_name: str):
    """Close all running timers and report what was stopped."""
    client = AsyncIOMotorClient(mongodb_url, tz_aware=True)
    db = client[db_name]

    service = TimeTrackingService(db)
    result = await service.stop_all_timers()

    for entry_id in result.stopped_ids:
        print(f"Stopped {entry_id}")
    print(f"Stopped {result.stopped_count} running timers")

    client.close()

if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python stop_all_timers.py <mongodb_url> <db_name>")
        sys.exit(1)

    asyncio.run(stop_all_timers(sys.argv[1], sys.argv[2]))
