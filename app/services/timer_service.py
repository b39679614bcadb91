"""Timer service - start/stop transitions for running timers."""
import logging
from typing import Callable, Optional

from app.errors import NotFoundError
from app.models.time_entry import EntityType, StopAllResult, TimeEntry
from app.services.time_entry_store import TimeEntryStore
from app.utils.locks import EntityLockRegistry, entity_locks
from app.utils.timestamps import format_iso, now_us

logger = logging.getLogger(__name__)


class TimerService:
    """Enforces at most one running entry per (entity_type, entity_id).

    Transitions for the same entity are serialized through a per-entity
    lock; different entities never wait on each other.
    """

    def __init__(
        self,
        store: TimeEntryStore,
        locks: EntityLockRegistry = entity_locks,
        clock: Callable[[], int] = now_us,
    ):
        """Initialize service with a store, a lock registry and a clock."""
        self.store = store
        self.locks = locks
        self.clock = clock

    def _key(self, entity_type: EntityType, entity_id: str) -> tuple[str, str]:
        return (EntityType(entity_type).value, entity_id)

    async def start(
        self,
        entity_type: EntityType,
        entity_id: str,
        person_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TimeEntry:
        """
        Start a timer for an entity.

        A timer already running on the same entity is stopped first rather
        than rejecting the start.

        Args:
            entity_type: Task or project
            entity_id: Task or project ID
            person_id: Optional person logging the time
            description: Optional description

        Returns:
            The new running time entry
        """
        async with self.locks.hold(self._key(entity_type, entity_id)):
            now = self.clock()
            running = await self.store.find_running(entity_type, entity_id)
            if running:
                replaced = await self.store.close(running, now)
                if replaced:
                    logger.info(
                        "Replaced running timer %s on %s %s after %dus",
                        replaced.id, replaced.entity_type.value, entity_id, replaced.duration_us,
                    )

            entry = await self.store.create(
                entity_type=entity_type,
                entity_id=entity_id,
                start_time=now,
                person_id=person_id,
                description=description,
                is_running=True,
            )

        logger.info(
            "Started timer %s on %s %s at %s",
            entry.id, entry.entity_type.value, entity_id, format_iso(now),
        )
        return entry

    async def stop(self, entity_type: EntityType, entity_id: str) -> TimeEntry:
        """
        Stop the running timer for an entity.

        Returns:
            The closed time entry with end_time and duration_us set

        Raises:
            NotFoundError: If no timer is running for the entity
        """
        entity_type = EntityType(entity_type)
        async with self.locks.hold(self._key(entity_type, entity_id)):
            running = await self.store.find_running(entity_type, entity_id)
            if not running:
                raise NotFoundError(f"No running timer found for this {entity_type.value}")

            entry = await self.store.close(running, self.clock())
            if not entry:
                raise NotFoundError(f"No running timer found for this {entity_type.value}")

        logger.info("Stopped timer %s after %dus", entry.id, entry.duration_us)
        return entry

    async def stop_all(self) -> StopAllResult:
        """
        Stop every running timer.

        Works from a snapshot: timers started after the scan are left alone,
        and each stop takes only its own entity's lock.

        Returns:
            Count and IDs of the timers that were stopped
        """
        running = await self.store.list_all_running()
        now = self.clock()
        stopped_ids = []

        for entry in running:
            async with self.locks.hold(self._key(entry.entity_type, entry.entity_id)):
                closed = await self.store.close(entry, now)
            if closed:
                stopped_ids.append(closed.id)

        logger.info("Stopped %d running timers", len(stopped_ids))
        return StopAllResult(stopped_count=len(stopped_ids), stopped_ids=stopped_ids)
