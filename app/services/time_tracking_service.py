"""Time tracking service - the operations the rest of the application calls."""
import logging
from typing import Callable, Optional

from app.errors import NotFoundError, ValidationError
from app.models.summary import TimeSummary
from app.models.time_entry import (
    EntityType,
    RunningTimer,
    StopAllResult,
    TimeEntry,
    TimeEntryCreate,
    TimeEntryUpdate,
)
from app.services.hierarchy_service import HierarchyService
from app.services.rollup_service import RollupService
from app.services.time_entry_store import TimeEntryStore
from app.services.timer_service import TimerService
from app.utils.duration import parse_duration, to_microseconds
from app.utils.locks import EntityLockRegistry, entity_locks
from app.utils.timestamps import now_us, to_us

logger = logging.getLogger(__name__)


def resolve_duration(
    duration_us: Optional[int] = None,
    duration_minutes: Optional[float] = None,
    duration: Optional[str] = None,
) -> Optional[int]:
    """
    Pick the explicit duration from the supported inputs.

    Precedence: duration_us, then duration_minutes, then a human duration
    string such as "1h 30m".

    Returns:
        Duration in microseconds, or None if none was given

    Raises:
        ValidationError: If the duration string cannot be parsed or is negative
    """
    if duration_us is not None:
        return duration_us
    if duration_minutes is not None:
        return to_microseconds(duration_minutes, "m")
    if duration is not None:
        parsed = parse_duration(duration)
        if parsed is None:
            raise ValidationError(f'Invalid duration: "{duration}"')
        if parsed < 0:
            raise ValidationError("Duration must be non-negative")
        return parsed
    return None


class TimeTrackingService:
    """Facade over the store, timer state machine and rollup engine."""

    def __init__(
        self,
        db,
        locks: EntityLockRegistry = entity_locks,
        clock: Callable[[], int] = now_us,
    ):
        """Initialize service with database connection."""
        self.db = db
        self.clock = clock
        self.store = TimeEntryStore(db)
        self.hierarchy = HierarchyService(db)
        self.timers = TimerService(self.store, locks=locks, clock=clock)
        self.rollups = RollupService(self.store, self.hierarchy, clock=clock)

    async def _require_entity(self, entity_type: EntityType, entity_id: str) -> None:
        """
        Raises:
            NotFoundError: If the task or project does not exist
        """
        if EntityType(entity_type) == EntityType.TASK:
            if not await self.hierarchy.get_task(entity_id):
                raise NotFoundError("Task not found")
        elif not await self.hierarchy.get_project(entity_id):
            raise NotFoundError("Project not found")

    # Timers

    async def start_timer(
        self,
        entity_type: EntityType,
        entity_id: str,
        person_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TimeEntry:
        """
        Start a timer, stopping any timer already running on the entity.

        Raises:
            NotFoundError: If the entity does not exist
        """
        await self._require_entity(entity_type, entity_id)
        return await self.timers.start(
            entity_type,
            entity_id,
            person_id=person_id,
            description=description,
        )

    async def stop_timer(self, entity_type: EntityType, entity_id: str) -> TimeEntry:
        """
        Stop the running timer on an entity.

        Raises:
            NotFoundError: If no timer is running for the entity
        """
        return await self.timers.stop(entity_type, entity_id)

    async def start_task_timer(
        self,
        task_id: str,
        person_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TimeEntry:
        return await self.start_timer(EntityType.TASK, task_id, person_id, description)

    async def stop_task_timer(self, task_id: str) -> TimeEntry:
        return await self.stop_timer(EntityType.TASK, task_id)

    async def start_project_timer(
        self,
        project_id: str,
        person_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TimeEntry:
        return await self.start_timer(EntityType.PROJECT, project_id, person_id, description)

    async def stop_project_timer(self, project_id: str) -> TimeEntry:
        return await self.stop_timer(EntityType.PROJECT, project_id)

    async def list_running_timers(self) -> list[RunningTimer]:
        """
        List every running timer with its live elapsed time and entity name.

        Elapsed time is computed at call time and never written back.
        """
        running = await self.store.list_all_running()
        task_ids = [e.entity_id for e in running if e.entity_type == EntityType.TASK]
        project_ids = [e.entity_id for e in running if e.entity_type == EntityType.PROJECT]
        tasks = await self.hierarchy.tasks_by_ids(task_ids)
        projects = await self.hierarchy.projects_by_ids(project_ids)

        now = self.clock()
        timers = []
        for entry in running:
            if entry.entity_type == EntityType.TASK:
                node = tasks.get(entry.entity_id)
                entity_name = node.title if node else None
            else:
                node = projects.get(entry.entity_id)
                entity_name = node.name if node else None
            timers.append(RunningTimer(
                **entry.model_dump(),
                current_session_us=max(0, now - to_us(entry.start_time)),
                entity_name=entity_name,
            ))
        return timers

    async def stop_all_timers(self) -> StopAllResult:
        """Stop every running timer."""
        return await self.timers.stop_all()

    # Entries

    async def add_manual_entry(
        self,
        entity_type: EntityType,
        entity_id: str,
        entry_create: TimeEntryCreate,
    ) -> TimeEntry:
        """
        Record a completed time entry.

        An explicit duration wins over end_time - start_time. With a
        duration but no end_time, the end is start + duration.

        Raises:
            NotFoundError: If the entity does not exist
            ValidationError: If the interval or duration is invalid
        """
        await self._require_entity(entity_type, entity_id)
        duration_us = resolve_duration(
            entry_create.duration_us,
            entry_create.duration_minutes,
            entry_create.duration,
        )
        return await self.store.create(
            entity_type=entity_type,
            entity_id=entity_id,
            start_time=to_us(entry_create.start_time),
            end_time=to_us(entry_create.end_time) if entry_create.end_time else None,
            duration_us=duration_us,
            person_id=entry_create.person_id,
            description=entry_create.description,
        )

    async def get_entry(self, entry_id: str) -> TimeEntry:
        """
        Raises:
            NotFoundError: If entry not found
        """
        return await self.store.get(entry_id)

    async def list_entries(self, entity_type: EntityType, entity_id: str) -> list[TimeEntry]:
        """List an entity's own entries, newest first."""
        return await self.store.list_by_entity(entity_type, entity_id)

    async def update_entry(self, entry_id: str, entry_update: TimeEntryUpdate) -> TimeEntry:
        """
        Update a time entry.

        Raises:
            NotFoundError: If entry not found
            ValidationError: If the resulting interval or duration is invalid
        """
        duration_us = resolve_duration(
            entry_update.duration_us,
            entry_update.duration_minutes,
            entry_update.duration,
        )
        return await self.store.update(
            entry_id,
            start_time=to_us(entry_update.start_time) if entry_update.start_time else None,
            end_time=to_us(entry_update.end_time) if entry_update.end_time else None,
            duration_us=duration_us,
            description=entry_update.description,
            person_id=entry_update.person_id,
        )

    async def delete_entry(self, entry_id: str) -> dict:
        """
        Delete a time entry.

        Raises:
            NotFoundError: If entry not found
        """
        result = await self.store.delete(entry_id)
        logger.info("Deleted time entry %s", entry_id)
        return result

    # Summaries

    async def get_summary(self, entity_type: EntityType, entity_id: str) -> TimeSummary:
        """
        Raises:
            NotFoundError: If the entity does not exist
        """
        if EntityType(entity_type) == EntityType.TASK:
            return await self.rollups.task_summary(entity_id)
        return await self.rollups.project_summary(entity_id)

    async def get_task_summary(self, task_id: str) -> TimeSummary:
        return await self.rollups.task_summary(task_id)

    async def get_project_summary(self, project_id: str) -> TimeSummary:
        return await self.rollups.project_summary(project_id)
