"""Time entry endpoints - timers, manual entries and time summaries."""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.database import get_database
from app.errors import ConflictError, NotFoundError, TimeTrackingError, ValidationError
from app.models.summary import TimeSummary
from app.models.time_entry import (
    EntityType,
    RunningTimer,
    StopAllResult,
    TimeEntry,
    TimeEntryCreate,
    TimeEntryUpdate,
    TimerStart,
)
from app.services.time_tracking_service import TimeTrackingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/time-entries", tags=["time-entries"])

STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
}


def to_http_exception(error: TimeTrackingError) -> HTTPException:
    """Translate a domain error into an HTTP error response."""
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            logger.debug("%s -> %d: %s", type(error).__name__, status_code, error.message)
            return HTTPException(status_code=status_code, detail=error.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)


@router.get("/running", response_model=list[RunningTimer])
async def list_running_timers(db=Depends(get_database)):
    """
    List all currently running timers.

    - Includes live elapsed time (current_session_us) and entity name
    """
    service = TimeTrackingService(db)
    return await service.list_running_timers()


@router.post("/stop-all", response_model=StopAllResult)
async def stop_all_timers(db=Depends(get_database)):
    """
    Stop every running timer.
    """
    service = TimeTrackingService(db)
    return await service.stop_all_timers()


@router.get("/{entity_type}/{entity_id}", response_model=list[TimeEntry])
async def list_entries(
    entity_type: EntityType,
    entity_id: str,
    db=Depends(get_database),
):
    """
    List time entries for a task or project.

    - Results sorted by start_time descending (most recent first)
    """
    service = TimeTrackingService(db)
    return await service.list_entries(entity_type, entity_id)


@router.get("/{entity_type}/{entity_id}/summary", response_model=TimeSummary)
async def get_summary(
    entity_type: EntityType,
    entity_id: str,
    db=Depends(get_database),
):
    """
    Get the time summary for a task or project.

    - Tasks include all subtasks
    - Projects include their tasks (with subtasks) and all subprojects
    """
    service = TimeTrackingService(db)
    try:
        return await service.get_summary(entity_type, entity_id)
    except TimeTrackingError as e:
        raise to_http_exception(e)


@router.post(
    "/{entity_type}/{entity_id}/start",
    response_model=TimeEntry,
    status_code=status.HTTP_201_CREATED,
)
async def start_timer(
    entity_type: EntityType,
    entity_id: str,
    timer_start: TimerStart | None = None,
    db=Depends(get_database),
):
    """
    Start a timer for a task or project.

    - Entity must exist
    - A timer already running on the same entity is stopped first
    """
    timer_start = timer_start or TimerStart()
    service = TimeTrackingService(db)
    try:
        return await service.start_timer(
            entity_type,
            entity_id,
            person_id=timer_start.person_id,
            description=timer_start.description,
        )
    except TimeTrackingError as e:
        raise to_http_exception(e)


@router.post("/{entity_type}/{entity_id}/stop", response_model=TimeEntry)
async def stop_timer(
    entity_type: EntityType,
    entity_id: str,
    db=Depends(get_database),
):
    """
    Stop the running timer for a task or project.

    - Returns 404 if no timer is running
    """
    service = TimeTrackingService(db)
    try:
        return await service.stop_timer(entity_type, entity_id)
    except TimeTrackingError as e:
        raise to_http_exception(e)


@router.post(
    "/{entity_type}/{entity_id}",
    response_model=TimeEntry,
    status_code=status.HTTP_201_CREATED,
)
async def create_entry(
    entity_type: EntityType,
    entity_id: str,
    entry_create: TimeEntryCreate,
    db=Depends(get_database),
):
    """
    Record a manual time entry.

    - Entity must exist
    - Duration is calculated from start/end if not provided
    """
    service = TimeTrackingService(db)
    try:
        return await service.add_manual_entry(entity_type, entity_id, entry_create)
    except TimeTrackingError as e:
        raise to_http_exception(e)


@router.get("/{entry_id}", response_model=TimeEntry)
async def get_entry(entry_id: str, db=Depends(get_database)):
    """
    Get a specific time entry by ID.
    """
    service = TimeTrackingService(db)
    try:
        return await service.get_entry(entry_id)
    except TimeTrackingError as e:
        raise to_http_exception(e)


@router.patch("/{entry_id}", response_model=TimeEntry)
async def update_entry(
    entry_id: str,
    entry_update: TimeEntryUpdate,
    db=Depends(get_database),
):
    """
    Update a time entry.

    - Duration is recomputed when start or end time changes
    """
    service = TimeTrackingService(db)
    try:
        return await service.update_entry(entry_id, entry_update)
    except TimeTrackingError as e:
        raise to_http_exception(e)


@router.delete("/{entry_id}")
async def delete_entry(entry_id: str, db=Depends(get_database)):
    """
    Delete a time entry.

    - Hard delete (permanent)
    - Running entries may be deleted; they leave no time behind
    """
    service = TimeTrackingService(db)
    try:
        return await service.delete_entry(entry_id)
    except TimeTrackingError as e:
        raise to_http_exception(e)
