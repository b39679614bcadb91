"""Time entry model definitions."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from app.utils.duration import format_duration_compact, format_timer_display


class EntityType(str, Enum):
    """Kinds of entity that can own time entries."""

    TASK = "task"
    PROJECT = "project"


class TimeEntryBase(BaseModel):
    """Base time entry fields."""

    entity_type: EntityType
    entity_id: str
    person_id: Optional[str] = None
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_us: Optional[int] = None
    is_running: bool = False


class TimerStart(BaseModel):
    """Request model for starting a timer."""

    person_id: Optional[str] = None
    description: Optional[str] = None


class TimeEntryCreate(BaseModel):
    """Manual time entry creation model.

    Duration inputs are checked in order: duration_us, duration_minutes,
    duration (human string like "1h 30m"), then end_time - start_time.
    """

    person_id: Optional[str] = None
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_us: Optional[int] = Field(default=None, ge=0)
    duration_minutes: Optional[float] = Field(default=None, ge=0)
    duration: Optional[str] = None


class TimeEntryUpdate(BaseModel):
    """Time entry update model - all fields optional."""

    person_id: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_us: Optional[int] = Field(default=None, ge=0)
    duration_minutes: Optional[float] = Field(default=None, ge=0)
    duration: Optional[str] = None


class TimeEntry(TimeEntryBase):
    """Full time entry model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}

    @computed_field
    @property
    def duration_display(self) -> Optional[str]:
        """Compact human-readable duration, None while running."""
        if self.duration_us is None:
            return None
        return format_duration_compact(self.duration_us)


class RunningTimer(TimeEntry):
    """A running time entry with its live elapsed time."""

    current_session_us: int
    entity_name: Optional[str] = None

    @computed_field
    @property
    def elapsed_display(self) -> str:
        """Clock-style elapsed time, e.g. "01:05:09"."""
        return format_timer_display(self.current_session_us)


class StopAllResult(BaseModel):
    """Result of stopping every running timer."""

    stopped_count: int
    stopped_ids: list[str]
