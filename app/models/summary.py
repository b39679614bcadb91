"""Time summary (rollup) model definitions."""
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from app.models.time_entry import EntityType, TimeEntry
from app.utils.duration import format_duration


class BreakdownItem(BaseModel):
    """Rolled-up time of one descendant, with its own non-empty children."""

    id: str
    kind: EntityType
    label: str
    total_us: int
    children: list["BreakdownItem"] = Field(default_factory=list)


class TimeSummary(BaseModel):
    """Direct, descendant and total time for a task or project."""

    entity_type: EntityType
    entity_id: str
    direct_time_us: int
    children_time_us: int
    total_time_us: int
    current_session_us: int = 0
    has_running_timer: bool = False
    running_timer: Optional[TimeEntry] = None
    entries: list[TimeEntry] = Field(default_factory=list)
    children_breakdown: list[BreakdownItem] = Field(default_factory=list)

    # Project summaries only
    tasks_time_us: Optional[int] = None
    subprojects_time_us: Optional[int] = None

    @computed_field
    @property
    def direct_time_display(self) -> str:
        return format_duration(self.direct_time_us)

    @computed_field
    @property
    def children_time_display(self) -> str:
        return format_duration(self.children_time_us)

    @computed_field
    @property
    def total_time_display(self) -> str:
        return format_duration(self.total_time_us)
