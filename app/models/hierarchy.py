"""Read-only views of the task and project hierarchies."""
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def _as_id(value: Any) -> Optional[str]:
    """Normalize stored ids (strings, ObjectIds, ints) to strings."""
    if value is None or value == "":
        return None
    return str(value)


class TaskNode(BaseModel):
    """The parts of a task the time tracker needs."""

    id: str = Field(alias="_id")
    parent_task_id: Optional[str] = None
    project_id: Optional[str] = None
    title: str = ""

    model_config = {"populate_by_name": True}

    @field_validator("id", "parent_task_id", "project_id", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> Optional[str]:
        return _as_id(value)


class ProjectNode(BaseModel):
    """The parts of a project the time tracker needs."""

    id: str = Field(alias="_id")
    parent_project_id: Optional[str] = None
    name: str = ""

    model_config = {"populate_by_name": True}

    @field_validator("id", "parent_project_id", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> Optional[str]:
        return _as_id(value)
