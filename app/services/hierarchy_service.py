"""Hierarchy service - read access to the task and project trees."""
import logging
from typing import Any, Iterable, Optional

from bson import ObjectId

from app.config import settings
from app.models.hierarchy import ProjectNode, TaskNode

logger = logging.getLogger(__name__)

TASK_FIELDS = {"_id": 1, "parent_task_id": 1, "project_id": 1, "title": 1}
PROJECT_FIELDS = {"_id": 1, "parent_project_id": 1, "name": 1}


def stored_id_forms(entity_id: str) -> list[Any]:
    """
    Every form an ID may be stored in.

    Nodes carry IDs as strings, but the collections they come from may key
    on ObjectIds or integers. Queries match on all of them.

    Examples:
        >>> stored_id_forms("42")
        ['42', 42]
    """
    forms: list[Any] = [entity_id]
    if ObjectId.is_valid(entity_id):
        forms.append(ObjectId(entity_id))
    if entity_id.isdecimal():
        forms.append(int(entity_id))
    return forms


def _match_any(entity_ids: Iterable[str]) -> dict:
    return {"$in": [form for entity_id in entity_ids for form in stored_id_forms(entity_id)]}


class HierarchyService:
    """Reads tasks and projects owned by the rest of the application.

    Subtrees are fetched level by level with one ``$in`` query per depth,
    never one query per node.
    """

    def __init__(self, db):
        """Initialize service with database connection."""
        self.db = db
        self.tasks = db[settings.tasks_collection]
        self.projects = db[settings.projects_collection]

    async def get_task(self, task_id: str) -> Optional[TaskNode]:
        """Get a task by ID, or None if it does not exist."""
        doc = await self.tasks.find_one({"_id": _match_any([task_id])}, TASK_FIELDS)
        return TaskNode.model_validate(doc) if doc else None

    async def get_project(self, project_id: str) -> Optional[ProjectNode]:
        """Get a project by ID, or None if it does not exist."""
        doc = await self.projects.find_one({"_id": _match_any([project_id])}, PROJECT_FIELDS)
        return ProjectNode.model_validate(doc) if doc else None

    async def tasks_by_ids(self, task_ids: Iterable[str]) -> dict[str, TaskNode]:
        """Bulk lookup of tasks, keyed by ID. Unknown IDs are omitted."""
        ids = list(task_ids)
        if not ids:
            return {}
        docs = await self.tasks.find({"_id": _match_any(ids)}, TASK_FIELDS).to_list(length=None)
        nodes = [TaskNode.model_validate(doc) for doc in docs]
        return {node.id: node for node in nodes}

    async def projects_by_ids(self, project_ids: Iterable[str]) -> dict[str, ProjectNode]:
        """Bulk lookup of projects, keyed by ID. Unknown IDs are omitted."""
        ids = list(project_ids)
        if not ids:
            return {}
        docs = await self.projects.find({"_id": _match_any(ids)}, PROJECT_FIELDS).to_list(length=None)
        nodes = [ProjectNode.model_validate(doc) for doc in docs]
        return {node.id: node for node in nodes}

    async def tasks_in_projects(self, project_ids: Iterable[str]) -> dict[str, TaskNode]:
        """All tasks whose project_id is one of ``project_ids``, keyed by ID."""
        ids = list(project_ids)
        if not ids:
            return {}
        docs = await self.tasks.find({"project_id": _match_any(ids)}, TASK_FIELDS).to_list(length=None)
        nodes = [TaskNode.model_validate(doc) for doc in docs]
        return {node.id: node for node in nodes}

    async def task_descendants(self, roots: dict[str, TaskNode]) -> dict[str, TaskNode]:
        """
        Expand a set of tasks with every task below them.

        Args:
            roots: Already fetched tasks, keyed by ID

        Returns:
            ``roots`` plus all descendants, keyed by ID
        """
        found = dict(roots)
        frontier = list(roots)
        while frontier:
            docs = await self.tasks.find(
                {"parent_task_id": _match_any(frontier)}, TASK_FIELDS
            ).to_list(length=None)
            frontier = []
            for doc in docs:
                node = TaskNode.model_validate(doc)
                # Already fetched as a root, or a malformed parent cycle
                if node.id in found:
                    continue
                found[node.id] = node
                frontier.append(node.id)
        return found

    async def project_subtree(self, root: ProjectNode) -> dict[str, ProjectNode]:
        """
        Fetch a project and every project below it.

        Returns:
            Projects keyed by ID, including ``root``
        """
        found = {root.id: root}
        frontier = [root.id]
        while frontier:
            docs = await self.projects.find(
                {"parent_project_id": _match_any(frontier)}, PROJECT_FIELDS
            ).to_list(length=None)
            frontier = []
            for doc in docs:
                node = ProjectNode.model_validate(doc)
                if node.id in found:
                    logger.warning("Project %s reached twice while walking the project tree", node.id)
                    continue
                found[node.id] = node
                frontier.append(node.id)
        return found
