"""Rollup service - hierarchical time totals for tasks and projects."""
import logging
from collections import defaultdict
from typing import Callable, Iterable

from app.errors import NotFoundError
from app.models.hierarchy import ProjectNode, TaskNode
from app.models.summary import BreakdownItem, TimeSummary
from app.models.time_entry import EntityType, TimeEntry
from app.services.hierarchy_service import HierarchyService
from app.services.time_entry_store import TimeEntryStore
from app.utils.timestamps import now_us, to_us

logger = logging.getLogger(__name__)

NodeKey = tuple[EntityType, str]


class RollupGraph:
    """In-memory adjacency map for one rollup request.

    Nodes are (kind, id) pairs so tasks and projects share one tree:
    a project's children are its child projects and its root tasks, a
    task's children are its subtasks.
    """

    def __init__(self):
        self.children: dict[NodeKey, list[NodeKey]] = defaultdict(list)
        self.direct: dict[NodeKey, int] = defaultdict(int)
        self.labels: dict[NodeKey, str] = {}

    def add_projects(self, projects: dict[str, ProjectNode]) -> None:
        """Add projects, linking each to its parent if the parent is present."""
        for project in projects.values():
            key = (EntityType.PROJECT, project.id)
            self.labels[key] = project.name
            parent_id = project.parent_project_id
            if parent_id in projects and parent_id != project.id:
                self.children[(EntityType.PROJECT, parent_id)].append(key)

    def add_tasks(self, tasks: dict[str, TaskNode]) -> list[TaskNode]:
        """
        Add tasks, linking each to its parent task if the parent is present.

        Returns:
            Root tasks: those whose parent is absent from ``tasks``, plus
            the lowest ID of each malformed parent cycle
        """
        roots = []
        for task in tasks.values():
            key = (EntityType.TASK, task.id)
            self.labels[key] = task.title
            parent_id = task.parent_task_id
            if parent_id in tasks and parent_id != task.id:
                self.children[(EntityType.TASK, parent_id)].append(key)
            else:
                roots.append(task)

        reached = self._reachable(roots)
        for task_id in sorted(tasks):
            if task_id in reached:
                continue
            logger.warning("Task %s is part of a parent cycle; treating it as a root", task_id)
            roots.append(tasks[task_id])
            reached |= self._reachable([tasks[task_id]])
        return roots

    def _reachable(self, roots: list[TaskNode]) -> set[str]:
        seen = {task.id for task in roots}
        stack = [(EntityType.TASK, task.id) for task in roots]
        while stack:
            for child in self.children.get(stack.pop(), ()):
                if child[1] not in seen:
                    seen.add(child[1])
                    stack.append(child)
        return seen

    def add_entries(self, entries: Iterable[TimeEntry]) -> None:
        """Accumulate settled direct time. Running entries count as zero."""
        for entry in entries:
            if entry.is_running or entry.duration_us is None:
                continue
            self.direct[(entry.entity_type, entry.entity_id)] += entry.duration_us


def rollup(
    root: NodeKey,
    children: dict[NodeKey, list[NodeKey]],
    direct: dict[NodeKey, int],
) -> tuple[dict[NodeKey, int], dict[NodeKey, list[NodeKey]]]:
    """
    Compute total time for every node under ``root`` in one post-order walk.

    total(n) = direct(n) + sum(total(c) for c in children(n))

    Each node is visited once. A node reached a second time (only possible
    with malformed parent links) is skipped, so cycles cannot loop and no
    time is counted twice.

    Args:
        root: Node to roll up
        children: Adjacency map, node -> child nodes
        direct: Direct time per node

    Returns:
        Tuple of (totals per visited node, children actually walked per node)
    """
    totals: dict[NodeKey, int] = {}
    walked: dict[NodeKey, list[NodeKey]] = {}
    visited = {root}
    stack = [(root, False)]

    while stack:
        node, expanded = stack.pop()
        if expanded:
            totals[node] = direct.get(node, 0) + sum(totals[child] for child in walked[node])
            continue

        stack.append((node, True))
        owned = []
        for child in children.get(node, ()):
            if child in visited:
                logger.warning("Skipping %s %s: already visited in this rollup", child[0].value, child[1])
                continue
            visited.add(child)
            owned.append(child)
            stack.append((child, False))
        walked[node] = owned

    return totals, walked


def build_breakdown(
    root: NodeKey,
    walked: dict[NodeKey, list[NodeKey]],
    totals: dict[NodeKey, int],
    labels: dict[NodeKey, str],
) -> list[BreakdownItem]:
    """Nest the non-zero descendants of ``root``, largest first."""
    result: list[BreakdownItem] = []
    stack = [(root, result)]

    while stack:
        node, target = stack.pop()
        ranked = sorted(walked.get(node, ()), key=lambda child: totals[child], reverse=True)
        for child in ranked:
            if totals[child] <= 0:
                continue
            kind, child_id = child
            item = BreakdownItem(
                id=child_id,
                kind=kind,
                label=labels.get(child) or "Unknown",
                total_us=totals[child],
            )
            target.append(item)
            stack.append((child, item.children))

    return result


class RollupService:
    """Builds time summaries for tasks and projects."""

    def __init__(
        self,
        store: TimeEntryStore,
        hierarchy: HierarchyService,
        clock: Callable[[], int] = now_us,
    ):
        """Initialize service with store, hierarchy reader and clock."""
        self.store = store
        self.hierarchy = hierarchy
        self.clock = clock

    async def task_summary(self, task_id: str) -> TimeSummary:
        """
        Summarize time for a task and all of its subtasks.

        Args:
            task_id: Task ID

        Returns:
            Time summary with per-subtask breakdown

        Raises:
            NotFoundError: If the task does not exist
        """
        task = await self.hierarchy.get_task(task_id)
        if not task:
            raise NotFoundError("Task not found")

        tasks = await self.hierarchy.task_descendants({task.id: task})
        entries = await self.store.list_by_entities(EntityType.TASK, tasks)

        graph = RollupGraph()
        graph.add_tasks(tasks)
        graph.add_entries(entries)

        return self._summarize((EntityType.TASK, task.id), graph, entries)

    async def project_summary(self, project_id: str) -> TimeSummary:
        """
        Summarize time for a project, its tasks and its subprojects.

        Each task assigned to a project in the subtree contributes its full
        task rollup (subtasks included) exactly once.

        Args:
            project_id: Project ID

        Returns:
            Time summary with task and subproject breakdown

        Raises:
            NotFoundError: If the project does not exist
        """
        project = await self.hierarchy.get_project(project_id)
        if not project:
            raise NotFoundError("Project not found")

        projects = await self.hierarchy.project_subtree(project)
        project_tasks = await self.hierarchy.tasks_in_projects(projects)
        tasks = await self.hierarchy.task_descendants(project_tasks)

        project_entries = await self.store.list_by_entities(EntityType.PROJECT, projects)
        task_entries = await self.store.list_by_entities(EntityType.TASK, tasks)

        graph = RollupGraph()
        graph.add_projects(projects)
        for task in graph.add_tasks(tasks):
            if task.project_id in projects:
                graph.children[(EntityType.PROJECT, task.project_id)].append((EntityType.TASK, task.id))
        graph.add_entries(project_entries)
        graph.add_entries(task_entries)

        root = (EntityType.PROJECT, project.id)
        summary = self._summarize(root, graph, project_entries)
        summary.tasks_time_us = 0
        summary.subprojects_time_us = 0
        for item in summary.children_breakdown:
            if item.kind == EntityType.TASK:
                summary.tasks_time_us += item.total_us
            else:
                summary.subprojects_time_us += item.total_us
        return summary

    def _summarize(
        self,
        root: NodeKey,
        graph: RollupGraph,
        entries: list[TimeEntry],
    ) -> TimeSummary:
        kind, entity_id = root
        totals, walked = rollup(root, graph.children, graph.direct)

        own_entries = [
            entry for entry in entries
            if entry.entity_type == kind and entry.entity_id == entity_id
        ]
        running = next((entry for entry in own_entries if entry.is_running), None)
        current_session_us = 0
        if running:
            current_session_us = max(0, self.clock() - to_us(running.start_time))

        direct = graph.direct.get(root, 0)
        total = totals[root]

        return TimeSummary(
            entity_type=kind,
            entity_id=entity_id,
            direct_time_us=direct,
            children_time_us=total - direct,
            total_time_us=total,
            current_session_us=current_session_us,
            has_running_timer=running is not None,
            running_timer=running,
            entries=own_entries,
            children_breakdown=build_breakdown(root, walked, totals, graph.labels),
        )
