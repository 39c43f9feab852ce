"""
Task Store Module
Local read/write view of tasks and sprints held by the engine

The backend owns the lifecycle of both; the store mirrors what was last
loaded and is mutated only by the membership service and integrity repair
(plus event reactions that mirror backend changes).

Key fields:
- Task.sprint_memberships: ascending sprint ids, rendered as SprintsAssigned ("4, 5")
- Sprint.state: reported by the backend, drives closed-sprint protection
"""
import asyncio
import logging
import pandas as pd
from typing import Dict, Iterable, List, Optional
from models.membership import IntegrityReport
from models.sprint import Sprint
from models.task import Task
from models.validation import format_sprints_assigned
from modules.backend import SprintBackend, to_sprint, to_task
from modules.errors import RemoteCallError, TaskNotFoundError
from modules.mutation_queue import TaskMutationQueue
from modules.sprint_integrity import IntegrityChecker
from utils.constants import ACTION_REMOVE
from utils.formatters import format_missing_sprints

logger = logging.getLogger(__name__)


class TaskStore:
    """
    Holds the engine's view of tasks and sprints.

    Tasks keep the order the backend returned them in; sprints are kept by id.
    """

    def __init__(
        self,
        backend: Optional[SprintBackend] = None,
        checker: Optional[IntegrityChecker] = None,
    ):
        self.backend = backend
        self.checker = checker or IntegrityChecker()
        self.queue = TaskMutationQueue()
        self._tasks: Dict[str, Task] = {}
        self._sprints: Dict[int, Sprint] = {}
        self.integrity: Optional[IntegrityReport] = None

    async def load(self, filter: Optional[dict] = None) -> IntegrityReport:
        """
        Fetch tasks and sprints from the backend and replace the local view

        Args:
            filter: Optional task filter passed through to the backend

        Returns:
            Integrity report for the freshly loaded data

        Raises:
            RemoteCallError: If either listing fails (local view is untouched)
        """
        if self.backend is None:
            raise RuntimeError("TaskStore has no backend to load from")

        try:
            task_records, sprint_records = await asyncio.gather(
                self.backend.list_tasks(filter),
                self.backend.list_sprints(),
            )
        except Exception as e:
            logger.error(f"Error loading tasks and sprints: {e}")
            raise RemoteCallError("load", str(e)) from e

        self.set_sprints(to_sprint(record) for record in sprint_records)
        self.set_tasks(to_task(record) for record in task_records)
        return self.check_integrity()

    def set_tasks(self, tasks: Iterable[Task]) -> None:
        """Replace all tasks"""
        self._tasks = {task.task_id: task for task in tasks}

    def set_sprints(self, sprints: Iterable[Sprint]) -> None:
        """Replace all sprints"""
        self._sprints = {sprint.id: sprint for sprint in sprints}

    def upsert_task(self, task: Task) -> None:
        self._tasks[task.task_id] = task

    def upsert_sprint(self, sprint: Sprint) -> None:
        self._sprints[sprint.id] = sprint

    def remove_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.pop(task_id, None)

    def remove_sprint(self, sprint_id: int) -> Optional[Sprint]:
        return self._sprints.pop(sprint_id, None)

    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks.values())

    @property
    def sprints(self) -> List[Sprint]:
        """All sprints, ascending by id"""
        return [self._sprints[sprint_id] for sprint_id in sorted(self._sprints)]

    @property
    def known_sprint_ids(self) -> set:
        return set(self._sprints)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def get_sprint(self, sprint_id: int) -> Optional[Sprint]:
        return self._sprints.get(sprint_id)

    def require_tasks(self, task_ids: Iterable[str]) -> List[Task]:
        """
        Look up tasks by id, failing if any is unknown

        Raises:
            TaskNotFoundError: Listing every unknown id
        """
        ids = list(task_ids)
        missing = [task_id for task_id in ids if task_id not in self._tasks]
        if missing:
            raise TaskNotFoundError(missing)
        return [self._tasks[task_id] for task_id in ids]

    def get_memberships(self, task_id: str) -> List[int]:
        """Current sprint ids of a task (a copy)"""
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError([task_id])
        return list(task.sprint_memberships)

    def snapshot_memberships(self, task_ids: Iterable[str]) -> Dict[str, List[int]]:
        return {task_id: self.get_memberships(task_id) for task_id in task_ids}

    def apply_memberships(self, memberships: Dict[str, Iterable[int]]) -> None:
        """Commit new membership sets for the given tasks"""
        for task_id, sprint_ids in memberships.items():
            task = self._tasks.get(task_id)
            if task is None:
                logger.warning(f"Ignoring membership update for unknown task {task_id}")
                continue
            task.replace_memberships(sprint_ids)

    def get_sprint_tasks(self, sprint_id: int) -> List[Task]:
        """All tasks that currently belong to a sprint"""
        return [task for task in self._tasks.values() if task.has_membership(sprint_id)]

    def get_backlog_tasks(self) -> List[Task]:
        """Tasks that belong to no sprint"""
        return [task for task in self._tasks.values() if not task.sprint_memberships]

    def active_sprints(self) -> List[Sprint]:
        """Sprints whose state is active or overdue, ascending by id"""
        return [sprint for sprint in self.sprints if sprint.is_running]

    def check_integrity(self) -> IntegrityReport:
        """Detect dangling references without changing anything"""
        report = self.checker.check(self.tasks, self.known_sprint_ids)
        if report.has_missing:
            logger.warning(
                f"{format_missing_sprints(report.missing_sprint_ids)} "
                f"Referenced by {report.tasks_with_missing} task(s)."
            )
        self.integrity = report
        return report

    async def repair_integrity(self, target: Optional[int] = None) -> IntegrityReport:
        """
        Strip dangling references remotely, then locally

        Holds the per-task queue for every affected task, so it never
        interleaves with an assign or remove on the same task. One remove
        mutation is sent per missing sprint id. If any of them fails the
        local view is left untouched and RemoteCallError is raised.

        Args:
            target: Optional sprint id to strip even though it still exists

        Returns:
            IntegrityReport with auto_cleanup populated
        """
        known = self.known_sprint_ids
        if target is not None:
            known.discard(target)

        detected = self.checker.check(self.tasks, known)
        candidates = [
            task.task_id for task in self._tasks.values()
            if any(sprint_id not in known for sprint_id in task.sprint_memberships)
        ]

        async with self.queue.hold(candidates):
            # Memberships may have changed while queued behind other writers
            pending = self.checker.check(self._present_tasks(candidates), known)
            for sprint_id in pending.missing_sprint_ids:
                holders = [
                    task.task_id for task in self._present_tasks(candidates)
                    if task.has_membership(sprint_id)
                ]
                if not holders or self.backend is None:
                    continue
                try:
                    await self.backend.mutate_membership(
                        holders,
                        sprint_id,
                        {
                            'action': ACTION_REMOVE,
                            'force_single': False,
                            'allow_closed': True,
                            'cleanup_missing': True,
                        },
                    )
                except Exception as e:
                    logger.error(f"Error removing references to sprint #{sprint_id}: {e}")
                    raise RemoteCallError(
                        "repair", str(e), task_ids=holders, sprint_id=sprint_id
                    ) from e

            # Tasks deleted during the backend calls are skipped
            report = self.checker.repair(self._present_tasks(candidates), known)

        report.scanned_tasks = detected.scanned_tasks
        self.integrity = self.checker.check(self.tasks, self.known_sprint_ids)
        return report

    def _present_tasks(self, task_ids: Iterable[str]) -> List[Task]:
        return [task for task in (self._tasks.get(task_id) for task_id in task_ids) if task is not None]

    def to_dataframe(self) -> pd.DataFrame:
        """Tasks as a DataFrame (TaskId, Title, SprintsAssigned, SprintCount)"""
        if not self._tasks:
            return pd.DataFrame(columns=['TaskId', 'Title', 'SprintsAssigned', 'SprintCount'])
        return pd.DataFrame([task.to_dict() for task in self._tasks.values()])

    def get_sprint_frame(self, sprint_id: int) -> pd.DataFrame:
        """
        Tasks of one sprint with sprint metadata columns

        Args:
            sprint_id: Sprint to list

        Returns:
            DataFrame of tasks for that sprint (empty if none)
        """
        tasks = self.get_sprint_tasks(sprint_id)
        if not tasks:
            return pd.DataFrame()

        sprint = self._sprints.get(sprint_id)
        result = pd.DataFrame([task.to_dict() for task in tasks])
        result['SprintId'] = sprint_id
        result['SprintName'] = sprint.display_name if sprint else f"Sprint {sprint_id} (missing)"
        result['SprintState'] = sprint.state if sprint else None
        # Tasks that also live in other sprints
        result['SharedWith'] = [
            format_sprints_assigned(s for s in task.sprint_memberships if s != sprint_id)
            for task in tasks
        ]
        return result
