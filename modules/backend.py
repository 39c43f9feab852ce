"""
Persistence backend interface

The engine never talks to storage directly. Whatever executes mutations and
serves reports (REST client, database adapter, test fake) implements this
protocol.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union
from models.sprint import Sprint
from models.task import Task

TaskRecord = Union[Task, Mapping[str, Any]]
SprintRecord = Union[Sprint, Mapping[str, Any]]


class SprintBackend(Protocol):
    """Remote collaborator that stores tasks and sprints"""

    async def list_tasks(self, filter: Optional[Dict[str, Any]] = None) -> Iterable[TaskRecord]:
        ...

    async def list_sprints(self) -> Iterable[SprintRecord]:
        ...

    async def mutate_membership(
        self,
        task_ids: List[str],
        sprint_id: int,
        options: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Persist a membership change

        `options` carries `action` ("add"/"remove"), `force_single`,
        `allow_closed` and `cleanup_missing`. The response may include
        `memberships: {task_id: [sprint ids]}` with the authoritative
        post-mutation state of each touched task.
        """
        ...

    async def fetch_summary(self, sprint_id: int) -> Any:
        ...

    async def fetch_burndown(self, sprint_id: int) -> Any:
        ...

    async def fetch_velocity(self, params: Dict[str, Any]) -> Any:
        ...


def to_task(record: TaskRecord) -> Task:
    """Coerce a backend task record into a Task"""
    if isinstance(record, Task):
        return record.model_copy(deep=True)
    data = dict(record)
    if 'task_id' not in data and 'id' in data:
        data['task_id'] = data.pop('id')
    if 'sprint_memberships' not in data and 'sprints' in data:
        data['sprint_memberships'] = data.pop('sprints')
    return Task.model_validate(data)


def to_sprint(record: SprintRecord) -> Sprint:
    """Coerce a backend sprint record into a Sprint"""
    if isinstance(record, Sprint):
        return record.model_copy(deep=True)
    return Sprint.model_validate(dict(record))
