"""
Shared fixtures: an in-memory backend and a store/service wired to it.
"""
import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import pytest

from models.sprint import Sprint
from models.task import Task
from modules.sprint_assignment import MembershipAssignmentService
from modules.task_store import TaskStore


class FakeBackend:
    """In-memory stand-in for the persistence collaborator"""

    def __init__(self, tasks: Dict[str, List[int]], sprints: List[Sprint]):
        self.tasks = {task_id: sorted(ids) for task_id, ids in tasks.items()}
        self.sprints = list(sprints)
        self.mutations = []
        self.mutation_error: Optional[Exception] = None
        self.mutation_gate: Optional[asyncio.Event] = None
        self.override_memberships: Dict[str, List[int]] = {}
        self.return_memberships = True

        self.report_calls = {'summary': [], 'burndown': [], 'velocity': []}
        self.report_gate: Optional[asyncio.Event] = None
        self.report_error: Optional[Exception] = None

    async def list_tasks(self, filter=None):
        return [
            {'task_id': task_id, 'title': f"Task {task_id}", 'sprint_memberships': list(ids)}
            for task_id, ids in self.tasks.items()
        ]

    async def list_sprints(self):
        return [sprint.model_dump() for sprint in self.sprints]

    async def mutate_membership(self, task_ids, sprint_id, options):
        self.mutations.append((list(task_ids), sprint_id, dict(options)))
        if self.mutation_gate is not None:
            await self.mutation_gate.wait()
        if self.mutation_error is not None:
            raise self.mutation_error

        known = {sprint.id for sprint in self.sprints}
        memberships = {}
        for task_id in task_ids:
            current = set(self.tasks.get(task_id, []))
            if options.get('cleanup_missing'):
                current = {s for s in current if s in known or s == sprint_id}
            if options['action'] == 'add':
                current = {sprint_id} if options.get('force_single') else current | {sprint_id}
            else:
                current.discard(sprint_id)
            self.tasks[task_id] = sorted(current)
            memberships[task_id] = self.override_memberships.get(task_id, sorted(current))
        if not self.return_memberships:
            return {'status': 'ok'}
        return {'status': 'ok', 'memberships': memberships}

    async def _report(self, name, argument):
        self.report_calls[name].append(argument)
        call_number = len(self.report_calls[name])
        if self.report_gate is not None:
            await self.report_gate.wait()
        if self.report_error is not None:
            raise self.report_error
        return {'report': name, 'argument': argument, 'call': call_number}

    async def fetch_summary(self, sprint_id):
        return await self._report('summary', sprint_id)

    async def fetch_burndown(self, sprint_id):
        return await self._report('burndown', sprint_id)

    async def fetch_velocity(self, params):
        return await self._report('velocity', params)


def make_sprints() -> List[Sprint]:
    return [
        Sprint(id=1, label="Alpha", state="complete",
               planned_start=datetime(2024, 1, 1), planned_end=datetime(2024, 1, 14)),
        Sprint(id=2, label="Beta", state="active",
               planned_start=datetime(2024, 1, 15), planned_end=datetime(2024, 1, 28)),
        Sprint(id=3, label="Gamma", state="pending",
               planned_start=datetime(2024, 1, 29), planned_end=datetime(2024, 2, 11)),
        Sprint(id=4, label="Delta", state="pending"),
    ]


def make_store(backend: FakeBackend) -> TaskStore:
    store = TaskStore(backend)
    store.set_sprints(sprint.model_copy(deep=True) for sprint in backend.sprints)
    store.set_tasks(
        Task(task_id=task_id, sprint_memberships=list(ids))
        for task_id, ids in backend.tasks.items()
    )
    return store


@pytest.fixture
def backend():
    return FakeBackend(
        tasks={
            'TEST-1': [],
            'TEST-2': [1],
            'TEST-3': [2, 3],
            'TEST-4': [3, 7],
        },
        sprints=make_sprints(),
    )


@pytest.fixture
def store(backend):
    return make_store(backend)


@pytest.fixture
def service(store):
    return MembershipAssignmentService(store)
