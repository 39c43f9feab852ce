"""
Sprint Events Module
Reacts to typed events from the live channel (and to committed membership
changes) by updating the store and dropping stale analytics.
"""
import logging
from pydantic import BaseModel, model_validator
from typing import AsyncIterable, Callable, Iterable, Literal, Optional, Set
from models.membership import IntegrityReport, MembershipChangeResult
from models.sprint import Sprint
from models.task import Task
from modules.sprint_analytics import SprintAnalyticsCache
from modules.task_store import TaskStore
from utils.constants import (
    EVENT_SPRINT_CREATED,
    EVENT_SPRINT_DELETED,
    EVENT_SPRINT_UPDATED,
    EVENT_TASK_DELETED,
    EVENT_TASK_UPDATED,
)

logger = logging.getLogger(__name__)

EventKind = Literal[
    "sprint_created",
    "sprint_updated",
    "sprint_deleted",
    "task_updated",
    "task_deleted",
]


class SprintEvent(BaseModel):
    """One event from the live channel"""

    kind: EventKind
    sprint: Optional[Sprint] = None
    sprint_id: Optional[int] = None
    task: Optional[Task] = None
    task_id: Optional[str] = None

    @model_validator(mode='after')
    def check_payload(self):
        if self.kind in (EVENT_SPRINT_CREATED, EVENT_SPRINT_UPDATED) and self.sprint is None:
            raise ValueError(f"{self.kind} event requires a sprint")
        if self.kind == EVENT_SPRINT_DELETED and self.sprint_id is None:
            if self.sprint is None:
                raise ValueError("sprint_deleted event requires sprint_id")
            self.sprint_id = self.sprint.id
        if self.kind == EVENT_TASK_UPDATED and self.task is None:
            raise ValueError("task_updated event requires a task")
        if self.kind == EVENT_TASK_DELETED and self.task_id is None:
            if self.task is None:
                raise ValueError("task_deleted event requires task_id")
            self.task_id = self.task.task_id
        return self


class SprintEventHandler:
    """Applies channel events to the local store"""

    def __init__(self, store: TaskStore, analytics: Optional[SprintAnalyticsCache] = None):
        self.store = store
        self.analytics = analytics
        self._listeners: list = []

    def on_integrity_change(self, listener: Callable[[IntegrityReport], None]) -> None:
        """Register a callback run whenever a sprint deletion is re-checked"""
        self._listeners.append(listener)

    def handle(self, event: SprintEvent) -> Optional[IntegrityReport]:
        """
        Apply one event

        Returns:
            The fresh integrity report for sprint deletions, otherwise None
        """
        if event.kind in (EVENT_SPRINT_CREATED, EVENT_SPRINT_UPDATED):
            self.store.upsert_sprint(event.sprint)
            self._invalidate([event.sprint.id])
            return None

        if event.kind == EVENT_SPRINT_DELETED:
            self.store.remove_sprint(event.sprint_id)
            self._invalidate([event.sprint_id])
            report = self.store.check_integrity()
            for listener in list(self._listeners):
                listener(report)
            return report

        if event.kind == EVENT_TASK_UPDATED:
            previous = self.store.get_task(event.task.task_id)
            affected = set(event.task.sprint_memberships)
            if previous is not None:
                affected |= set(previous.sprint_memberships)
            self.store.upsert_task(event.task)
            self._invalidate(affected)
            return None

        removed = self.store.remove_task(event.task_id)
        if removed is None:
            logger.debug(f"task_deleted for unknown task {event.task_id}")
        else:
            self._invalidate(removed.sprint_memberships)
        return None

    async def consume(self, channel: AsyncIterable) -> int:
        """
        Apply every event from an async channel until it is exhausted

        Raw dict events are validated into SprintEvent first.

        Returns:
            Number of events handled
        """
        handled = 0
        async for raw in channel:
            event = raw if isinstance(raw, SprintEvent) else SprintEvent.model_validate(raw)
            self.handle(event)
            handled += 1
        return handled

    def on_membership_change(self, result: MembershipChangeResult) -> None:
        """Observer for MembershipAssignmentService.subscribe"""
        affected: Set[int] = {result.sprint_id}
        for entry in result.replaced:
            affected.update(entry.previous_sprint_ids)
        self._invalidate(affected)

    def _invalidate(self, sprint_ids: Iterable[int]) -> None:
        if self.analytics is None:
            return
        for sprint_id in sorted(set(sprint_ids)):
            self.analytics.invalidate(sprint_id)
