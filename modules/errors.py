"""
Error types raised by the sprint engine

Rejected mutations (closed sprints) and integrity warnings are returned as
data, not raised. Only lookups, backend failures and invariant violations
surface as exceptions.
"""
from typing import Iterable, List, Optional


class SprintEngineError(Exception):
    """Base class for sprint engine errors"""


class SprintNotFoundError(SprintEngineError, LookupError):
    """A sprint reference could not be resolved to a known sprint"""


class TaskNotFoundError(SprintEngineError, LookupError):
    """One or more task identifiers are not present in the store"""

    def __init__(self, task_ids: Iterable[str]):
        self.task_ids: List[str] = list(task_ids)
        formatted = ', '.join(self.task_ids)
        super().__init__(f"Task(s) not found: {formatted}")


class RemoteCallError(SprintEngineError):
    """
    The persistence backend failed while executing an operation.

    The local model is left at its last known-good state; callers should
    notify the user and re-fetch authoritative state.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        task_ids: Optional[Iterable[str]] = None,
        sprint_id: Optional[int] = None,
    ):
        self.operation = operation
        self.task_ids: List[str] = list(task_ids or [])
        self.sprint_id = sprint_id
        super().__init__(f"{operation} failed: {message}")


class MembershipInvariantError(AssertionError):
    """Programming error: a duplicate or non-positive sprint id was inserted"""
