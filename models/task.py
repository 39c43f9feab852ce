"""
Task data model with validation
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Iterable, List
from models.validation import (
    format_sprints_assigned,
    parse_sprints_assigned,
    validate_sprint_ids,
)
from modules.errors import MembershipInvariantError


class Task(BaseModel):
    """
    Work item with its sprint memberships

    `sprint_memberships` is an ordered set: unique, positive, ascending.
    Backend input is normalized on construction; in-place changes go through
    the membership helpers, which fail loudly on invariant violations.
    """

    model_config = ConfigDict(validate_assignment=True)

    task_id: str = Field(..., min_length=1, description="Task identifier (e.g. TEST-12)")
    title: str = ""
    sprint_memberships: List[int] = Field(
        default_factory=list,
        description="Ids of the sprints this task belongs to",
    )

    @field_validator('task_id', mode='before')
    @classmethod
    def strip_task_id(cls, v):
        return str(v).strip() if v is not None else v

    @field_validator('sprint_memberships', mode='before')
    @classmethod
    def normalize_memberships(cls, v):
        """Accept lists or a SprintsAssigned string; collapse duplicates"""
        if v is None:
            return []
        if isinstance(v, str):
            v = parse_sprints_assigned(v)

        ids = list(v)
        positive_errors = [
            msg for msg in validate_sprint_ids(set(ids))[1]
            if not msg.startswith("Duplicate")
        ]
        if positive_errors:
            raise ValueError('; '.join(positive_errors))
        return sorted({int(sprint_id) for sprint_id in ids})

    def has_membership(self, sprint_id: int) -> bool:
        return sprint_id in self.sprint_memberships

    def add_membership(self, sprint_id: int) -> None:
        """
        Insert a sprint id into the membership set

        Raises:
            MembershipInvariantError: If the id is non-positive or already present
        """
        _assert_valid_ids(list(self.sprint_memberships) + [sprint_id])
        self.sprint_memberships = sorted(self.sprint_memberships + [sprint_id])

    def remove_membership(self, sprint_id: int) -> bool:
        """Remove a sprint id; returns True if it was present"""
        if sprint_id not in self.sprint_memberships:
            return False
        self.sprint_memberships = [s for s in self.sprint_memberships if s != sprint_id]
        return True

    def replace_memberships(self, sprint_ids: Iterable[int]) -> None:
        """
        Set the membership set exactly

        Raises:
            MembershipInvariantError: If the ids contain duplicates or non-positive values
        """
        ids = list(sprint_ids)
        _assert_valid_ids(ids)
        self.sprint_memberships = sorted(ids)

    def to_dict(self) -> dict:
        """Convert to dictionary for DataFrame"""
        return {
            'TaskId': self.task_id,
            'Title': self.title,
            'SprintsAssigned': format_sprints_assigned(self.sprint_memberships),
            'SprintCount': len(self.sprint_memberships),
        }


def _assert_valid_ids(sprint_ids: List[int]) -> None:
    is_valid, errors = validate_sprint_ids(sprint_ids)
    if not is_valid:
        raise MembershipInvariantError('; '.join(errors))
