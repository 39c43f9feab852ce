"""
Result models for membership mutations and integrity checks
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Literal, Optional


class SprintReassignment(BaseModel):
    """Memberships displaced from one task by a force-single assignment"""

    task_id: str
    previous_sprint_ids: List[int] = Field(default_factory=list)

    @field_validator('previous_sprint_ids')
    @classmethod
    def sort_previous(cls, v):
        return sorted(set(v))

    def describe(self) -> Optional[str]:
        """Human readable summary, e.g. 'TEST-1 moved from sprint(s) #1, #2'"""
        if not self.previous_sprint_ids:
            return None
        formatted = ', '.join(f"#{sprint_id}" for sprint_id in self.previous_sprint_ids)
        return f"{self.task_id} moved from sprint(s) {formatted}"


class SprintMissingReference(BaseModel):
    sprint_id: int
    count: int


class CleanupSummary(BaseModel):
    """What an integrity repair stripped"""

    removed_references: int = 0
    updated_tasks: int = 0
    removed_by_sprint: List[SprintMissingReference] = Field(default_factory=list)
    remaining_missing: List[int] = Field(default_factory=list)


class IntegrityReport(BaseModel):
    """Dangling task -> sprint references found in a set of tasks"""

    missing_sprint_ids: List[int] = Field(default_factory=list)
    scanned_tasks: int = 0
    tasks_with_missing: int = 0
    reference_counts: List[SprintMissingReference] = Field(default_factory=list)
    auto_cleanup: Optional[CleanupSummary] = None

    @property
    def has_missing(self) -> bool:
        return len(self.missing_sprint_ids) > 0

    @property
    def removed_references(self) -> int:
        if self.auto_cleanup is None:
            return 0
        return self.auto_cleanup.removed_references


class MembershipChangeResult(BaseModel):
    """
    Diff produced by an assign/remove call

    Callers apply this to their own views. A rejected call (closed sprint
    without override) carries `rejected=True`, a reason code and no
    modified tasks.
    """

    action: Literal["add", "remove"]
    sprint_id: int
    sprint_label: Optional[str] = None
    modified_task_ids: List[str] = Field(default_factory=list)
    unchanged_task_ids: List[str] = Field(default_factory=list)
    replaced: List[SprintReassignment] = Field(default_factory=list)
    rejected: bool = False
    reason: Optional[str] = None
    messages: List[str] = Field(default_factory=list)
    integrity: Optional[IntegrityReport] = None

    @property
    def modified_count(self) -> int:
        return len(self.modified_task_ids)

    @property
    def changed(self) -> bool:
        return not self.rejected and self.modified_count > 0
