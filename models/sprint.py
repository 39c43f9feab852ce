"""
Sprint data model with validation
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Literal, Optional
from utils.constants import CLOSED_STATES, RUNNING_STATES

SprintState = Literal["pending", "active", "overdue", "complete"]


class Sprint(BaseModel):
    """
    Sprint metadata model

    `state` is reported by the backend; the engine only reads it to decide
    closed-sprint protection and calendar dimming.
    """

    id: int = Field(..., ge=1, description="Sequential sprint identifier")
    label: Optional[str] = Field(None, description="Descriptive sprint name")
    state: SprintState = Field(default="pending")
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    computed_end: Optional[datetime] = Field(
        None, description="End derived by the backend from the plan length"
    )
    plan_length: Optional[str] = Field(None, description="Planned length, e.g. '2w' or '10 days'")
    capacity: Optional[float] = Field(None, ge=0)
    overdue_after: Optional[str] = Field(None, description="Grace period duration, e.g. '2d'")

    @field_validator('state', mode='before')
    @classmethod
    def lowercase_state(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator('label', mode='before')
    @classmethod
    def blank_label_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def display_name(self) -> str:
        return self.label or f"Sprint {self.id}"

    @property
    def is_closed(self) -> bool:
        """True when mutations against this sprint need an explicit override"""
        return self.state in CLOSED_STATES

    @property
    def is_running(self) -> bool:
        return self.state in RUNNING_STATES

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'SprintId': self.id,
            'SprintName': self.display_name,
            'State': self.state,
            'PlannedStart': self.planned_start,
            'PlannedEnd': self.planned_end,
            'ActualStart': self.actual_start,
            'ActualEnd': self.actual_end,
            'Capacity': self.capacity,
        }


class CalendarDayEntry(BaseModel):
    """
    One sprint's presence on one calendar day

    `start_date`/`end_date` bound the segment drawn in the day's week row;
    `is_start`/`is_end` mark whether the segment touches the sprint's true
    planned boundary rather than a window or week edge.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    sprint_id: int
    label: str
    state: SprintState
    start_date: datetime
    end_date: datetime
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None
    is_start: bool = False
    is_end: bool = False
    actual_start_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    is_actual_start: bool = False
    is_actual_end: bool = False
    before_actual_start: bool = False
    after_actual_end: bool = False

    @property
    def is_dimmed(self) -> bool:
        """Days outside the actual run, or belonging to a finished sprint"""
        return self.before_actual_start or self.after_actual_end or self.state in CLOSED_STATES
