"""
Sprint Calendar Module
Projects sprint date ranges onto a visible calendar window

Everything here is pure: no I/O and no mutation of the sprints passed in.
All dates are normalized to the start of their local day before comparison.
"""
from datetime import timedelta
from typing import Dict, Iterable, List, NamedTuple, Optional
import pandas as pd
from models.sprint import CalendarDayEntry, Sprint
from modules.backend import SprintRecord, to_sprint
from utils.date_utils import (
    get_week_bounds,
    parse_plan_length_days,
    start_of_local_day,
    to_date_key,
)


class SprintWindow(NamedTuple):
    """Resolved day-local bounds of a sprint; None means unbounded on that side"""
    planned_start: Optional[pd.Timestamp]
    planned_end: Optional[pd.Timestamp]
    actual_start: Optional[pd.Timestamp]
    actual_end: Optional[pd.Timestamp]


def _end_from_plan_length(start: pd.Timestamp, plan_length: Optional[str]) -> Optional[pd.Timestamp]:
    days = parse_plan_length_days(plan_length)
    if not days:
        return None
    return start + timedelta(days=days - 1)


def sprint_window(sprint: Sprint) -> Optional[SprintWindow]:
    """
    Resolve the planned window of a sprint

    The end falls back from planned_end to computed_end, then to the start
    plus the plan length. An end before the start collapses to the start.

    Args:
        sprint: Sprint to resolve

    Returns:
        SprintWindow, or None if the sprint has neither bound
    """
    start = start_of_local_day(sprint.planned_start)
    end = start_of_local_day(sprint.planned_end) or start_of_local_day(sprint.computed_end)

    if start is not None and (end is None or end < start):
        end = _end_from_plan_length(start, sprint.plan_length) or end
        if end is not None and end < start:
            end = start

    if start is None and end is None:
        return None

    return SprintWindow(
        planned_start=start,
        planned_end=end,
        actual_start=start_of_local_day(sprint.actual_start),
        actual_end=start_of_local_day(sprint.actual_end),
    )


def _as_datetime(value: Optional[pd.Timestamp]):
    return value.to_pydatetime() if value is not None else None


def build_sprint_schedule(
    sprints: Iterable[SprintRecord],
    window_start,
    window_end,
    week_start: int = None,
) -> Dict[str, List[CalendarDayEntry]]:
    """
    Map sprints onto the days of a visible window

    Args:
        sprints: Sprints to project (Sprint models or backend records)
        window_start: First visible day
        window_end: Last visible day (inclusive)
        week_start: Weekday the calendar rows start on (0 = Monday), defaults to config

    Returns:
        Dict of 'YYYY-MM-DD' -> entries for that day, ordered by sprint id.
        Days without sprints are absent. A window ending before it starts
        yields an empty schedule.

    Raises:
        ValueError: If either window bound is missing
    """
    range_start = start_of_local_day(window_start)
    range_end = start_of_local_day(window_end)
    if range_start is None or range_end is None:
        raise ValueError("Both window_start and window_end are required")

    schedule: Dict[str, List[CalendarDayEntry]] = {}
    if range_end < range_start:
        return schedule

    # Stable by id so unrelated state changes never reorder a day's entries
    ordered = sorted((to_sprint(record) for record in sprints), key=lambda s: s.id)

    for sprint in ordered:
        window = sprint_window(sprint)
        if window is None:
            continue

        clamp_start = range_start if window.planned_start is None else max(window.planned_start, range_start)
        clamp_end = range_end if window.planned_end is None else min(window.planned_end, range_end)
        if clamp_end < clamp_start:
            continue

        for day in pd.date_range(clamp_start, clamp_end, freq='D'):
            week_first, week_last = get_week_bounds(day, week_start)
            entry = CalendarDayEntry(
                sprint_id=sprint.id,
                label=sprint.display_name,
                state=sprint.state,
                start_date=max(clamp_start, week_first).to_pydatetime(),
                end_date=min(clamp_end, week_last).to_pydatetime(),
                planned_start=_as_datetime(window.planned_start),
                planned_end=_as_datetime(window.planned_end),
                is_start=window.planned_start is not None and day == window.planned_start,
                is_end=window.planned_end is not None and day == window.planned_end,
                actual_start_date=_as_datetime(window.actual_start),
                actual_end_date=_as_datetime(window.actual_end),
                is_actual_start=window.actual_start is not None and day == window.actual_start,
                is_actual_end=window.actual_end is not None and day == window.actual_end,
                before_actual_start=window.actual_start is not None and day < window.actual_start,
                after_actual_end=window.actual_end is not None and day > window.actual_end,
            )
            schedule.setdefault(to_date_key(day), []).append(entry)

    return schedule


def get_sprints_for_date(sprints: Iterable[SprintRecord], date) -> List[Sprint]:
    """
    Find which sprints a date falls into

    Args:
        sprints: Candidate sprints
        date: Date to check

    Returns:
        Sprints whose planned window contains the day, ascending by id
    """
    day = start_of_local_day(date)
    if day is None:
        return []

    matches = []
    for sprint in sorted((to_sprint(record) for record in sprints), key=lambda s: s.id):
        window = sprint_window(sprint)
        if window is None:
            continue
        if window.planned_start is not None and day < window.planned_start:
            continue
        if window.planned_end is not None and day > window.planned_end:
            continue
        matches.append(sprint)
    return matches
