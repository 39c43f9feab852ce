"""
Formatting utilities for engine results shown to users
"""
from typing import Iterable, Optional


def format_sprint_label(sprint_id: int, label: Optional[str] = None) -> str:
    """Format a sprint reference, e.g. '#3 Alpha' or '#3'"""
    name = (label or '').strip()
    return f"#{sprint_id} {name}".strip()


def format_sprint_ids(sprint_ids: Iterable[int]) -> str:
    """Format sprint ids as '#1, #2'"""
    return ', '.join(f"#{sprint_id}" for sprint_id in sorted(set(sprint_ids)))


def format_closed_rejection(sprint_id: int, display_name: str) -> str:
    """Message for a mutation blocked by closed-sprint protection"""
    return f"Sprint #{sprint_id} ({display_name}) is closed. Pass allow_closed to override."


def format_missing_sprints(sprint_ids: Iterable[int]) -> str:
    """
    Notice for dangling sprint references

    Returns:
        Empty string when there is nothing missing
    """
    ids = list(sprint_ids)
    if not ids:
        return ""
    return f"Sprint metadata missing for {format_sprint_ids(ids)}."


def format_change_summary(
    action: str,
    modified_count: int,
    sprint_id: int,
    label: Optional[str] = None,
) -> str:
    """
    One-line summary of a membership change

    Args:
        action: "add" or "remove"
        modified_count: Number of tasks that actually changed
        sprint_id: Target sprint id
        label: Optional sprint label

    Returns:
        Summary string
    """
    target = format_sprint_label(sprint_id, label)
    if modified_count == 0:
        return f"No changes for sprint {target}"
    if action == "remove":
        return f"Removed {modified_count} task(s) from sprint {target}"
    return f"Assigned {modified_count} task(s) to sprint {target}"
