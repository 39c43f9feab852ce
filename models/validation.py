"""
Data validation utilities
"""
import pandas as pd
from typing import Iterable, List, Tuple, Dict


def parse_sprints_assigned(value) -> List[int]:
    """
    Parse a SprintsAssigned cell ("4, 5") into a list of sprint ids

    Args:
        value: Comma-separated string, NaN or empty

    Returns:
        List of parsed ids in the order they appear

    Raises:
        ValueError: If a component is not an integer
    """
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return []
    text = str(value).strip()
    if text == '' or text.lower() == 'nan':
        return []
    try:
        return [int(part.strip().lstrip('#')) for part in text.split(',') if part.strip()]
    except ValueError:
        raise ValueError(f"Invalid SprintsAssigned value: {value!r}")


def format_sprints_assigned(sprint_ids: Iterable[int]) -> str:
    """Render sprint ids as the SprintsAssigned column value ("4, 5")"""
    return ', '.join(str(sprint_id) for sprint_id in sorted(set(sprint_ids)))


def validate_sprint_ids(values: Iterable) -> Tuple[bool, List[str]]:
    """
    Validate a collection of sprint ids

    Args:
        values: Candidate sprint ids

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []
    seen = set()

    for value in values:
        if isinstance(value, bool):
            errors.append(f"Sprint id must be an integer (received: {value!r})")
            continue
        try:
            sprint_id = int(value)
        except (TypeError, ValueError):
            errors.append(f"Sprint id must be an integer (received: {value!r})")
            continue
        if sprint_id != value and not isinstance(value, str):
            errors.append(f"Sprint id must be a whole number (received: {value!r})")
            continue
        if sprint_id <= 0:
            errors.append(f"Sprint id must be positive (received: {sprint_id})")
            continue
        if sprint_id in seen:
            errors.append(f"Duplicate sprint id: {sprint_id}")
        seen.add(sprint_id)

    is_valid = len(errors) == 0
    return is_valid, errors


def normalize_sprint_ids(values: Iterable) -> List[int]:
    """
    Normalize backend-supplied sprint ids: drop invalid entries, dedupe, sort

    Args:
        values: Raw ids (ints or numeric strings)

    Returns:
        Sorted list of unique positive ids
    """
    normalized = set()
    for value in values or []:
        if isinstance(value, bool):
            continue
        try:
            sprint_id = int(str(value).strip().lstrip('#'))
        except (TypeError, ValueError):
            continue
        if sprint_id > 0:
            normalized.add(sprint_id)
    return sorted(normalized)


def validate_task_frame(df: pd.DataFrame) -> Tuple[bool, List[str]]:
    """
    Validate a task DataFrame before it is loaded into the store

    Args:
        df: DataFrame with TaskId and SprintsAssigned columns

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    required_columns = ['TaskId', 'SprintsAssigned']
    missing_columns = [col for col in required_columns if col not in df.columns]
    if missing_columns:
        errors.append(f"Missing required columns: {', '.join(missing_columns)}")
        return False, errors

    duplicates = df['TaskId'].duplicated().sum()
    if duplicates > 0:
        errors.append(f"Found {duplicates} duplicate Task IDs")

    for task_id, cell in zip(df['TaskId'], df['SprintsAssigned']):
        try:
            ids = parse_sprints_assigned(cell)
        except ValueError as e:
            errors.append(f"Task {task_id}: {e}")
            continue
        ok, id_errors = validate_sprint_ids(ids)
        if not ok:
            errors.extend(f"Task {task_id}: {msg}" for msg in id_errors)

    is_valid = len(errors) == 0
    return is_valid, errors


def get_membership_quality_report(df: pd.DataFrame, known_sprint_ids: Iterable[int]) -> Dict:
    """
    Summarize sprint membership coverage for a task DataFrame

    Args:
        df: Task DataFrame (as produced by TaskStore.to_dataframe)
        known_sprint_ids: Ids of sprints that currently exist

    Returns:
        Dictionary with membership metrics
    """
    known = set(known_sprint_ids)
    report = {
        'total_rows': len(df),
        'unassigned_tasks': 0,
        'multi_sprint_tasks': 0,
        'dangling_references': 0,
        'issues': [],
    }

    if df.empty or 'SprintsAssigned' not in df.columns:
        return report

    memberships = df['SprintsAssigned'].apply(parse_sprints_assigned)
    report['unassigned_tasks'] = int((memberships.apply(len) == 0).sum())
    report['multi_sprint_tasks'] = int((memberships.apply(len) > 1).sum())
    report['dangling_references'] = int(
        memberships.apply(lambda ids: sum(1 for i in ids if i not in known)).sum()
    )

    if report['unassigned_tasks'] > 0:
        report['issues'].append(f"{report['unassigned_tasks']} tasks without a sprint")
    if report['dangling_references'] > 0:
        report['issues'].append(
            f"{report['dangling_references']} references to missing sprints"
        )

    return report
