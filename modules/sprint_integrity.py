"""
Sprint Integrity Module
Detects and repairs task -> sprint references pointing at sprints that no
longer exist.

`check` never mutates, so read-only callers (dashboards, diagnostics) can
report dangling references without altering data. `repair` is the only
mutating entry point and only ever removes ids.
"""
import logging
from collections import Counter
from typing import Iterable, Optional, Set
from models.membership import (
    CleanupSummary,
    IntegrityReport,
    SprintMissingReference,
)
from models.task import Task

logger = logging.getLogger(__name__)


class IntegrityChecker:
    """Finds and strips dangling sprint references"""

    def check(self, tasks: Iterable[Task], known_sprint_ids: Iterable[int]) -> IntegrityReport:
        """
        Detect references to sprints absent from the known set

        Args:
            tasks: Tasks to scan
            known_sprint_ids: Ids of sprints that exist

        Returns:
            IntegrityReport with missing ids (ascending) and per-id counts
        """
        known = set(known_sprint_ids)
        task_list = list(tasks)
        reference_counts = Counter()
        tasks_with_missing = 0

        for task in task_list:
            missing = [sprint_id for sprint_id in task.sprint_memberships if sprint_id not in known]
            if missing:
                tasks_with_missing += 1
                reference_counts.update(missing)

        missing_ids = sorted(reference_counts)
        return IntegrityReport(
            missing_sprint_ids=missing_ids,
            scanned_tasks=len(task_list),
            tasks_with_missing=tasks_with_missing,
            reference_counts=[
                SprintMissingReference(sprint_id=sprint_id, count=reference_counts[sprint_id])
                for sprint_id in missing_ids
            ],
        )

    def repair(
        self,
        tasks: Iterable[Task],
        known_sprint_ids: Iterable[int],
        target: Optional[int] = None,
    ) -> IntegrityReport:
        """
        Detect and strip dangling references in place

        Args:
            tasks: Tasks to repair (mutated)
            known_sprint_ids: Ids of sprints that exist
            target: Optional sprint id to strip even if it still exists
                (used when that sprint is being deleted)

        Returns:
            IntegrityReport whose auto_cleanup describes what was removed
        """
        known: Set[int] = set(known_sprint_ids)
        if target is not None:
            known.discard(target)

        task_list = list(tasks)
        report = self.check(task_list, known)

        removed_by_sprint = Counter()
        updated_tasks = 0

        for task in task_list:
            stale = [sprint_id for sprint_id in task.sprint_memberships if sprint_id not in known]
            if not stale:
                continue
            for sprint_id in stale:
                task.remove_membership(sprint_id)
            removed_by_sprint.update(stale)
            updated_tasks += 1

        removed_references = sum(removed_by_sprint.values())
        remaining = self.check(task_list, known).missing_sprint_ids

        report.auto_cleanup = CleanupSummary(
            removed_references=removed_references,
            updated_tasks=updated_tasks,
            removed_by_sprint=[
                SprintMissingReference(sprint_id=sprint_id, count=count)
                for sprint_id, count in sorted(removed_by_sprint.items())
            ],
            remaining_missing=remaining,
        )

        if removed_references:
            logger.info(
                f"Removed {removed_references} dangling sprint reference(s) "
                f"from {updated_tasks} task(s): {report.missing_sprint_ids}"
            )

        return report


def check_integrity(tasks: Iterable[Task], known_sprint_ids: Iterable[int]) -> IntegrityReport:
    """Module-level shortcut for IntegrityChecker().check"""
    return IntegrityChecker().check(tasks, known_sprint_ids)
