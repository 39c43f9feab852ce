"""
Sprint Assignment Module
Adds and removes sprint memberships for batches of tasks

Rules:
- force_single (default for assign): a task's memberships become exactly {target};
  displaced sprints are reported in `replaced`
- without force_single: target is unioned in; re-assigning is a silent no-op
- remove: target is subtracted; only tasks that held it count as modified
- closed sprints (state == complete) are protected unless allow_closed is given;
  a rejected call mutates nothing and makes no backend call
- calls touching the same task are serialized per task id, through the
  store's queue (shared with integrity repair)
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional, Union
from models.membership import IntegrityReport, MembershipChangeResult, SprintReassignment
from models.sprint import Sprint
from models.validation import normalize_sprint_ids
from modules.errors import RemoteCallError, SprintNotFoundError
from modules.sprint_integrity import IntegrityChecker
from modules.task_store import TaskStore
from utils.constants import (
    ACTION_ADD,
    ACTION_REMOVE,
    ALLOW_CLOSED_DEFAULT,
    FORCE_SINGLE_DEFAULT,
    REASON_SPRINT_CLOSED,
    SPRINT_KEYWORD_ACTIVE,
    SPRINT_KEYWORD_NEXT,
    SPRINT_KEYWORD_PREVIOUS,
)
from utils.formatters import format_change_summary, format_closed_rejection

logger = logging.getLogger(__name__)

SprintReference = Union[int, str, None]
ChangeObserver = Callable[[MembershipChangeResult], None]


def resolve_sprint_reference(sprints: List[Sprint], reference: SprintReference) -> int:
    """
    Resolve a sprint reference to an id

    Accepts an int, "#3" / "3", or the keywords "active", "next", "previous"/"prev".
    An empty reference means "active". Numeric references are not checked
    for existence here.

    Raises:
        ValueError: Unparseable or non-positive reference
        SprintNotFoundError: Keyword could not be resolved
    """
    if isinstance(reference, bool):
        raise ValueError(f"Invalid sprint reference {reference!r}")
    if isinstance(reference, int):
        if reference <= 0:
            raise ValueError(f"Sprint id must be positive (received: {reference})")
        return reference

    token = (reference or '').strip()
    lowered = token.lower()

    if lowered in ('', SPRINT_KEYWORD_ACTIVE):
        return _resolve_active_sprint(sprints)
    if lowered == SPRINT_KEYWORD_NEXT:
        base = _resolve_active_sprint(sprints)
        later = [sprint.id for sprint in sprints if sprint.id > base]
        if not later:
            raise SprintNotFoundError(f"Sprint #{base} is already the latest sprint.")
        return min(later)
    if lowered in SPRINT_KEYWORD_PREVIOUS:
        base = _resolve_active_sprint(sprints)
        earlier = [sprint.id for sprint in sprints if sprint.id < base]
        if not earlier:
            raise SprintNotFoundError(f"Sprint #{base} is the earliest sprint.")
        return max(earlier)

    normalized = token[1:] if token.startswith('#') else token
    try:
        sprint_id = int(normalized)
    except ValueError:
        raise ValueError(
            f"Invalid sprint reference '{reference}'. "
            "Expected a numeric identifier or keyword (active/next/previous)."
        )
    if sprint_id <= 0:
        raise ValueError(f"Sprint id must be positive (received: {sprint_id})")
    return sprint_id


def _resolve_active_sprint(sprints: List[Sprint]) -> int:
    running = [sprint.id for sprint in sprints if sprint.is_running]
    if not running:
        raise SprintNotFoundError("No active sprint found. Specify a sprint identifier.")
    if len(running) > 1:
        raise SprintNotFoundError(
            "Multiple active sprints detected. Specify a sprint identifier."
        )
    return running[0]


class MembershipAssignmentService:
    """
    Applies membership changes remotely, then reconciles the local store.

    Nothing local changes until the backend confirms; a backend failure is
    raised as RemoteCallError with the store left at its last known-good state.
    """

    def __init__(
        self,
        store: TaskStore,
        checker: Optional[IntegrityChecker] = None,
    ):
        self.store = store
        self.checker = checker or store.checker
        self.queue = store.queue
        self._observers: List[ChangeObserver] = []

    def subscribe(self, observer: ChangeObserver) -> Callable[[], None]:
        """
        Register a callback for committed changes

        Returns:
            Function that unregisters the observer
        """
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def resolve_sprint(self, reference: SprintReference) -> int:
        return resolve_sprint_reference(self.store.sprints, reference)

    async def assign(
        self,
        task_ids: Iterable[str],
        target: SprintReference,
        *,
        force_single: Optional[bool] = None,
        allow_closed: Optional[bool] = None,
        cleanup_missing: bool = False,
    ) -> MembershipChangeResult:
        """
        Attach tasks to a sprint

        Args:
            task_ids: Tasks to assign (duplicates are processed once)
            target: Sprint id or reference ("#3", "active", "next", "previous")
            force_single: Replace all other memberships (config default: True)
            allow_closed: Permit assigning to a complete sprint (config default: False)
            cleanup_missing: Strip dangling references from the affected tasks too

        Returns:
            MembershipChangeResult (rejected=True for a protected closed sprint)

        Raises:
            ValueError: Empty batch or malformed sprint reference
            SprintNotFoundError: Target sprint does not exist
            TaskNotFoundError: Unknown task ids (nothing is changed)
            RemoteCallError: Backend failure (nothing is changed locally)
        """
        if force_single is None:
            force_single = FORCE_SINGLE_DEFAULT
        if allow_closed is None:
            allow_closed = ALLOW_CLOSED_DEFAULT

        ids = self._normalize_task_ids(task_ids, ACTION_ADD)
        sprint_id = self.resolve_sprint(target)
        if self.store.get_sprint(sprint_id) is None:
            raise SprintNotFoundError(f"Sprint #{sprint_id} not found.")

        return await self._apply(
            ACTION_ADD, ids, sprint_id, force_single, allow_closed, cleanup_missing
        )

    async def remove(
        self,
        task_ids: Iterable[str],
        sprint_id: SprintReference,
        *,
        allow_closed: Optional[bool] = None,
        cleanup_missing: bool = False,
    ) -> MembershipChangeResult:
        """
        Detach tasks from a sprint

        The sprint does not have to exist: removing a dangling reference is
        legitimate, and the closed-sprint guard does not apply to it.

        Args:
            task_ids: Tasks to update
            sprint_id: Sprint id or reference
            allow_closed: Permit removing from a complete sprint
            cleanup_missing: Strip other dangling references from the affected tasks too

        Returns:
            MembershipChangeResult
        """
        if allow_closed is None:
            allow_closed = ALLOW_CLOSED_DEFAULT

        ids = self._normalize_task_ids(task_ids, ACTION_REMOVE)
        resolved = self.resolve_sprint(sprint_id)

        return await self._apply(
            ACTION_REMOVE, ids, resolved, False, allow_closed, cleanup_missing
        )

    @staticmethod
    def _normalize_task_ids(task_ids: Iterable[str], action: str) -> List[str]:
        if isinstance(task_ids, str):
            task_ids = [task_ids]
        ids = [str(task_id).strip() for task_id in task_ids if str(task_id).strip()]
        if not ids:
            verb = "assign" if action == ACTION_ADD else "update"
            raise ValueError(f"Provide at least one task identifier to {verb}.")
        return list(dict.fromkeys(ids))

    async def _apply(
        self,
        action: str,
        ids: List[str],
        sprint_id: int,
        force_single: bool,
        allow_closed: bool,
        cleanup_missing: bool,
    ) -> MembershipChangeResult:
        # Unknown ids fail before queuing so nothing is half-applied
        self.store.require_tasks(ids)

        async with self.queue.hold(ids):
            tasks = self.store.require_tasks(ids)
            sprint = self.store.get_sprint(sprint_id)
            label = sprint.label if sprint else None

            if sprint is not None and sprint.is_closed and not allow_closed:
                message = format_closed_rejection(sprint.id, sprint.display_name)
                logger.warning(f"Rejected {action} of {len(ids)} task(s): {message}")
                return MembershipChangeResult(
                    action=action,
                    sprint_id=sprint_id,
                    sprint_label=label,
                    unchanged_task_ids=ids,
                    rejected=True,
                    reason=REASON_SPRINT_CLOSED,
                    messages=[message],
                )

            original = self.store.snapshot_memberships(ids)
            known = self.store.known_sprint_ids | {sprint_id}

            current = original
            if cleanup_missing:
                detected = self.checker.check(tasks, known)
                missing = set(detected.missing_sprint_ids)
                current = {
                    task_id: [s for s in sprint_ids if s not in missing]
                    for task_id, sprint_ids in original.items()
                }

            planned, modified, unchanged, replaced = self._plan(
                action, ids, sprint_id, force_single, current
            )
            to_commit = {
                task_id: planned[task_id]
                for task_id in ids
                if planned[task_id] != original[task_id]
            }

            if to_commit:
                response = await self._call_backend(
                    action, list(to_commit), sprint_id, force_single, allow_closed, cleanup_missing
                )
                self._reconcile(to_commit, response)

            # Commit: no awaits from here on
            integrity: Optional[IntegrityReport] = None
            if cleanup_missing:
                # Events may have replaced or dropped tasks during the backend call
                current_tasks = [
                    task for task in (self.store.get_task(task_id) for task_id in ids)
                    if task is not None
                ]
                integrity = self.checker.repair(current_tasks, known)
            self.store.apply_memberships(to_commit)

            result = MembershipChangeResult(
                action=action,
                sprint_id=sprint_id,
                sprint_label=label,
                modified_task_ids=modified,
                unchanged_task_ids=unchanged,
                replaced=replaced,
                messages=[
                    text for text in (entry.describe() for entry in replaced) if text
                ],
                integrity=integrity,
            )

        logger.info(format_change_summary(action, result.modified_count, sprint_id, label))
        if result.modified_count or (integrity and integrity.removed_references):
            self._notify(result)
        return result

    @staticmethod
    def _plan(
        action: str,
        ids: List[str],
        sprint_id: int,
        force_single: bool,
        current: Dict[str, List[int]],
    ):
        planned: Dict[str, List[int]] = {}
        modified: List[str] = []
        unchanged: List[str] = []
        replaced: List[SprintReassignment] = []

        for task_id in ids:
            before = current[task_id]
            if action == ACTION_ADD:
                if force_single:
                    after = [sprint_id]
                    displaced = [s for s in before if s != sprint_id]
                    if displaced:
                        replaced.append(
                            SprintReassignment(task_id=task_id, previous_sprint_ids=displaced)
                        )
                else:
                    after = sorted(set(before) | {sprint_id})
            else:
                after = [s for s in before if s != sprint_id]

            planned[task_id] = after
            if after != before:
                modified.append(task_id)
            else:
                unchanged.append(task_id)

        return planned, modified, unchanged, replaced

    async def _call_backend(
        self,
        action: str,
        task_ids: List[str],
        sprint_id: int,
        force_single: bool,
        allow_closed: bool,
        cleanup_missing: bool,
    ) -> dict:
        backend = self.store.backend
        if backend is None:
            return {}

        options = {
            'action': action,
            'force_single': force_single,
            'allow_closed': allow_closed,
            'cleanup_missing': cleanup_missing,
        }
        try:
            response = await backend.mutate_membership(task_ids, sprint_id, options)
        except Exception as e:
            logger.error(f"Sprint {action} for #{sprint_id} failed for {task_ids}: {e}")
            raise RemoteCallError(
                f"sprint {action}", str(e), task_ids=task_ids, sprint_id=sprint_id
            ) from e
        return response or {}

    @staticmethod
    def _reconcile(to_commit: Dict[str, List[int]], response: dict) -> None:
        """Prefer authoritative memberships returned by the backend"""
        remote = response.get('memberships') or {}
        for task_id in to_commit:
            if task_id not in remote:
                continue
            authoritative = normalize_sprint_ids(remote[task_id])
            if authoritative != to_commit[task_id]:
                logger.info(
                    f"Backend reported {authoritative} for {task_id}, "
                    f"expected {to_commit[task_id]}"
                )
            to_commit[task_id] = authoritative

    def _notify(self, result: MembershipChangeResult) -> None:
        for observer in list(self._observers):
            observer(result)
