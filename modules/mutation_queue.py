"""
Mutation Queue Module
Per-task serialization shared by every writer of task memberships
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Iterable, List


class TaskMutationQueue:
    """
    Per-task-id tail chain of pending mutations

    A holder registers itself as the new tail of every task it touches before
    waiting on the previous tails, so a later call always observes the result
    of an earlier one. Registration happens without yielding, which keeps the
    chain acyclic.
    """

    def __init__(self):
        self._tails: Dict[str, asyncio.Future] = {}

    def is_pending(self, task_id: str) -> bool:
        return task_id in self._tails

    @asynccontextmanager
    async def hold(self, task_ids: Iterable[str]):
        ids = list(dict.fromkeys(task_ids))
        done = asyncio.get_running_loop().create_future()

        previous = []
        for task_id in ids:
            tail = self._tails.get(task_id)
            if tail is not None and tail not in previous:
                previous.append(tail)
            self._tails[task_id] = done

        acquired = False
        try:
            for tail in previous:
                # shield: a cancelled waiter must not cancel the holder it waits on
                await asyncio.shield(tail)
            acquired = True
            yield
        finally:
            if acquired or not previous:
                self._release(done, ids)
            else:
                # Cancelled while queued: successors still wait for our predecessors
                asyncio.ensure_future(self._release_after(previous, done, ids))

    def _release(self, done: asyncio.Future, ids: List[str]) -> None:
        if not done.done():
            done.set_result(None)
        for task_id in ids:
            if self._tails.get(task_id) is done:
                del self._tails[task_id]

    async def _release_after(self, previous, done: asyncio.Future, ids: List[str]) -> None:
        await asyncio.gather(*previous, return_exceptions=True)
        self._release(done, ids)
