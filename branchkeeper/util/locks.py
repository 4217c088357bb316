"""Per-branch advisory locks"""
import threading
from contextlib import contextmanager
from typing import Dict

from branchkeeper.exceptions import BranchBusyError


class BranchLocks:
    """One lock per branch name, created the first time it's asked for.
    Operations on different branches never wait on each other."""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, branch_name: str) -> threading.Lock:
        with self._guard:
            if branch_name not in self._locks:
                self._locks[branch_name] = threading.Lock()
            return self._locks[branch_name]

    def is_locked(self, branch_name: str) -> bool:
        return self.get(branch_name).locked()

    @contextmanager
    def hold(self, branch_name: str, blocking: bool = True):
        """Hold the lock of a branch for the duration of the block.
        Raises BranchBusyError if blocking is False and the lock is taken."""
        lock = self.get(branch_name)
        if not lock.acquire(blocking=blocking):
            raise BranchBusyError(branch_name)
        try:
            yield lock
        finally:
            lock.release()


BRANCH_LOCKS = BranchLocks()
