"""
topology/cache/store.py - Snapshot store

Holds the currently published entity graph. Reads are lock-free and always
see a graph produced by one completed pipeline run; writers build a private
candidate and swap it in with a single reference assignment while holding the
store's exclusive lock.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from types import MappingProxyType
from typing import Any

from topology.exceptions import SnapshotLockError
from topology.model.types import Application, Candidate, Snapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Copy-on-write holder of the published snapshot

    Example:
        store = SnapshotStore()

        # Writers
        with store.exclusive():
            store.publish(candidate)

        if store.try_lock():
            try:
                store.publish(candidate)
            finally:
                store.release()

        # Readers (never block)
        snapshot = store.get_snapshot()
    """

    def __init__(self, snapshot: Snapshot | None = None):
        self._lock = threading.Lock()
        self._owner: int | None = None
        self._snapshot = snapshot or Snapshot()
        self._publish_count = 0

    # =========================================================================
    # Reads
    # =========================================================================

    def get_snapshot(self) -> Snapshot:
        """Currently published snapshot (lock-free)"""
        return self._snapshot

    def clone_applications(self) -> dict[str, Application]:
        """Private deep copy of the published application map, safe to mutate"""
        return copy.deepcopy(dict(self._snapshot.applications))

    # =========================================================================
    # Locking
    # =========================================================================

    def acquire(self, blocking: bool = True, timeout: float = -1) -> bool:
        """Acquire the exclusive writer lock"""
        acquired = self._lock.acquire(blocking, timeout)
        if acquired:
            self._owner = threading.get_ident()
        return acquired

    def try_lock(self) -> bool:
        """Acquire the writer lock only if it is free right now"""
        return self.acquire(blocking=False)

    def release(self) -> None:
        self._owner = None
        self._lock.release()

    @property
    def held_by_current_thread(self) -> bool:
        return self._owner == threading.get_ident()

    @property
    def is_locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def exclusive(self) -> Generator[SnapshotStore, None, None]:
        """Hold the writer lock, blocking until it is available"""
        self.acquire()
        try:
            yield self
        finally:
            self.release()

    # =========================================================================
    # Writes
    # =========================================================================

    def publish(self, candidate: Candidate) -> Snapshot:
        """Replace all four top-level maps in one visible step

        Raises:
            SnapshotLockError: the calling thread does not hold the writer lock
        """
        if not self.held_by_current_thread:
            raise SnapshotLockError()

        previous = self._snapshot
        snapshot = Snapshot(
            applications=MappingProxyType(dict(candidate.applications)),
            standalone_instances=MappingProxyType(dict(candidate.standalone_instances)),
            images=MappingProxyType(dict(candidate.images)),
            load_balancers=MappingProxyType(dict(candidate.load_balancers)),
            generation=previous.generation + 1,
            published_at=datetime.now(),
        )
        self._snapshot = snapshot
        self._publish_count += 1

        logger.debug(f"Published snapshot generation {snapshot.generation} ({len(snapshot.applications)} applications)")
        return snapshot

    @property
    def stats(self) -> dict[str, Any]:
        """Store statistics"""
        snapshot = self._snapshot
        return {
            "generation": snapshot.generation,
            "published_at": snapshot.published_at,
            "applications": len(snapshot.applications),
            "accounts": len(snapshot.load_balancers),
            "publishes": self._publish_count,
            "locked": self.is_locked,
        }

    def __repr__(self) -> str:
        stats = self.stats
        return (
            f"SnapshotStore(generation={stats['generation']}, "
            f"applications={stats['applications']}, "
            f"locked={stats['locked']})"
        )
