# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Refresh lease shared through the cache backend.

Only one process should be talking to the usage tool at a time. A process
that wants to refresh records itself as the lease holder; other processes
see a young lease and wait instead of fetching. A lease older than the
staleness threshold belongs to a process that died mid-refresh and may be
taken over.
"""

import json
import logging
import os
import socket
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional

from .storage import CacheBackend

lib_logger = logging.getLogger("tokengauge")


def default_holder_id() -> str:
    """Identifier unique to this process: host, pid and a random suffix."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


@dataclass
class LeaseRecord:
    """Who is refreshing and since when (epoch seconds)."""

    holder: str
    acquired_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {"holder": self.holder, "refreshing_since": self.acquired_at}

    def to_text(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_text(cls, text: str) -> "LeaseRecord":
        """
        Parse a lease marker.

        Raises:
            ValueError: If the marker is not a lease record
        """
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("lease marker is not an object")
        holder = data.get("holder")
        since = data.get("refreshing_since")
        if not isinstance(holder, str) or isinstance(since, bool) or not isinstance(since, (int, float)):
            raise ValueError("lease marker is missing holder or refreshing_since")
        return cls(holder=holder, acquired_at=float(since))


class RefreshLease:
    """
    Best-effort cross-process refresh lease.

    Args:
        backend: Backend holding the lease marker
        stale_after: Seconds after which another holder's lease is abandoned
        holder: Identifier written into the marker
        clock: Returns the current epoch time
    """

    def __init__(
        self,
        backend: CacheBackend,
        stale_after: float,
        holder: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.stale_after = stale_after
        self.holder = holder or default_holder_id()
        self._clock = clock
        self.held = False

    def current(self) -> Optional[LeaseRecord]:
        """
        The recorded lease, if any.

        An unreadable marker comes back as a record acquired at epoch 0 so
        it is always treated as abandoned.
        """
        text = self.backend.read_marker()
        if text is None:
            return None
        try:
            return LeaseRecord.from_text(text)
        except ValueError as e:
            lib_logger.warning(f"Ignoring unreadable refresh lease: {e}")
            return LeaseRecord(holder="unknown", acquired_at=0.0)

    def is_abandoned(self, record: LeaseRecord, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        return now - record.acquired_at >= self.stale_after

    def try_acquire(self) -> bool:
        """
        Take the lease if it is free, ours, or abandoned.

        Returns:
            True if this process now holds the lease
        """
        now = self._clock()
        record = LeaseRecord(holder=self.holder, acquired_at=now)

        if self.backend.create_marker(record.to_text()):
            self.held = True
            lib_logger.debug(f"Acquired refresh lease as {self.holder}")
            return True

        existing = self.current()
        if existing is None:
            # Released between our create attempt and the read
            self.held = self.backend.create_marker(record.to_text())
            return self.held

        if existing.holder != self.holder and not self.is_abandoned(existing, now):
            lib_logger.debug(
                f"Refresh lease held by {existing.holder} for "
                f"{now - existing.acquired_at:.1f}s"
            )
            return False

        if existing.holder != self.holder:
            lib_logger.warning(
                f"Overriding abandoned refresh lease of {existing.holder} "
                f"(age {now - existing.acquired_at:.0f}s)"
            )
        self.backend.replace_marker(record.to_text())

        # Another process may have overridden the same abandoned lease
        confirmed = self.current()
        self.held = confirmed is not None and confirmed.holder == self.holder
        return self.held

    def release(self) -> None:
        """Remove the marker if this process still holds it."""
        if not self.held:
            return
        self.held = False
        existing = self.current()
        if existing is not None and existing.holder == self.holder:
            self.backend.remove_marker()
            lib_logger.debug(f"Released refresh lease {self.holder}")

    @contextmanager
    def holding(self) -> Iterator["RefreshLease"]:
        """Release an acquired lease on every exit path."""
        try:
            yield self
        finally:
            self.release()
