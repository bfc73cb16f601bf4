import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Optional

from pwa_bridge.services.identity import Identity


@dataclass(frozen=True)
class PendingNote:
    identity: Identity
    armed_at: float = field(default_factory=time.monotonic)


class PendingNoteCaptures:
    """thread_id -> identity whose next staff text message becomes a note.

    At most one entry per thread; arming again rebinds. `ttl_seconds` of 0
    keeps entries until consumed.
    """

    def __init__(self, ttl_seconds: float = 0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: dict[str, PendingNote] = {}
        self._lock = Lock()

    def arm(self, thread_id: str, identity: Identity) -> PendingNote:
        pending = PendingNote(identity=identity, armed_at=self._clock())
        with self._lock:
            self._pending[str(thread_id)] = pending
        return pending

    def _expired(self, pending: PendingNote) -> bool:
        return self.ttl_seconds > 0 and self._clock() - pending.armed_at > self.ttl_seconds

    def peek(self, thread_id: str) -> Optional[PendingNote]:
        with self._lock:
            pending = self._pending.get(str(thread_id))
            if pending and self._expired(pending):
                del self._pending[str(thread_id)]
                return None
            return pending

    def consume(self, thread_id: str) -> Optional[PendingNote]:
        """Read and delete in one step. Only one caller ever gets the entry."""
        with self._lock:
            pending = self._pending.pop(str(thread_id), None)
        if pending and self._expired(pending):
            return None
        return pending

    def __len__(self) -> int:
        return len(self._pending)
