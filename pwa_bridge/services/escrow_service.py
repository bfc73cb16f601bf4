from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Optional


@dataclass(frozen=True)
class PendingPaidContent:
    media_ref: str
    amount: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EscrowStore:
    """One locked item per room; a new lock replaces the previous one."""

    def __init__(self):
        self._pending: dict[str, PendingPaidContent] = {}
        self._lock = Lock()

    def lock(self, room: str, media_ref: str, amount: float) -> PendingPaidContent:
        item = PendingPaidContent(media_ref=media_ref, amount=amount)
        with self._lock:
            self._pending[room] = item
        return item

    def unlock(self, room: str) -> Optional[PendingPaidContent]:
        with self._lock:
            return self._pending.pop(room, None)

    def peek(self, room: str) -> Optional[PendingPaidContent]:
        with self._lock:
            return self._pending.get(room)

    def __len__(self) -> int:
        return len(self._pending)
