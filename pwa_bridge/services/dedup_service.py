from collections import OrderedDict
from threading import Lock

DEFAULT_WINDOW = 1000


class RecentIds:
    """Bounded set of recently seen ids (Telegram update_id redelivery guard)."""

    def __init__(self, window: int = DEFAULT_WINDOW):
        self.window = window
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._lock = Lock()

    def seen_before(self, value) -> bool:
        """Record `value`; True when it was already recorded."""
        key = str(value)
        with self._lock:
            if key in self._seen:
                self._seen.move_to_end(key)
                return True
            self._seen[key] = None
            while len(self._seen) > self.window:
                self._seen.popitem(last=False)
            return False
