"""Id factories for new truck loads. Never derived from the wall clock."""

import itertools
import threading
import uuid


def uuid_load_id() -> str:
    return f"truck-{uuid.uuid4().hex}"


class SequentialIdFactory:
    """Monotonic ids ('truck-000001', ...), safe to share between threads."""

    def __init__(self, prefix: str = 'truck', start: int = 1):
        self.prefix = prefix
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            value = next(self._counter)
        return f"{self.prefix}-{value:06d}"
