from __future__ import annotations

from typing import List, Set


class InFlightGuard:
    """
    Tracks which resources have a refresh outstanding.

    try_acquire() never waits: a busy resource is reported as busy and the caller skips it.
    All access happens on the event loop thread, so a plain set is sufficient.
    """

    def __init__(self) -> None:
        self._busy: Set[str] = set()

    def try_acquire(self, resource_id: str) -> bool:
        if resource_id in self._busy:
            return False
        self._busy.add(resource_id)
        return True

    def release(self, resource_id: str) -> None:
        self._busy.discard(resource_id)

    def is_in_flight(self, resource_id: str) -> bool:
        return resource_id in self._busy

    def snapshot(self) -> List[str]:
        return sorted(self._busy)

    def clear(self) -> None:
        self._busy.clear()
