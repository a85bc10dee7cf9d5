import heapq
import itertools
import threading
import time
from typing import Any, Callable, List, Optional, Tuple

from portswitch.model.Core.Logger import get_logger

logger = get_logger('route')


class ExpiryScheduler:
    """
    Runs deferred callbacks from a single worker thread.

    Entries are never cancelled; callbacks are expected to check on their
    own whether they still apply when they fire.
    """

    def __init__(self, name: str = 'route-expiry'):
        self.name = name
        self._heap: List[Tuple[float, int, Callable[..., Any], tuple]] = []
        self._counter = itertools.count()
        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    def schedule(self, delay: float, callback: Callable[..., Any], *args):
        deadline = time.monotonic() + delay
        with self._cond:
            if self._closed:
                return
            heapq.heappush(self._heap, (deadline, next(self._counter), callback, args))
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread.start()
            self._cond.notify()

    def pending(self) -> int:
        with self._cond:
            return len(self._heap)

    def close(self):
        with self._cond:
            self._closed = True
            self._heap.clear()
            self._cond.notify_all()

    def _run(self):
        while True:
            with self._cond:
                while not self._closed:
                    if not self._heap:
                        self._cond.wait()
                        continue
                    remaining = self._heap[0][0] - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if self._closed:
                    return
                _, _, callback, args = heapq.heappop(self._heap)

            try:
                callback(*args)
            except Exception:
                logger.exception("Expiry callback failed")


class ActiveRoute:
    """
    The currently selected route id, shared by every connection thread.

    Attributes:
        lifetime (float): Seconds a selection stays valid, 0 keeps it forever
    """

    def __init__(self, lifetime: float = 0, scheduler: Optional[ExpiryScheduler] = None):
        self.lifetime = lifetime
        self._lock = threading.Lock()
        self._current_id = ""
        self._generation = 0
        self._scheduler = scheduler or ExpiryScheduler()

    def set(self, route_id: str) -> int:
        """
        Replace the current route id and, with a lifetime, schedule its expiry.

        Args:
            route_id: New route id, stored as-is (empty allowed)

        Returns:
            int: generation number of this write
        """
        with self._lock:
            self._current_id = route_id
            self._generation += 1
            generation = self._generation
            if self.lifetime > 0:
                self._scheduler.schedule(self.lifetime, self.clear_if_unchanged, route_id, generation)
        return generation

    def get(self) -> str:
        with self._lock:
            return self._current_id

    def clear_if_unchanged(self, route_id: str, generation: Optional[int] = None) -> bool:
        """
        Clear the current id only if nothing replaced it since it was set.

        Args:
            route_id: The id the expiry was scheduled for
            generation: Generation of the originating write; None compares the id only

        Returns:
            bool: True if the id was cleared
        """
        with self._lock:
            if self._current_id != route_id:
                return False
            if generation is not None and generation != self._generation:
                return False
            self._current_id = ""
        logger.info(f"ID value cleared: {route_id!r}")
        return True

    def pending_expiries(self) -> int:
        return self._scheduler.pending()

    def close(self):
        self._scheduler.close()
