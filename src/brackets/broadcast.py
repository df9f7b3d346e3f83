"""
Live bracket updates.

UpdateBroadcaster is an in-process registry of per-tournament callbacks.
BracketStream adapts one subscription into the server-sent-events text a
streaming response yields.
"""
import itertools
import json
import logging
import queue
import threading
from typing import Callable, Dict, Iterator

logger = logging.getLogger(__name__)

HEARTBEAT = ": heartbeat\n\n"


class UpdateBroadcaster:
    """Fan bracket snapshots out to whoever is watching a tournament."""

    def __init__(self):
        self._subscribers: Dict[str, Dict[int, Callable]] = {}
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, tournament_id: str, callback: Callable[[dict], None]) -> Callable[[], None]:
        """
        Register ``callback`` for a tournament's snapshots.

        Returns a function that removes the registration. Calling it more than
        once is harmless.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError('Broadcaster is closed')
            token = next(self._tokens)
            self._subscribers.setdefault(tournament_id, {})[token] = callback

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(tournament_id)
                if callbacks is None:
                    return
                callbacks.pop(token, None)
                if not callbacks:
                    del self._subscribers[tournament_id]

        return unsubscribe

    def publish(self, tournament_id: str, snapshot: dict) -> int:
        """Deliver a snapshot to every subscriber. Returns how many were called."""
        with self._lock:
            if self._closed:
                return 0
            callbacks = list(self._subscribers.get(tournament_id, {}).values())
        for callback in callbacks:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Bracket subscriber for %s failed", tournament_id)
        return len(callbacks)

    def subscriber_count(self, tournament_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(tournament_id, {}))

    def close(self):
        with self._lock:
            self._closed = True
            self._subscribers.clear()
        logger.info("Update broadcaster closed")


def format_event(snapshot: dict, event: str = 'bracket') -> str:
    return f"event: {event}\ndata: {json.dumps(snapshot)}\n\n"


class BracketStream:
    """
    One client's view of a tournament as a stream of SSE chunks.

    The subscription is taken when iteration starts and released when the
    generator finishes or is closed, so a stream that is never consumed holds
    nothing.
    """

    def __init__(self, broadcaster: UpdateBroadcaster, tournament_id: str,
                 fetch_snapshot: Callable[[], dict], heartbeat_seconds: float = 15,
                 max_pending: int = 100):
        self.broadcaster = broadcaster
        self.tournament_id = tournament_id
        self.fetch_snapshot = fetch_snapshot
        self.heartbeat_seconds = heartbeat_seconds
        self._pending = queue.Queue(maxsize=max_pending)

    def _enqueue(self, snapshot: dict):
        while True:
            try:
                self._pending.put_nowait(snapshot)
                return
            except queue.Full:
                # Slow reader: drop the oldest snapshot, the newer one supersedes it
                try:
                    self._pending.get_nowait()
                except queue.Empty:
                    pass

    def events(self) -> Iterator[str]:
        unsubscribe = self.broadcaster.subscribe(self.tournament_id, self._enqueue)
        try:
            # Subscribe before reading so no update between the two is lost
            snapshot = self.fetch_snapshot()
            last_version = snapshot.get('version', 0)
            yield format_event(snapshot)

            while not self.broadcaster.closed:
                try:
                    snapshot = self._pending.get(timeout=self.heartbeat_seconds)
                except queue.Empty:
                    yield HEARTBEAT
                    continue
                version = snapshot.get('version', 0)
                if version <= last_version:
                    continue
                last_version = version
                yield format_event(snapshot)
        finally:
            unsubscribe()

    def __iter__(self):
        return self.events()
