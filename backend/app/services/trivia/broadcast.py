"""Realtime fan-out of committed session snapshots.

Two kinds of subscriber are served from the same ``publish`` call:

- Socket.IO clients, grouped in the room ``session:<id>`` on ``/ws``
- in-process ``Subscription`` iterators (dashboard workers, tests)

Both receive the current snapshot first (catch-up) and then every later
snapshot in commit order. Snapshots carry ``seq`` so clients can drop
duplicates after a reconnect.
"""

import queue
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from flask import current_app
from flask_socketio import join_room, leave_room

from app import socketio
from .store import session_lock, snapshot

_CLOSED = object()


class Subscription:
    """Ordered, lossless feed of snapshots for one session."""

    def __init__(self, session_id: str, on_close: Optional[Callable[['Subscription'], None]] = None):
        self.session_id = session_id
        self.last_seq: Optional[int] = None
        self._queue: 'queue.Queue[Any]' = queue.Queue()
        self._lock = threading.Lock()
        self._on_close = on_close
        self.closed = False

    def deliver(self, payload: Dict[str, Any]) -> None:
        seq = payload.get('seq')
        with self._lock:
            if self.closed:
                return
            if self.last_seq is not None and seq is not None and seq <= self.last_seq:
                return
            self.last_seq = seq
        self._queue.put(payload)

    def get(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Next snapshot; raises ``queue.Empty`` on timeout, ``StopIteration`` once closed."""
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            raise StopIteration
        return item

    def __iter__(self):
        return self

    def __next__(self) -> Dict[str, Any]:
        return self.get()

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
        if self._on_close:
            self._on_close(self)
        self._queue.put(_CLOSED)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class Broadcaster:
    def __init__(self, namespace: str = '/ws'):
        self.namespace = namespace
        self._subscriptions: Dict[str, List[Subscription]] = defaultdict(list)
        self._guard = threading.Lock()

    @staticmethod
    def room(session_id: str) -> str:
        return f"session:{session_id}"

    def publish(self, session_id: str, payload: Dict[str, Any]) -> None:
        """Fan a committed snapshot out. Callers hold the session lock."""
        with self._guard:
            targets = list(self._subscriptions.get(session_id, ()))
        for subscription in targets:
            subscription.deliver(payload)
        socketio.emit('state_update', payload, to=self.room(session_id), namespace=self.namespace)

    def subscribe(self, session_id: str, last_seq: Optional[int] = None) -> Subscription:
        """Attach an in-process subscriber; the current snapshot is queued first.

        ``last_seq`` is what a reconnecting client saw last. The full current
        snapshot is replayed regardless, never a diff.
        """
        with session_lock(session_id):
            current = snapshot(session_id)
            subscription = Subscription(session_id, on_close=self._detach)
            subscription.deliver(current)
            with self._guard:
                self._subscriptions[session_id].append(subscription)
        current_app.logger.info(f"[subscribe] session={session_id} last_seq={last_seq} seq={current['seq']}")
        return subscription

    def attach_socket(self, session_id: str, sid: str, last_seq: Optional[int] = None) -> Dict[str, Any]:
        """Join a socket to the session room and send it the catch-up snapshot.

        Both happen under the session lock so the socket can neither miss a
        publish nor see one before its catch-up.
        """
        with session_lock(session_id):
            current = snapshot(session_id)
            join_room(self.room(session_id), sid=sid, namespace=self.namespace)
            socketio.emit('state_update', current, to=sid, namespace=self.namespace)
        current_app.logger.info(f"[subscribe] session={session_id} socket last_seq={last_seq} seq={current['seq']}")
        return current

    def detach_socket(self, session_id: str, sid: str) -> None:
        leave_room(self.room(session_id), sid=sid, namespace=self.namespace)

    def subscriber_count(self, session_id: str) -> int:
        with self._guard:
            return len(self._subscriptions.get(session_id, ()))

    def _detach(self, subscription: Subscription) -> None:
        with self._guard:
            subs = self._subscriptions.get(subscription.session_id)
            if subs and subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscriptions.pop(subscription.session_id, None)


broadcaster = Broadcaster()
