"""Persists status snapshots and fans them out to live subscribers."""

import logging
import threading
import uuid
from typing import Protocol

from shellflow.models.status import Status
from shellflow.services.progress import refresh_progress
from shellflow.services.status_store import StatusStore

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    """Receives serialized Status snapshots."""

    def send(self, payload: str) -> None: ...

    def close(self) -> None: ...


class StatusBroadcaster:
    """Writes every snapshot to the store and to all attached subscribers.

    The lock is shared with the owner of the Status, so a snapshot is always
    serialized from the same state its percent was computed from.
    """

    def __init__(self, store: StatusStore, lock: "threading.RLock | None" = None):
        if store is None:
            raise ValueError("store is required")

        self._store = store
        self._lock = lock or threading.RLock()
        self._subscribers: dict[str, Subscriber] = {}

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, status: Status) -> None:
        """Persist the status and push it to every subscriber.

        Raises StatusStoreError if persisting fails; subscribers are still
        updated in that case.
        """
        with self._lock:
            payload = self._serialize(status)
            try:
                self._store.save(payload)
            finally:
                self._fan_out(payload)

    def attach(self, subscriber: Subscriber, status: Status) -> str:
        """Add a subscriber and send it the current snapshot right away."""
        if subscriber is None:
            raise ValueError("subscriber is required")

        subscriber_id = uuid.uuid4().hex[:12]
        with self._lock:
            self._subscribers[subscriber_id] = subscriber
            payload = self._serialize(status)
            self._send(subscriber_id, subscriber, payload)
        logger.debug(f"Subscriber {subscriber_id} attached")
        return subscriber_id

    def detach(self, subscriber_id: str) -> None:
        """Remove a subscriber. Unknown ids are ignored."""
        with self._lock:
            removed = self._subscribers.pop(subscriber_id, None)
        if removed is not None:
            logger.debug(f"Subscriber {subscriber_id} detached")

    def close_all(self) -> None:
        """Close and forget every subscriber."""
        with self._lock:
            subscribers = list(self._subscribers.items())
            self._subscribers.clear()

            for subscriber_id, subscriber in subscribers:
                try:
                    subscriber.close()
                except Exception as e:
                    logger.error(f"Unable to close subscriber {subscriber_id}: {e}")

    def _serialize(self, status: Status) -> str:
        refresh_progress(status)
        return status.to_json()

    def _fan_out(self, payload: str) -> None:
        for subscriber_id, subscriber in list(self._subscribers.items()):
            self._send(subscriber_id, subscriber, payload)

    def _send(self, subscriber_id: str, subscriber: Subscriber, payload: str) -> None:
        try:
            subscriber.send(payload)
        except Exception as e:
            logger.error(f"Unable to write status to subscriber {subscriber_id}: {e}")
