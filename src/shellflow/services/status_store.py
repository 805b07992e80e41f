"""Durable storage for the workflow status snapshot."""

import logging
import os
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError
from redis import Redis, RedisError

from shellflow.models.status import Status

logger = logging.getLogger(__name__)

DEFAULT_STATUS_KEY = "shellflow:status"


class StatusNotFoundError(Exception):
    """Raised when no persisted status exists."""

    def __init__(self, location: str):
        self.location = location
        super().__init__(f"Status not found: {location}")


class StatusStoreError(Exception):
    """Raised when the persisted status cannot be read or written."""

    pass


class StatusStore(Protocol):
    """Storage for one serialized Status document."""

    def exists(self) -> bool: ...

    def load(self) -> Status | None: ...

    def save(self, payload: str) -> None: ...

    def delete(self) -> None: ...


class FileStatusStore:
    """Keeps the status as a JSON file, replaced atomically on every save."""

    def __init__(self, path: str):
        if not path:
            raise ValueError("path is required")
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> Status | None:
        """Load the persisted status, or None if there is none."""
        try:
            data = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StatusStoreError(f"Unable to read status file {self._path}: {e}")

        try:
            return Status.model_validate_json(data)
        except ValidationError as e:
            raise StatusStoreError(f"Invalid status file {self._path}: {e}")

    def save(self, payload: str) -> None:
        """Overwrite the status file with a serialized Status."""
        tmp_path = self._path.with_name(f".{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StatusStoreError(f"Unable to write status file {self._path}: {e}")

    def delete(self) -> None:
        """Remove the status file if present."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StatusStoreError(f"Unable to remove status file {self._path}: {e}")


class RedisStatusStore:
    """Keeps the status as a JSON string under a single Redis key."""

    def __init__(self, redis_client: Redis, key: str = DEFAULT_STATUS_KEY):
        if redis_client is None:
            raise ValueError("redis_client is required")
        if not key:
            raise ValueError("key is required")
        self._redis = redis_client
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def exists(self) -> bool:
        try:
            return bool(self._redis.exists(self._key))
        except RedisError as e:
            raise StatusStoreError(f"Unable to reach status key {self._key}: {e}")

    def load(self) -> Status | None:
        """Load the persisted status, or None if there is none."""
        try:
            data = self._redis.get(self._key)
        except RedisError as e:
            raise StatusStoreError(f"Unable to read status key {self._key}: {e}")
        if data is None:
            return None

        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            return Status.model_validate_json(data)
        except ValidationError as e:
            raise StatusStoreError(f"Invalid status at key {self._key}: {e}")

    def save(self, payload: str) -> None:
        """Overwrite the status key with a serialized Status."""
        try:
            self._redis.set(self._key, payload)
        except RedisError as e:
            raise StatusStoreError(f"Unable to write status key {self._key}: {e}")

    def delete(self) -> None:
        """Remove the status key."""
        try:
            self._redis.delete(self._key)
        except RedisError as e:
            raise StatusStoreError(f"Unable to remove status key {self._key}: {e}")


def create_status_store(
    status_file: str,
    redis_url: str | None = None,
    key: str = DEFAULT_STATUS_KEY,
) -> StatusStore:
    """Select the Redis store when a URL is given, the file store otherwise."""
    if redis_url:
        logger.info(f"Persisting status to Redis key {key}")
        return RedisStatusStore(Redis.from_url(redis_url, decode_responses=True), key)

    logger.info(f"Persisting status to {status_file}")
    return FileStatusStore(status_file)
