"""
Persistence backends for the claim collection.

The whole collection ({counter, claims}) is one document: every backend loads
it whole and replaces it whole. Backends:

- JsonFileBackend: local JSON file, replaced atomically on save
- RedisBackend: one JSON string under a single Redis key
- MemoryBackend: in-process snapshot, for tests and throwaway runs

A missing or corrupt snapshot loads as an empty collection. Write failures
raise StorageError.
"""

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, Optional

import redis
from pydantic import ValidationError

from .errors import StorageError
from .models import Claim, ClaimCollection

logger = logging.getLogger(__name__)

# Default snapshot location
DEFAULT_DATA_PATH = Path(__file__).parent.parent.parent / "data" / "claims.json"
DEFAULT_KV_KEY = "mic:claims:store:v1"
GENERATED_ID = re.compile(r"^NC-\d{8}-(\d{4,})$")


def parse_snapshot(raw: Any, source: str) -> ClaimCollection:
    """
    Validate a decoded snapshot.

    Anything that is not {counter: int, claims: list} is treated as corrupt
    and replaced by an empty collection. Within a well-shaped document each
    claim is validated on its own: a record that fails is logged and kept
    aside (saved back unchanged) instead of discarding the collection.

    The counter is never lower than the highest sequence number already
    issued, so generated ids are not handed out twice.
    """
    counter = raw.get("counter") if isinstance(raw, dict) else None
    records = raw.get("claims") if isinstance(raw, dict) else None
    if isinstance(counter, bool) or not isinstance(counter, int) or not isinstance(records, list):
        logger.warning(f"Claim snapshot in {source} has an unexpected shape; starting empty")
        return ClaimCollection()

    claims: list[Claim] = []
    unreadable: list[Any] = []
    for index, record in enumerate(records):
        try:
            claims.append(Claim.model_validate(record))
        except ValidationError as e:
            claim_id = record.get("id") if isinstance(record, dict) else None
            logger.warning(
                f"Claim {claim_id or f'#{index}'} in {source} failed validation; kept as stored: {e}"
            )
            unreadable.append(record)

    collection = ClaimCollection(claims=claims, unreadable=unreadable)
    collection.counter = max(counter, highest_sequence(collection.claim_ids()), 0)
    return collection


def highest_sequence(claim_ids: Iterable[str]) -> int:
    """Largest NNNN among generated ids of the form NC-YYYYMMDD-NNNN."""
    numbers = [int(m.group(1)) for m in map(GENERATED_ID.match, claim_ids) if m]
    return max(numbers, default=0)


def dump_snapshot(collection: ClaimCollection, indent: Optional[int] = None) -> str:
    """Serialize the collection as the stored JSON document."""
    return json.dumps(collection.to_dict(), indent=indent, ensure_ascii=False)


class StoreBackend(ABC):
    """Load-whole / save-whole contract used by ClaimStore."""

    name = "abstract"

    @abstractmethod
    def load(self) -> ClaimCollection:
        """Return the stored collection, or an empty one if there is none."""

    @abstractmethod
    def save(self, collection: ClaimCollection) -> None:
        """Replace the stored collection. Raises StorageError on failure."""

    def describe(self) -> str:
        return self.name


class JsonFileBackend(StoreBackend):
    """Claim collection kept in a local JSON file."""

    name = "file"

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path or DEFAULT_DATA_PATH)

    def describe(self) -> str:
        return f"file:{self.path}"

    def load(self) -> ClaimCollection:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ClaimCollection()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read claim snapshot {self.path}: {e}; starting empty")
            return ClaimCollection()

        if not text.strip():
            return ClaimCollection()

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Claim snapshot {self.path} is not valid JSON: {e}; starting empty")
            return ClaimCollection()

        return parse_snapshot(raw, str(self.path))

    def save(self, collection: ClaimCollection) -> None:
        payload = dump_snapshot(collection, indent=2)
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write beside the target and rename over it so readers never
            # see a half-written file.
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            logger.error(f"Failed to write claim snapshot {self.path}: {e}")
            raise StorageError(f"Could not write claim snapshot {self.path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)


class RedisBackend(StoreBackend):
    """Claim collection kept as a single JSON blob in Redis."""

    name = "redis"

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        key: str = DEFAULT_KV_KEY,
        timeout: float = 5.0,
        client: Optional[redis.Redis] = None,
    ):
        self.key = key
        self.client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )

    def describe(self) -> str:
        return f"redis:{self.key}"

    def load(self) -> ClaimCollection:
        try:
            raw = self.client.get(self.key)
        except redis.RedisError as e:
            logger.error(f"Failed to read claim snapshot from Redis key {self.key}: {e}")
            raise StorageError(f"Could not read claim snapshot from Redis: {e}") from e

        if raw is None:
            return ClaimCollection()

        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Redis key {self.key} does not hold valid JSON: {e}; starting empty")
            return ClaimCollection()

        return parse_snapshot(decoded, f"redis:{self.key}")

    def save(self, collection: ClaimCollection) -> None:
        try:
            self.client.set(self.key, dump_snapshot(collection))
        except redis.RedisError as e:
            logger.error(f"Failed to write claim snapshot to Redis key {self.key}: {e}")
            raise StorageError(f"Could not write claim snapshot to Redis: {e}") from e


class MemoryBackend(StoreBackend):
    """
    In-memory snapshot.

    Stores the serialized document rather than live objects so every load
    hands out a fresh copy, same as the durable backends.
    """

    name = "memory"

    def __init__(self, snapshot: Optional[str] = None):
        self._snapshot = snapshot

    def load(self) -> ClaimCollection:
        if not self._snapshot:
            return ClaimCollection()
        return parse_snapshot(json.loads(self._snapshot), "memory")

    def save(self, collection: ClaimCollection) -> None:
        self._snapshot = dump_snapshot(collection)


def create_backend(settings=None) -> StoreBackend:
    """Build the backend named by settings.claims_storage_backend."""
    if settings is None:
        from ..utils.config import get_settings
        settings = get_settings()

    kind = (settings.claims_storage_backend or "file").strip().lower()
    if kind == "file":
        return JsonFileBackend(settings.claims_data_path)
    if kind == "redis":
        return RedisBackend(
            url=settings.redis_url,
            key=settings.claims_kv_key,
            timeout=settings.redis_timeout_seconds,
        )
    if kind == "memory":
        return MemoryBackend()
    raise ValueError(f"Unsupported storage backend: {settings.claims_storage_backend}")
