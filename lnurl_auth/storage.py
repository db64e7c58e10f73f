# lnurl_auth/storage.py
#
# -----------------------------------------------------------------------------
# Session store
# -----------------------------------------------------------------------------
# Maps a challenge (k1) to the auth record of the browser session that was shown
# it. The mapping lives outside the cookie session because the signer calls the
# callback URL from its own device, without the browser's cookie: k1 is the only
# value both legs share.
#
# Contract (all implementations):
#   - get(k1)          -> AuthRecord | None
#   - save(k1, record) -> None, replaces the whole record atomically
#   - I/O failures raise StoreError, never return None
#   - records handed out are copies; mutating one never affects the store
#
# InMemoryStore is the single-process default. RedisStore is for deployments
# with several workers/nodes, where the callback may land on another process
# than the one that rendered the login page.
# -----------------------------------------------------------------------------

import json
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, Optional, Tuple

from redis.exceptions import RedisError

from .errors import StoreError

SWEEP_INTERVAL = 60.0


@dataclass
class AuthRecord:
    k1: str
    linking_public_key: Optional[str] = None
    created_at: int = field(default_factory=lambda: int(time.time()))

    @property
    def is_linked(self) -> bool:
        return self.linking_public_key is not None

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_json(cls, raw) -> "AuthRecord":
        data = json.loads(raw)
        return cls(
            k1=str(data["k1"]),
            linking_public_key=data.get("linking_public_key"),
            created_at=int(data.get("created_at", 0)),
        )


class SessionStore(ABC):
    @abstractmethod
    async def get(self, k1: str) -> Optional[AuthRecord]:
        ...

    @abstractmethod
    async def save(self, k1: str, record: AuthRecord) -> None:
        ...


class InMemoryStore(SessionStore):
    """
    Process-local store.

    Entries expire ttl_seconds after their last save (None keeps them forever).
    An expired entry is dropped when it is looked up; the rest are swept at
    most once every sweep_interval seconds, so get and save stay O(1) between
    sweeps.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, sweep_interval: float = SWEEP_INTERVAL):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval = sweep_interval
        self._records: Dict[str, Tuple[AuthRecord, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._last_sweep = time.time()

    async def get(self, k1: str) -> Optional[AuthRecord]:
        now = time.time()
        with self._lock:
            self._maybe_sweep(now)
            entry = self._records.get(k1)
            if entry is None:
                return None
            record, expires_at = entry
            if expires_at is not None and now > expires_at:
                del self._records[k1]
                return None
            return replace(record)

    async def save(self, k1: str, record: AuthRecord) -> None:
        expires_at = None
        if self.ttl_seconds:
            expires_at = time.time() + self.ttl_seconds
        with self._lock:
            self._maybe_sweep(time.time())
            self._records[k1] = (replace(record), expires_at)

    def __len__(self) -> int:
        with self._lock:
            self._sweep(time.time())
            return len(self._records)

    def _maybe_sweep(self, now: float) -> None:
        # caller holds the lock
        if self.ttl_seconds and now - self._last_sweep >= self.sweep_interval:
            self._sweep(now)

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        self._last_sweep = now
        dead = [k for k, (_, exp) in self._records.items() if exp is not None and now > exp]
        for k in dead:
            del self._records[k]


class RedisStore(SessionStore):
    """
    Shared store on top of a redis.asyncio client.

    Records are stored as canonical JSON under "<prefix><k1>" and expire through
    Redis' own TTL (SET ... EX). A single SET replaces the record as a whole.
    """

    def __init__(self, client, ttl_seconds: Optional[int] = None, prefix: str = "lnurl-auth:"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisStore":
        from redis import asyncio as aioredis

        return cls(aioredis.from_url(url), **kwargs)

    def _key(self, k1: str) -> str:
        return self.prefix + k1

    async def get(self, k1: str) -> Optional[AuthRecord]:
        try:
            raw = await self.client.get(self._key(k1))
        except RedisError as e:
            raise StoreError(f"redis get failed: {e!s}") from e
        if raw is None:
            return None
        try:
            return AuthRecord.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            raise StoreError(f"corrupt auth record for {k1[:8]}") from e

    async def save(self, k1: str, record: AuthRecord) -> None:
        try:
            await self.client.set(self._key(k1), record.to_json(), ex=self.ttl_seconds or None)
        except RedisError as e:
            raise StoreError(f"redis set failed: {e!s}") from e
