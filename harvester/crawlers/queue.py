"""Work queue - unique-key deduplicated request queue

Two backends share one interface:
- InMemoryRequestQueue: single process, lost on exit
- RedisRequestQueue: survives restarts; in-progress requests are moved back
  to pending by `recover()` when a crashed run is resumed
"""

from __future__ import annotations

import json
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Union

from redis.asyncio import Redis

from harvester.core.config import settings
from harvester.core.exceptions import QueueException
from harvester.core.logging import logger, sanitize_for_log
from harvester.engine.interfaces import EnqueueResult


@dataclass
class HarvestRequest:
    """Queued work item

    Attributes:
        url: page to load
        unique_key: dedup key; a second enqueue with the same key is a no-op
        user_data: handler payload, always carries `label`
        retry_count: failed attempts so far
        no_retry: a handler marked this request terminal
        error_messages: one entry per failed attempt
    """

    url: str
    unique_key: str
    user_data: dict[str, Any] = field(default_factory=dict)
    retry_count: int = 0
    no_retry: bool = False
    error_messages: list[str] = field(default_factory=list)

    @property
    def label(self) -> Optional[str]:
        return self.user_data.get("label")

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "HarvestRequest":
        return cls(**json.loads(data))


class InMemoryRequestQueue:
    """Process-local queue (deque + key index)"""

    def __init__(self) -> None:
        self._pending: deque[HarvestRequest] = deque()
        self._in_progress: dict[str, HarvestRequest] = {}
        self._keys: set[str] = set()
        self._handled = 0

    async def enqueue(
        self,
        url: str,
        unique_key: str,
        user_data: dict[str, Any],
        *,
        forefront: bool = False,
    ) -> EnqueueResult:
        unique_key = unique_key or url
        if unique_key in self._keys:
            return EnqueueResult(was_already_present=True, unique_key=unique_key)

        self._keys.add(unique_key)
        request = HarvestRequest(url=url, unique_key=unique_key, user_data=dict(user_data))
        if forefront:
            self._pending.appendleft(request)
        else:
            self._pending.append(request)
        return EnqueueResult(was_already_present=False, unique_key=unique_key)

    async def fetch_next(self) -> Optional[HarvestRequest]:
        if not self._pending:
            return None
        request = self._pending.popleft()
        self._in_progress[request.unique_key] = request
        return request

    async def mark_handled(self, request: HarvestRequest) -> None:
        self._in_progress.pop(request.unique_key, None)
        self._handled += 1

    async def reclaim(self, request: HarvestRequest, forefront: bool = False) -> None:
        """Put a failed request back for another attempt."""
        self._in_progress.pop(request.unique_key, None)
        if forefront:
            self._pending.appendleft(request)
        else:
            self._pending.append(request)

    async def is_empty(self) -> bool:
        return not self._pending

    async def is_finished(self) -> bool:
        return not self._pending and not self._in_progress

    async def get_handled_count(self) -> int:
        return self._handled

    async def close(self) -> None:
        return None


class RedisRequestQueue:
    """Crash-resumable queue on Redis

    Layout under `prefix`:
        :keys         set of every unique key ever enqueued
        :pending      list of unique keys waiting to be fetched
        :requests     hash unique key -> request JSON
        :in_progress  list of fetched, not yet handled keys
        :handled      counter
    """

    def __init__(self, client: Redis, prefix: Optional[str] = None):
        self.redis = client
        self.prefix = prefix or settings.redis_queue_prefix

    @classmethod
    async def connect(cls, url: Optional[str] = None, prefix: Optional[str] = None) -> "RedisRequestQueue":
        """Connect and ping

        Raises:
            QueueException: Redis is unreachable
        """
        url = url or settings.redis_url
        try:
            client = Redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            await client.ping()
            logger.info(f"[QUEUE] Redis connection established: {sanitize_for_log(url)}")
        except Exception as e:
            logger.error(f"[QUEUE] Failed to connect to Redis: {e}")
            raise QueueException(
                "Redis connection failed",
                error_code="QUEUE_CONN_FAILED",
                details={"reason": str(e)},
            )
        return cls(client, prefix)

    def _key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    async def enqueue(
        self,
        url: str,
        unique_key: str,
        user_data: dict[str, Any],
        *,
        forefront: bool = False,
    ) -> EnqueueResult:
        unique_key = unique_key or url
        try:
            added = await self.redis.sadd(self._key("keys"), unique_key)
            if not added:
                return EnqueueResult(was_already_present=True, unique_key=unique_key)

            request = HarvestRequest(url=url, unique_key=unique_key, user_data=dict(user_data))
            await self.redis.hset(self._key("requests"), unique_key, request.to_json())
            if forefront:
                await self.redis.lpush(self._key("pending"), unique_key)
            else:
                await self.redis.rpush(self._key("pending"), unique_key)
        except (TypeError, ValueError) as e:
            raise QueueException(
                f"Request user data is not serializable: {e}",
                error_code="QUEUE_SER_FAILED",
                details={"unique_key": unique_key},
            )
        return EnqueueResult(was_already_present=False, unique_key=unique_key)

    async def fetch_next(self) -> Optional[HarvestRequest]:
        # LMOVE keeps the key in exactly one of the two lists at every instant
        while True:
            unique_key = await self.redis.lmove(self._key("pending"), self._key("in_progress"), "LEFT", "RIGHT")
            if unique_key is None:
                return None

            payload = await self.redis.hget(self._key("requests"), unique_key)
            if payload is not None:
                return HarvestRequest.from_json(payload)

            logger.warning(f"[QUEUE] Request payload missing for key {unique_key}, dropping")
            await self.redis.lrem(self._key("in_progress"), 0, unique_key)

    async def mark_handled(self, request: HarvestRequest) -> None:
        await self.redis.hdel(self._key("requests"), request.unique_key)
        await self.redis.incr(self._key("handled"))
        await self.redis.lrem(self._key("in_progress"), 0, request.unique_key)

    async def reclaim(self, request: HarvestRequest, forefront: bool = False) -> None:
        await self.redis.hset(self._key("requests"), request.unique_key, request.to_json())
        if forefront:
            await self.redis.lpush(self._key("pending"), request.unique_key)
        else:
            await self.redis.rpush(self._key("pending"), request.unique_key)
        await self.redis.lrem(self._key("in_progress"), 0, request.unique_key)

    async def recover(self) -> int:
        """Move requests left in progress by a crashed run back to pending

        Recovered requests go to the front, in the order they were fetched.

        Returns:
            number of recovered requests
        """
        keys = await self.redis.lrange(self._key("in_progress"), 0, -1)
        for unique_key in reversed(keys):
            await self.redis.lpush(self._key("pending"), unique_key)
        if keys:
            await self.redis.delete(self._key("in_progress"))
            logger.info(f"[QUEUE] Recovered {len(keys)} in-progress request(s)")
        return len(keys)

    async def is_empty(self) -> bool:
        return await self.redis.llen(self._key("pending")) == 0

    async def is_finished(self) -> bool:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.llen(self._key("pending"))
            pipe.llen(self._key("in_progress"))
            pending, in_progress = await pipe.execute()
        return pending == 0 and in_progress == 0

    async def get_handled_count(self) -> int:
        value = await self.redis.get(self._key("handled"))
        return int(value or 0)

    async def close(self) -> None:
        await self.redis.aclose()


RequestQueueBackend = Union[InMemoryRequestQueue, RedisRequestQueue]


async def create_request_queue() -> RequestQueueBackend:
    """Queue for the configured backend (`settings.queue_backend`)."""
    if settings.queue_backend == "redis":
        queue = await RedisRequestQueue.connect()
        await queue.recover()
        return queue
    return InMemoryRequestQueue()
