"""Best-effort key-value cache over Redis.

Every operation swallows connectivity/serialization failures after logging
them: a cache outage turns into misses and zero counters, never into an
API error.
"""

import json
import logging
from typing import Any, Dict, Iterable, Optional

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger("presskit")

DEFAULT_TTL = 3600


class Cache:
    def __init__(self, client: Optional[Redis], prefix: str = "presskit-pro:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "presskit-pro:") -> "Cache":
        client = Redis.from_url(url, decode_responses=True, socket_connect_timeout=2, socket_timeout=2)
        return cls(client, prefix)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _failed(self, op: str, key: str, exc: Exception) -> None:
        logger.warning("cache.error", extra={"op": op, "key": key, "error_message": str(exc)})

    def get(self, key: str) -> Any:
        if self.client is None:
            return None
        try:
            raw = self.client.get(self._key(key))
            return json.loads(raw) if raw is not None else None
        except (RedisError, ValueError) as exc:
            self._failed("get", key, exc)
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = DEFAULT_TTL) -> bool:
        if self.client is None:
            return False
        try:
            self.client.set(self._key(key), json.dumps(value), ex=ttl if ttl and ttl > 0 else None)
            return True
        except (RedisError, TypeError, ValueError) as exc:
            self._failed("set", key, exc)
            return False

    def delete(self, *keys: str) -> int:
        if self.client is None or not keys:
            return 0
        try:
            return int(self.client.delete(*[self._key(k) for k in keys]))
        except RedisError as exc:
            self._failed("delete", ",".join(keys), exc)
            return 0

    def exists(self, key: str) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.exists(self._key(key)))
        except RedisError as exc:
            self._failed("exists", key, exc)
            return False

    def incr(self, key: str, amount: int = 1) -> int:
        if self.client is None:
            return 0
        try:
            return int(self.client.incr(self._key(key), amount))
        except RedisError as exc:
            self._failed("incr", key, exc)
            return 0

    def get_int(self, key: str) -> int:
        if self.client is None:
            return 0
        try:
            raw = self.client.get(self._key(key))
            return int(raw) if raw is not None else 0
        except (RedisError, ValueError) as exc:
            self._failed("get_int", key, exc)
            return 0

    def hset(self, key: str, field: str, value: Any) -> bool:
        if self.client is None:
            return False
        try:
            self.client.hset(self._key(key), field, json.dumps(value))
            return True
        except (RedisError, TypeError, ValueError) as exc:
            self._failed("hset", key, exc)
            return False

    def hget(self, key: str, field: str) -> Any:
        if self.client is None:
            return None
        try:
            raw = self.client.hget(self._key(key), field)
            return json.loads(raw) if raw is not None else None
        except (RedisError, ValueError) as exc:
            self._failed("hget", key, exc)
            return None

    def hgetall(self, key: str) -> Dict[str, Any]:
        if self.client is None:
            return {}
        try:
            raw = self.client.hgetall(self._key(key)) or {}
            return {field: json.loads(value) for field, value in raw.items()}
        except (RedisError, ValueError) as exc:
            self._failed("hgetall", key, exc)
            return {}

    def hdel(self, key: str, fields: Iterable[str]) -> int:
        fields = list(fields)
        if self.client is None or not fields:
            return 0
        try:
            return int(self.client.hdel(self._key(key), *fields))
        except RedisError as exc:
            self._failed("hdel", key, exc)
            return 0

    def clear(self, pattern: str) -> int:
        """Delete every key matching ``pattern`` (relative to the prefix)."""
        if self.client is None:
            return 0
        try:
            keys = list(self.client.scan_iter(match=self._key(pattern)))
            return int(self.client.delete(*keys)) if keys else 0
        except RedisError as exc:
            self._failed("clear", pattern, exc)
            return 0

    def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except RedisError as exc:
            self._failed("ping", "-", exc)
            return False
