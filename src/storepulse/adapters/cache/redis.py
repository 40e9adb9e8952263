"""Shared cache backed by Redis."""

import json
from typing import Any

import redis


class RedisCache:
    """Redis implementation of CachePort.

    Values are stored as JSON strings under ``<namespace><key>``.

    Example:
        ```python
        cache = RedisCache.from_url("redis://localhost:6379/0")
        cache.put("greeting", {"hello": "world"}, ttl=60)
        ```
    """

    def __init__(self, client: redis.Redis, namespace: str = "storepulse:") -> None:
        self._client = client
        self._namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "storepulse:") -> "RedisCache":
        client = redis.Redis.from_url(
            url, socket_timeout=2.0, socket_connect_timeout=2.0, decode_responses=True
        )
        return cls(client, namespace)

    @property
    def client(self) -> redis.Redis:
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._client.get(self._key(key))
        if raw is None:
            return default
        if isinstance(raw, bytes):
            raw = raw.decode()
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return default

    def put(self, key: str, value: Any, ttl: float | None = None) -> None:
        payload = json.dumps(value, default=str)
        if ttl is None:
            self._client.set(self._key(key), payload)
        else:
            self._client.setex(self._key(key), max(1, int(ttl)), payload)

    def forget(self, key: str) -> None:
        self._client.delete(self._key(key))

    def info(self) -> dict[str, Any]:
        """Return the server INFO mapping."""
        return dict(self._client.info())
