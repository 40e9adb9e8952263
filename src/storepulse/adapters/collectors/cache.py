"""Cache tier metrics and a small set/get/delete benchmark."""

import re
import sys
import time
from typing import Any

import redis

from storepulse.adapters.cache.in_memory import InMemoryCache
from storepulse.adapters.collectors.base import guard
from storepulse.core.ports import CachePort

_KEYSPACE = re.compile(r"keys=(\d+),expires=(\d+),avg_ttl=(\d+)")


def _parse_keyspace(value: Any) -> dict[str, int]:
    if isinstance(value, dict):
        return {
            "keys": int(value.get("keys", 0)),
            "expires": int(value.get("expires", 0)),
            "avg_ttl": int(value.get("avg_ttl", 0)),
        }
    found = _KEYSPACE.search(str(value))
    if not found:
        return {"keys": 0, "expires": 0, "avg_ttl": 0}
    keys, expires, avg_ttl = (int(group) for group in found.groups())
    return {"keys": keys, "expires": expires, "avg_ttl": avg_ttl}


def _hit_ratio(hits: float, misses: float) -> float:
    total = hits + misses
    return round(hits / total * 100, 2) if total else 0.0


class CacheMetricsCollector:
    """Collects metrics from each configured cache tier.

    Tiers are probed independently: ``local`` (in-process cache), ``shared``
    (Redis), ``bytecode`` (the interpreter's compiled module cache). The
    ``performance`` section benchmarks every backend in ``benchmark``.

    Args:
        local: In-process cache whose counters are reported.
        redis_client: Redis client; None reports the tier as disabled.
        benchmark: Backends to benchmark, by name.
        iterations: Set/get/delete rounds per backend.
        payload_bytes: Size of the benchmark value.
        deadline: Seconds after which a backend's benchmark stops early.
    """

    def __init__(
        self,
        local: InMemoryCache | None = None,
        redis_client: redis.Redis | None = None,
        benchmark: dict[str, CachePort] | None = None,
        iterations: int = 100,
        payload_bytes: int = 1024,
        deadline: float = 1.0,
    ) -> None:
        self._local = local
        self._redis = redis_client
        self._benchmark = benchmark or {}
        self._iterations = iterations
        self._payload = "x" * payload_bytes
        self._deadline = deadline

    def collect(self) -> dict[str, Any]:
        return {
            "local": guard({"enabled": self._local is not None}, self._local_stats),
            "shared": guard({"enabled": self._redis is not None}, self._shared_stats),
            "bytecode": guard({"enabled": False}, self._bytecode_stats),
            "performance": guard({}, self._performance),
        }

    def _local_stats(self) -> dict[str, Any]:
        if self._local is None:
            return {}
        return {"stats": self._local.stats()}

    def _shared_stats(self) -> dict[str, Any]:
        if self._redis is None:
            return {}
        info = self._redis.info()
        hits = int(info.get("keyspace_hits", 0))
        misses = int(info.get("keyspace_misses", 0))
        keyspace = {
            key: _parse_keyspace(value)
            for key, value in info.items()
            if re.fullmatch(r"db\d+", str(key))
        }
        return {
            "server_info": {
                "version": info.get("redis_version", "unknown"),
                "mode": info.get("redis_mode", "standalone"),
                "uptime_seconds": int(info.get("uptime_in_seconds", 0)),
                "connected_clients": int(info.get("connected_clients", 0)),
            },
            "memory": {
                "used_memory": int(info.get("used_memory", 0)),
                "used_memory_peak": int(info.get("used_memory_peak", 0)),
                "maxmemory": int(info.get("maxmemory", 0)),
                "fragmentation_ratio": float(info.get("mem_fragmentation_ratio", 0.0)),
            },
            "stats": {
                "total_commands_processed": int(
                    info.get("total_commands_processed", 0)
                ),
                "keyspace_hits": hits,
                "keyspace_misses": misses,
                "hit_ratio": _hit_ratio(hits, misses),
                "evicted_keys": int(info.get("evicted_keys", 0)),
                "expired_keys": int(info.get("expired_keys", 0)),
            },
            "keyspace": keyspace,
        }

    @staticmethod
    def _bytecode_stats() -> dict[str, Any]:
        modules = list(sys.modules.values())
        cached = sum(1 for module in modules if getattr(module, "__cached__", None))
        return {
            "enabled": not sys.dont_write_bytecode,
            "pycache_prefix": sys.pycache_prefix,
            "optimization_level": sys.flags.optimize,
            "modules_loaded": len(modules),
            "cached_modules": cached,
        }

    def _performance(self) -> dict[str, Any]:
        results: dict[str, Any] = {}
        for name, backend in self._benchmark.items():
            results[name] = guard({"iterations": 0}, lambda b=backend: self._run(b))
        return results

    def _run(self, backend: CachePort) -> dict[str, Any]:
        timings = {"set": 0.0, "get": 0.0, "delete": 0.0}
        stop_at = time.perf_counter() + self._deadline
        completed = 0
        prefix = f"benchmark_{time.time_ns()}"
        for i in range(self._iterations):
            if time.perf_counter() > stop_at:
                break
            key = f"{prefix}_{i}"
            start = time.perf_counter()
            backend.put(key, self._payload, 60)
            after_set = time.perf_counter()
            backend.get(key)
            after_get = time.perf_counter()
            backend.forget(key)
            after_delete = time.perf_counter()
            timings["set"] += after_set - start
            timings["get"] += after_get - after_set
            timings["delete"] += after_delete - after_get
            completed += 1
        result: dict[str, Any] = {
            "iterations": completed,
            "payload_bytes": len(self._payload),
            "deadline_reached": completed < self._iterations,
        }
        for op, seconds in timings.items():
            ms = seconds * 1000
            result[f"{op}_time_ms"] = round(ms, 2)
            result[f"avg_{op}_ms"] = round(ms / completed, 4) if completed else 0.0
        return result
