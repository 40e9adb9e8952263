"""Host metrics: CPU, memory, disk, load, network and uptime."""

import os
import time
from pathlib import Path
from typing import Any

import psutil

from storepulse.adapters.collectors.base import guard


class SystemMetricsCollector:
    """Collects host level metrics with psutil.

    Args:
        disk_path: Mount point whose usage is reported.
    """

    def __init__(self, disk_path: Path | str = "/") -> None:
        self._disk_path = str(disk_path)

    def collect(self) -> dict[str, Any]:
        return {
            "cpu": guard(
                {"cores": 0, "load_average": {}, "usage_percent": 0.0}, self._cpu
            ),
            "memory": guard(
                {"total": 0, "used": 0, "free": 0, "usage_percent": 0.0}, self._memory
            ),
            "disk": guard(
                {"total": 0, "used": 0, "free": 0, "usage_percent": 0.0}, self._disk
            ),
            "load": guard({"average": {}, "processes": {}}, self._load),
            "network": guard({"interfaces": {}, "connections": {}}, self._network),
            "uptime": guard({"system_uptime": 0.0, "process_uptime": 0.0}, self._uptime),
        }

    @staticmethod
    def _load_average() -> dict[str, float]:
        one, five, fifteen = psutil.getloadavg()
        return {
            "1_min": round(one, 2),
            "5_min": round(five, 2),
            "15_min": round(fifteen, 2),
        }

    def _cpu(self) -> dict[str, Any]:
        cores = psutil.cpu_count() or 1
        load = self._load_average()
        return {
            "cores": cores,
            "load_average": load,
            "usage_percent": round(min(100.0, load["1_min"] / cores * 100), 2),
        }

    @staticmethod
    def _memory() -> dict[str, Any]:
        virtual = psutil.virtual_memory()
        swap = psutil.swap_memory()
        process = psutil.Process().memory_info()
        return {
            "total": virtual.total,
            "used": virtual.used,
            "free": virtual.available,
            "usage_percent": round(virtual.percent, 2),
            "swap": {"total": swap.total, "used": swap.used, "free": swap.free},
            "process": {
                "rss": process.rss,
                "vms": process.vms,
            },
        }

    def _disk(self) -> dict[str, Any]:
        usage = psutil.disk_usage(self._disk_path)
        data: dict[str, Any] = {
            "total": usage.total,
            "used": usage.used,
            "free": usage.free,
            "usage_percent": round(usage.percent, 2),
        }
        if hasattr(os, "statvfs"):
            stats = os.statvfs(self._disk_path)
            data["inodes_total"] = stats.f_files
            data["inodes_free"] = stats.f_ffree
            data["inodes_used"] = stats.f_files - stats.f_ffree
        return data

    def _load(self) -> dict[str, Any]:
        statuses = [
            proc.info.get("status") for proc in psutil.process_iter(["status"])
        ]
        return {
            "average": self._load_average(),
            "processes": {
                "running": sum(1 for s in statuses if s == psutil.STATUS_RUNNING),
                "total": len(statuses),
            },
        }

    @staticmethod
    def _network() -> dict[str, Any]:
        interfaces = {}
        for name, counters in psutil.net_io_counters(pernic=True).items():
            if name.startswith("lo"):
                continue
            interfaces[name] = {
                "rx_bytes": counters.bytes_recv,
                "tx_bytes": counters.bytes_sent,
                "total_bytes": counters.bytes_recv + counters.bytes_sent,
            }
        data: dict[str, Any] = {"interfaces": interfaces}
        try:
            connections = psutil.net_connections(kind="inet")
        except psutil.AccessDenied:
            data["connections"] = {}
        else:
            data["connections"] = {
                "total": len(connections),
                "established": sum(
                    1 for c in connections if c.status == psutil.CONN_ESTABLISHED
                ),
            }
        return data

    @staticmethod
    def _uptime() -> dict[str, Any]:
        now = time.time()
        return {
            "system_uptime": round(now - psutil.boot_time(), 2),
            "process_uptime": round(now - psutil.Process().create_time(), 2),
        }
