"""Helpers shared by the collectors."""

import ipaddress
import re
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from storepulse.core.models import RequestContext

_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "client-ip")


def guard(section: dict[str, Any], probe: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    """Merge probe() into section, or record its failure as ``error``.

    The section keeps its defaults when the probe raises, so the bundle
    stays JSON-compatible.
    """
    try:
        section.update(probe())
    except Exception as exc:
        section["error"] = str(exc) or type(exc).__name__
    return section


def _is_public_ip(value: str) -> bool:
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    return not (
        address.is_private
        or address.is_reserved
        or address.is_loopback
        or address.is_link_local
        or address.is_multicast
        or address.is_unspecified
    )


def resolve_client_ip(request: RequestContext) -> str:
    """Resolve the client address from proxy headers.

    Tries X-Forwarded-For (first entry), X-Real-IP and Client-IP in that
    order and returns the first public address. Falls back to the socket
    peer address unvalidated, or ``"unknown"``.
    """
    for header in _IP_HEADERS:
        value = request.header(header)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if _is_public_ip(candidate):
            return candidate
    return request.remote_addr or "unknown"


def directory_stats(path: Path | None, pattern: str = "*") -> dict[str, Any]:
    """Count files matching pattern directly under path and sum their sizes."""
    if path is None or not path.is_dir():
        return {"file_count": 0, "total_size": 0}
    files = [f for f in path.glob(pattern) if f.is_file()]
    return {
        "file_count": len(files),
        "total_size": sum(f.stat().st_size for f in files),
    }


def recent_log_lines(
    path: Path | None,
    timestamp_pattern: re.Pattern[str],
    timestamp_format: str,
    window: float = 86400,
    limit: int | None = None,
    now: float | None = None,
) -> list[tuple[float, str]]:
    """Return ``(timestamp, line)`` pairs newer than window seconds.

    Lines whose timestamp does not parse are ignored. Results are newest
    first and truncated to limit when given.
    """
    if path is None or not path.is_file():
        return []
    cutoff = (now if now is not None else time.time()) - window
    matches = []
    with path.open(encoding="utf-8", errors="replace") as handle:
        for line in handle:
            found = timestamp_pattern.search(line)
            if not found:
                continue
            try:
                stamp = datetime.strptime(found.group(1), timestamp_format).timestamp()
            except ValueError:
                continue
            if stamp >= cutoff:
                matches.append((stamp, line.rstrip("\n")))
    matches.sort(key=lambda item: item[0], reverse=True)
    return matches[:limit] if limit is not None else matches


# Timestamp prefix written by logging.Formatter's default asctime.
LOG_TIMESTAMP = re.compile(r"(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})")
LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
