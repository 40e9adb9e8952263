"""Newline-delimited JSON rendering of captured logs for /logs."""

import json
from collections.abc import AsyncIterable

from storepulse.core.models import LogEntry


def _line(entry: LogEntry) -> str:
    return json.dumps(
        {
            "timestamp": entry.timestamp,
            "level": entry.level,
            "message": entry.message,
            "attributes": entry.attributes,
        },
        default=str,
    )


async def encode_logs(entries: AsyncIterable[LogEntry]) -> str:
    """Render entries one JSON object per line.

    Every line, the last included, ends with a newline; no entries give an
    empty string.
    """
    return "".join([_line(entry) + "\n" async for entry in entries])
