"""Query parameter parsing for the HTTP adapter."""

from urllib.parse import parse_qs

VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _parse_query_params(query_string: bytes) -> dict[str, list[str]]:
    """Parse a raw query string into a parameter dictionary.

    Invalid UTF-8 is replaced rather than rejected.
    """
    return parse_qs(query_string.decode(errors="replace"))


def _parse_since_param(params: dict[str, list[str]]) -> float:
    """Parse and validate the 'since' query parameter.

    Returns:
        Timestamp as float, defaulting to 0.0 if invalid or missing.
        Negative, NaN and infinite values also yield 0.0.
    """
    try:
        value = float(params.get("since", ["0"])[0])
    except ValueError:
        return 0.0
    if value < 0 or value != value or value in (float("inf"), float("-inf")):
        return 0.0
    return value


def _parse_level_param(params: dict[str, list[str]]) -> str | None:
    """Parse and validate the 'level' query parameter.

    Returns:
        Validated level string (uppercase) or None if invalid/missing.
    """
    level_list = params.get("level", [None])
    level_raw = level_list[0] if level_list else None
    if level_raw and level_raw.upper() in VALID_LEVELS:
        return level_raw.upper()
    return None
