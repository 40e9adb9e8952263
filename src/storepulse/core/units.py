"""Byte size parsing and formatting."""

_SUFFIXES = {"k": 1024, "m": 1024**2, "g": 1024**3, "t": 1024**4}
_UNITS = ["B", "KB", "MB", "GB", "TB"]


def parse_bytes(value: str | int | float | None) -> int | None:
    """Parse a size such as ``512M``, ``2g`` or ``1048576`` into bytes.

    Args:
        value: Size string with an optional k/m/g/t suffix (case-insensitive),
            or a number of bytes.

    Returns:
        Number of bytes, or None for ``-1``, empty and unparsable input,
        meaning no limit.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return None if value < 0 else int(value)
    text = value.strip().lower()
    if not text or text == "-1":
        return None
    multiplier = 1
    if text[-1] in _SUFFIXES:
        multiplier = _SUFFIXES[text[-1]]
        text = text[:-1]
    elif text.endswith("b") and len(text) > 1 and text[-2] in _SUFFIXES:
        multiplier = _SUFFIXES[text[-2]]
        text = text[:-2]
    try:
        number = float(text)
    except ValueError:
        return None
    if number < 0:
        return None
    return int(number * multiplier)


def format_bytes(size: float, precision: int = 2) -> str:
    """Format a byte count using binary units, e.g. ``1.5 KB``."""
    size = max(float(size), 0.0)
    unit = 0
    while size >= 1024 and unit < len(_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{round(size, precision)} {_UNITS[unit]}"
