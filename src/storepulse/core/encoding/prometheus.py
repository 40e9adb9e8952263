"""Text exposition encoder for collector bundles and custom metrics."""

import math
import re
from collections.abc import Iterable
from typing import Any

from storepulse.core.models import CustomMetric
from storepulse.core.paths import iter_leaves

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
DEFAULT_PREFIX = "storepulse_"

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_name(name: str) -> str:
    """Map a dotted metric name onto ``[a-zA-Z0-9_]``.

    Dots become underscores first, then every other character outside the
    allowed set does too.
    """
    return _INVALID_NAME_CHARS.sub("_", name.replace(".", "_"))


def escape_label_value(value: str) -> str:
    """Escape backslashes, double quotes and newlines in a label value."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def format_labels(tags: dict[str, str]) -> str:
    """Render tags as ``{k="v",...}``, sorted by key; empty tags render nothing."""
    if not tags:
        return ""
    pairs = [
        f'{sanitize_name(str(key))}="{escape_label_value(str(value))}"'
        for key, value in sorted(tags.items())
    ]
    return "{" + ",".join(pairs) + "}"


def is_numeric(value: Any) -> bool:
    """Return True for int and float values; booleans are not numeric here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def format_value(value: float | int) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(value)


def encode_bundle(
    metric_type: str, bundle: dict[str, Any], prefix: str = DEFAULT_PREFIX
) -> list[str]:
    """Flatten one collector bundle into exposition lines.

    Nested mappings are joined with underscores; lists, strings, booleans
    and None are skipped.

    Args:
        metric_type: Collector name, used as the second name segment.
        bundle: Bundle returned by the collector.
        prefix: Prefix prepended to every metric name.

    Returns:
        Lines of the form ``<prefix><type>_<path> <value>``.
    """
    lines = []
    for path, value in iter_leaves(bundle):
        if not is_numeric(value):
            continue
        name = sanitize_name(f"{prefix}{metric_type}_{path}")
        lines.append(f"{name} {format_value(value)}")
    return lines


def _histogram_values(samples: list[Any]) -> list[float]:
    values = []
    for sample in samples:
        value = sample.get("value") if isinstance(sample, dict) else sample
        if is_numeric(value):
            values.append(value)
    return values


def encode_custom(
    metrics: Iterable[CustomMetric], prefix: str = DEFAULT_PREFIX
) -> list[str]:
    """Render custom metrics with their tags as labels.

    Histogram sample lists render as ``_count`` and ``_sum`` lines; any other
    non-numeric value is skipped.
    """
    lines = []
    for metric in metrics:
        name = sanitize_name(f"{prefix}{metric.name}")
        labels = format_labels(metric.tags)
        if isinstance(metric.value, list):
            values = _histogram_values(metric.value)
            lines.append(f"{name}_count{labels} {len(values)}")
            lines.append(f"{name}_sum{labels} {format_value(sum(values))}")
            continue
        if not is_numeric(metric.value):
            continue
        lines.append(f"{name}{labels} {format_value(metric.value)}")
    return lines


def encode_snapshot(
    bundles: dict[str, dict[str, Any]],
    custom: Iterable[CustomMetric],
    prefix: str = DEFAULT_PREFIX,
) -> str:
    """Encode collector bundles followed by custom metrics.

    Returns:
        Exposition text with a trailing newline, or an empty string when
        nothing is numeric.
    """
    lines: list[str] = []
    for metric_type, bundle in bundles.items():
        if isinstance(bundle, dict):
            lines.extend(encode_bundle(metric_type, bundle, prefix))
    lines.extend(encode_custom(custom, prefix))
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
