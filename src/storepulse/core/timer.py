"""Scoped timer that records a timing metric once."""

import time
from collections.abc import Callable
from types import TracebackType


class TimerContext:
    """Measures elapsed wall time and records it as ``timings.<name>``.

    The first ``stop()`` records the duration in milliseconds and returns it;
    later calls return the same duration without recording again. Used as a
    context manager, leaving the block stops the timer if it is still
    running, so exactly one timing is recorded.

    Example:
        ```python
        with manager.start_timer("checkout.render", {"page": "cart"}):
            render_cart()
        ```
    """

    def __init__(
        self,
        record: Callable[[str, float, dict[str, str] | None], None],
        name: str,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Start timing immediately.

        Args:
            record: Callback invoked as ``record(name, duration_ms, tags)``.
            name: Timing name, without the ``timings.`` prefix.
            tags: Optional labels for the timing.
        """
        self._record = record
        self.name = name
        self.tags = dict(tags or {})
        self._start = time.perf_counter()
        self._duration_ms: float | None = None

    @property
    def stopped(self) -> bool:
        return self._duration_ms is not None

    def stop(self) -> float:
        """Stop the timer and return the elapsed milliseconds."""
        if self._duration_ms is None:
            self._duration_ms = (time.perf_counter() - self._start) * 1000
            self._record(self.name, self._duration_ms, self.tags)
        return self._duration_ms

    def __enter__(self) -> "TimerContext":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.stop()
