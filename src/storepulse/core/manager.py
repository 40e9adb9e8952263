"""Monitoring manager: collection, custom metrics, alerting, health and export."""

import asyncio
import hashlib
import json
import logging
import threading
import time
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any

from storepulse.core.alerts import AlertDispatcher, build_alert, matches_rule
from storepulse.core.encoding.prometheus import DEFAULT_PREFIX, encode_snapshot
from storepulse.core.errors import CollectorError, InvalidAlertRuleError
from storepulse.core.health import overall_status
from storepulse.core.models import (
    Alert,
    AlertRule,
    CheckResult,
    CustomMetric,
    HealthStatus,
    MetricValue,
    Status,
)
from storepulse.core.paths import get_path, iter_leaves, set_path
from storepulse.core.ports import (
    CachePort,
    EventDispatcherPort,
    HealthProbe,
    MetricsCollector,
    RuleStoragePort,
)
from storepulse.core.timer import TimerContext

logger = logging.getLogger(__name__)

ALERTS_CACHE_KEY = "monitoring.alerts"
METRIC_RECORDED_EVENT = "monitoring.metric.recorded"
ALERT_TRIGGERED_EVENT = "monitoring.alert.triggered"
CUSTOM_BUCKET = "custom"


def custom_cache_key(name: str, tags: dict[str, str]) -> str:
    """Cache key under which a custom metric is mirrored."""
    digest = hashlib.md5(
        (name + json.dumps(tags, sort_keys=True)).encode(), usedforsecurity=False
    ).hexdigest()
    return f"metrics.custom.{digest}"


def _normalize_tags(tags: Mapping[str, Any] | None) -> dict[str, str]:
    return {str(k): str(v) for k, v in (tags or {}).items()}


def _tags_key(tags: dict[str, str]) -> str:
    return json.dumps(tags, sort_keys=True)


def _number(value: Any) -> float:
    """Numeric value of a stored counter; anything else counts as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


class MonitoringManager:
    """Coordinates collectors, custom metrics, alert rules and health probes.

    All mutable state is guarded by one re-entrant lock. The collector
    snapshot is replaced as a whole on every collection, so readers never see
    a partially merged snapshot. Custom metrics live in the ``custom`` bucket
    of the snapshot and survive collections.

    Alert rules are evaluated on every metric write, so the cost of a write
    grows linearly with the number of rules.
    """

    def __init__(
        self,
        collectors: Mapping[str, MetricsCollector] | None = None,
        cache: CachePort | None = None,
        events: EventDispatcherPort | None = None,
        alert_dispatcher: AlertDispatcher | None = None,
        health_probes: Mapping[str, HealthProbe] | None = None,
        rule_storage: RuleStoragePort | None = None,
        *,
        metrics_ttl: float = 300,
        custom_metric_ttl: float = 3600,
        alerts_ttl: float = 3600,
        histogram_size: int = 1000,
        max_workers: int = 4,
        collector_timeout: float = 10.0,
        probe_timeout: float = 2.0,
        prefix: str = DEFAULT_PREFIX,
    ) -> None:
        """Initialize the manager with its collaborators.

        Args:
            collectors: Collectors keyed by metric type (system, database, ...).
            cache: Cache used to mirror metrics and alert rules; optional.
            events: Event dispatcher notified of recorded metrics and alerts.
            alert_dispatcher: Delivers alerts to channels. Defaults to one
                with no channels, so every delivery is logged as failed.
            health_probes: Probes keyed by check name, run by check_health.
            rule_storage: Durable rule store consulted when neither memory
                nor cache holds rules.
            metrics_ttl: Cache lifetime of collector bundles in seconds.
            custom_metric_ttl: Cache lifetime of custom metrics in seconds.
            alerts_ttl: Cache lifetime of the alert rule list in seconds.
            histogram_size: Samples kept per histogram, oldest evicted first.
            max_workers: Collectors allowed to run at the same time.
            collector_timeout: Seconds a collector may run before it is
                reported as failed.
            probe_timeout: Seconds a health probe may run before its check
                is reported critical.
            prefix: Prefix of exported metric names.
        """
        self._collectors: dict[str, MetricsCollector] = dict(collectors or {})
        self._cache = cache
        self._events = events
        self._alert_dispatcher = alert_dispatcher or AlertDispatcher()
        self._probes: dict[str, HealthProbe] = dict(health_probes or {})
        self._rule_storage = rule_storage
        self._metrics_ttl = metrics_ttl
        self._custom_metric_ttl = custom_metric_ttl
        self._alerts_ttl = alerts_ttl
        self._histogram_size = histogram_size
        self._max_workers = max(1, max_workers)
        self._collector_timeout = collector_timeout
        self._probe_timeout = probe_timeout
        self._prefix = prefix

        self._lock = threading.RLock()
        self._metrics: dict[str, Any] = {CUSTOM_BUCKET: {}}
        self._custom: dict[tuple[str, str], CustomMetric] = {}
        self._histograms: dict[str | tuple[str, str], deque[dict[str, Any]]] = {}
        self._rules: list[AlertRule] | None = None
        self._triggered: deque[Alert] = deque(maxlen=100)

    @property
    def collectors(self) -> dict[str, MetricsCollector]:
        return dict(self._collectors)

    @property
    def triggered_alerts(self) -> list[Alert]:
        """Most recent alerts raised by this manager, oldest first."""
        with self._lock:
            return list(self._triggered)

    # --- Collection ---

    async def collect_metrics(self) -> dict[str, Any]:
        """Run every collector and replace the snapshot with their bundles.

        Collectors run in worker threads, at most ``max_workers`` at a time,
        each bounded by ``collector_timeout``. A collector that raises, times
        out or returns something other than a mapping is logged once and left
        out of the result.

        Returns:
            The new snapshot, including the ``custom`` bucket.
        """
        semaphore = asyncio.Semaphore(self._max_workers)

        async def run(
            name: str, collector: MetricsCollector
        ) -> tuple[str, dict[str, Any] | None]:
            async with semaphore:
                try:
                    bundle = await asyncio.wait_for(
                        asyncio.to_thread(collector.collect),
                        timeout=self._collector_timeout,
                    )
                    if not isinstance(bundle, dict):
                        raise CollectorError(
                            name, f"returned {type(bundle).__name__}, not a mapping"
                        )
                except asyncio.TimeoutError:
                    self._log_collector_failure(
                        name, f"timed out after {self._collector_timeout}s"
                    )
                    return name, None
                except Exception as exc:
                    self._log_collector_failure(name, str(exc) or type(exc).__name__)
                    return name, None
            return name, bundle

        results = await asyncio.gather(
            *(run(name, collector) for name, collector in self._collectors.items())
        )
        bundles = {name: bundle for name, bundle in results if bundle is not None}
        for name, bundle in bundles.items():
            self._cache_put(f"metrics.{name}", bundle, self._metrics_ttl)

        with self._lock:
            snapshot: dict[str, Any] = dict(bundles)
            snapshot[CUSTOM_BUCKET] = self._metrics[CUSTOM_BUCKET]
            self._metrics = snapshot
        self._evaluate_snapshot(bundles)
        return self.snapshot()

    def collect_metrics_sync(self) -> dict[str, Any]:
        """Blocking variant of collect_metrics for code without an event loop."""
        return asyncio.run(self.collect_metrics())

    def _log_collector_failure(self, name: str, error: str) -> None:
        logger.error(
            "Failed to collect %s metrics",
            name,
            extra={"collector": name, "error": error},
        )

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of the current snapshot."""
        with self._lock:
            return json.loads(json.dumps(self._metrics, default=str))

    def get_metric(self, key: str, default: Any = None) -> Any:
        """Look up a dotted key in the snapshot, e.g. ``system.cpu.cores``.

        Custom metrics are found under ``custom.<name>``.
        """
        with self._lock:
            return get_path(self._metrics, key, default)

    # --- Custom metrics ---

    def record_metric(
        self, name: str, value: MetricValue, tags: dict[str, str] | None = None
    ) -> CustomMetric:
        """Record a custom metric, evaluate alert rules and publish an event.

        The value is stored as given, so ``get_metric("custom." + name)``
        returns it unchanged. Writing a dotted name below an existing scalar
        replaces that scalar with a mapping.

        Args:
            name: Dotted metric name.
            value: Value to store.
            tags: Optional labels.

        Returns:
            The recorded metric.
        """
        with self._lock:
            metric = self._store(name, value, tags)
        self._after_record(metric)
        return metric

    def _store(
        self,
        name: str,
        value: MetricValue,
        tags: dict[str, str] | None,
        tree_value: Any = None,
    ) -> CustomMetric:
        """Register the (name, tags) series and update the ``custom`` tree.

        The tree is keyed by name only; tree_value, when given, is what it
        holds instead of the series value.
        """
        tags = _normalize_tags(tags)
        metric = CustomMetric(name=name, value=value, tags=tags, timestamp=time.time())
        set_path(
            self._metrics[CUSTOM_BUCKET],
            name,
            value if tree_value is None else tree_value,
        )
        self._custom[(name, _tags_key(tags))] = metric
        return metric

    def _after_record(self, metric: CustomMetric) -> None:
        self._cache_put(
            custom_cache_key(metric.name, metric.tags),
            metric.to_dict(),
            self._custom_metric_ttl,
        )
        for rule in self.get_alert_rules():
            if matches_rule(rule, metric.name, metric.value):
                self._trigger_alert(rule, metric.name, metric.value, metric.tags)
        self._dispatch(METRIC_RECORDED_EVENT, metric.to_dict())

    def increment(
        self, name: str, delta: float = 1, tags: dict[str, str] | None = None
    ) -> CustomMetric:
        """Add delta to ``counters.<name>``, starting from 0.

        Each tag set counts on its own; ``get_metric("custom.counters.<name>")``
        returns the total across all tag sets. The read and the write happen
        under the manager lock, so concurrent increments within one process
        are not lost. Separate processes do not share counters.
        """
        key = f"counters.{name}"
        with self._lock:
            series = self._custom.get((key, _tags_key(_normalize_tags(tags))))
            total = self.get_metric(f"{CUSTOM_BUCKET}.{key}", 0)
            metric = self._store(
                key,
                _number(series.value if series else 0) + delta,
                tags,
                tree_value=_number(total) + delta,
            )
        self._after_record(metric)
        return metric

    def gauge(
        self, name: str, value: float, tags: dict[str, str] | None = None
    ) -> CustomMetric:
        return self.record_metric(f"gauges.{name}", value, tags)

    def timing(
        self, name: str, duration_ms: float, tags: dict[str, str] | None = None
    ) -> CustomMetric:
        return self.record_metric(f"timings.{name}", duration_ms, tags)

    def histogram(
        self, name: str, value: float, tags: dict[str, str] | None = None
    ) -> CustomMetric:
        """Append a sample to ``histograms.<name>``.

        Only the most recent ``histogram_size`` samples are kept, both per
        tag set and per name. The recorded metric carries the samples of its
        tag set; ``get_metric("custom.histograms.<name>")`` returns the
        samples of every tag set, each ``{value, timestamp, tags}``.
        """
        normalized = _normalize_tags(tags)
        sample = {"value": value, "timestamp": time.time(), "tags": normalized}
        with self._lock:
            combined = self._sample_buffer(name)
            series = self._sample_buffer((name, _tags_key(normalized)))
            combined.append(sample)
            series.append(sample)
            metric = self._store(
                f"histograms.{name}", list(series), tags, tree_value=list(combined)
            )
        self._after_record(metric)
        return metric

    def _sample_buffer(self, key: str | tuple[str, str]) -> deque[dict[str, Any]]:
        buffer = self._histograms.get(key)
        if buffer is None:
            buffer = deque(maxlen=self._histogram_size)
            self._histograms[key] = buffer
        return buffer

    def start_timer(
        self, name: str, tags: dict[str, str] | None = None
    ) -> TimerContext:
        """Start a timer that records ``timings.<name>`` when stopped."""
        return TimerContext(self.timing, name, tags)

    # --- Alerting ---

    def setup_alerts(self, rules: Iterable[AlertRule | dict[str, Any]]) -> list[AlertRule]:
        """Replace the active alert rules.

        The rules are kept in memory, cached under ``monitoring.alerts`` and,
        when a rule store is configured, saved durably.

        Raises:
            InvalidAlertRuleError: If a rule definition is malformed. The
                active rules are left unchanged.
        """
        parsed = [
            rule if isinstance(rule, AlertRule) else AlertRule.from_dict(rule)
            for rule in rules
        ]
        with self._lock:
            self._rules = parsed
        self._cache_put(
            ALERTS_CACHE_KEY, [rule.to_dict() for rule in parsed], self._alerts_ttl
        )
        if self._rule_storage is not None:
            try:
                self._rule_storage.save(parsed)
            except Exception as exc:
                logger.error(
                    "Failed to persist alert rules", extra={"error": str(exc)}
                )
        return list(parsed)

    def get_alert_rules(self) -> list[AlertRule]:
        """Return the active rules from memory, the cache or the rule store."""
        with self._lock:
            if self._rules is not None:
                return list(self._rules)

        rules: list[AlertRule] = []
        cached = self._cache_get(ALERTS_CACHE_KEY)
        if isinstance(cached, list):
            rules = self._parse_rules(cached)
        elif self._rule_storage is not None:
            try:
                rules = self._rule_storage.load()
            except Exception as exc:
                logger.error("Failed to load alert rules", extra={"error": str(exc)})
                return []
            self._cache_put(
                ALERTS_CACHE_KEY, [rule.to_dict() for rule in rules], self._alerts_ttl
            )
        with self._lock:
            if self._rules is None:
                self._rules = rules
            return list(self._rules)

    def reload_alerts(self) -> list[AlertRule]:
        """Forget the in-memory rules and load them again."""
        with self._lock:
            self._rules = None
        return self.get_alert_rules()

    @staticmethod
    def _parse_rules(items: list[Any]) -> list[AlertRule]:
        rules = []
        for item in items:
            try:
                rules.append(AlertRule.from_dict(item))
            except InvalidAlertRuleError as exc:
                logger.warning("Skipping invalid alert rule", extra={"error": str(exc)})
        return rules

    def matches_rule(self, rule: AlertRule, name: str, value: Any) -> bool:
        return matches_rule(rule, name, value)

    def send_alert(self, alert: Alert, channels: Iterable[str] = ("log",)) -> list[str]:
        """Deliver an alert and publish the alert-triggered event.

        Returns:
            Names of the channels that delivered successfully.
        """
        delivered = self._alert_dispatcher.send(alert, tuple(channels))
        self._dispatch(ALERT_TRIGGERED_EVENT, alert.to_dict())
        return delivered

    def _trigger_alert(
        self, rule: AlertRule, name: str, value: Any, tags: dict[str, str]
    ) -> None:
        alert = build_alert(rule, name, value, tags)
        with self._lock:
            self._triggered.append(alert)
        self.send_alert(alert, rule.channels)

    def _evaluate_snapshot(self, bundles: dict[str, dict[str, Any]]) -> None:
        """Evaluate rules with a metric pattern against collected leaves.

        Rules without a pattern would match every leaf and are only evaluated
        on custom metric writes.
        """
        rules = [rule for rule in self.get_alert_rules() if rule.metric_pattern]
        if not rules:
            return
        for path, value in iter_leaves(bundles):
            for rule in rules:
                if matches_rule(rule, path, value):
                    self._trigger_alert(rule, path, value, {})

    # --- Health ---

    async def check_health(self) -> HealthStatus:
        """Run every health probe concurrently and aggregate the results.

        Each probe runs in a worker thread bounded by ``probe_timeout``. A
        probe that raises or times out yields a critical check carrying the
        error, and the remaining probes are unaffected.
        """

        async def run(name: str, probe: HealthProbe) -> tuple[str, CheckResult]:
            try:
                result = await asyncio.wait_for(
                    asyncio.to_thread(probe.check), timeout=self._probe_timeout
                )
            except asyncio.TimeoutError:
                error = f"timed out after {self._probe_timeout}s"
                logger.error(
                    "Health check %s failed", name, extra={"check": name, "error": error}
                )
                return name, CheckResult(
                    Status.CRITICAL, f"{name} check {error}", {"error": error}
                )
            except Exception as exc:
                logger.error(
                    "Health check %s failed",
                    name,
                    extra={"check": name, "error": str(exc)},
                )
                return name, CheckResult(
                    Status.CRITICAL, f"{name} check failed: {exc}", {"error": str(exc)}
                )
            return name, result

        results = await asyncio.gather(
            *(run(name, probe) for name, probe in self._probes.items())
        )
        checks = dict(results)
        return HealthStatus(
            overall=overall_status(checks.values()), checks=checks, timestamp=time.time()
        )

    def check_health_sync(self) -> HealthStatus:
        """Blocking variant of check_health for code without an event loop."""
        return asyncio.run(self.check_health())

    # --- Export ---

    def export_prometheus_metrics(self) -> str:
        """Render the snapshot and custom metrics as exposition text."""
        with self._lock:
            bundles = {
                name: bundle
                for name, bundle in self._metrics.items()
                if name != CUSTOM_BUCKET
            }
            custom = list(self._custom.values())
        return encode_snapshot(bundles, custom, self._prefix)

    # --- Collaborator helpers ---

    def _cache_put(self, key: str, value: Any, ttl: float) -> None:
        if self._cache is None:
            return
        try:
            self._cache.put(key, value, ttl)
        except Exception as exc:
            logger.warning(
                "Failed to write %s to cache", key, extra={"key": key, "error": str(exc)}
            )

    def _cache_get(self, key: str) -> Any:
        if self._cache is None:
            return None
        try:
            return self._cache.get(key)
        except Exception as exc:
            logger.warning(
                "Failed to read %s from cache", key, extra={"key": key, "error": str(exc)}
            )
            return None

    def _dispatch(self, event_name: str, payload: dict[str, Any]) -> None:
        if self._events is None:
            return
        try:
            self._events.dispatch(event_name, payload)
        except Exception as exc:
            logger.warning(
                "Failed to dispatch %s",
                event_name,
                extra={"event": event_name, "error": str(exc)},
            )
