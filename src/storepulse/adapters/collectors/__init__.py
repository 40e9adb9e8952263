"""Metrics collectors implementing the MetricsCollector port."""

from storepulse.adapters.collectors.application import ApplicationMetricsCollector
from storepulse.adapters.collectors.business import BusinessMetricsCollector
from storepulse.adapters.collectors.cache import CacheMetricsCollector
from storepulse.adapters.collectors.database import DatabaseMetricsCollector
from storepulse.adapters.collectors.http import HttpMetricsCollector
from storepulse.adapters.collectors.system import SystemMetricsCollector

__all__ = [
    "ApplicationMetricsCollector",
    "BusinessMetricsCollector",
    "CacheMetricsCollector",
    "DatabaseMetricsCollector",
    "HttpMetricsCollector",
    "SystemMetricsCollector",
]
