"""Prometheus registry and response cache metrics."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge

# Dedicated registry so tests and multiple apps in one process never collide
# with the global default registry.
REGISTRY = CollectorRegistry()

# ============================================================================
# Response Cache Metrics
# ============================================================================

cache_hits_total = Counter(
    "response_cache_hits_total",
    "Total number of response cache hits",
    ["resource_type", "freshness"],  # freshness: fresh, stale
    registry=REGISTRY,
)

cache_misses_total = Counter(
    "response_cache_misses_total",
    "Total number of response cache misses",
    ["resource_type"],
    registry=REGISTRY,
)

cache_not_modified_total = Counter(
    "response_cache_not_modified_total",
    "Total number of 304 Not Modified responses served from stored ETags",
    ["resource_type"],
    registry=REGISTRY,
)

cache_store_errors_total = Counter(
    "response_cache_store_errors_total",
    "Total shared store errors absorbed by the cache layer",
    ["operation"],  # operation: read, write, invalidate
    registry=REGISTRY,
)

cache_invalidations_total = Counter(
    "response_cache_invalidations_total",
    "Total cache invalidation calls",
    ["kind", "result"],  # kind: key, user, pattern; result: ok, error
    registry=REGISTRY,
)

# ============================================================================
# Detached Background Work
# ============================================================================

background_tasks_in_flight = Gauge(
    "background_tasks_in_flight",
    "Detached cache writes and refreshes currently running",
    registry=REGISTRY,
)

background_task_failures_total = Counter(
    "background_task_failures_total",
    "Detached tasks that raised an exception",
    ["task"],
    registry=REGISTRY,
)

# ============================================================================
# Application Metrics
# ============================================================================

application_info = Gauge(
    "application_info",
    "Application information",
    ["version", "service", "environment"],
    registry=REGISTRY,
)

cache_backend_info = Gauge(
    "cache_backend_info",
    "Shared cache backend in use (1 for the active backend)",
    ["backend"],  # redis, memory
    registry=REGISTRY,
)
