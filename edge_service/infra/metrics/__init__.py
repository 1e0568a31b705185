"""Prometheus metrics for the resilience and caching layer."""

from __future__ import annotations

from edge_service.infra.metrics.prometheus import REGISTRY

__all__ = ["REGISTRY"]
