"""Request-resilience and response-caching layer for the dating API."""

from __future__ import annotations

__version__ = "1.0.0"
