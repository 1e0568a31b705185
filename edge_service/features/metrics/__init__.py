"""Prometheus metrics endpoint."""
