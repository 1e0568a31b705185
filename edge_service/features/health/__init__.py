"""Health and resilience status endpoints."""
