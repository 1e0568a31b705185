"""Infrastructure: shared store, rate limiting, resilience, metrics and logging."""
