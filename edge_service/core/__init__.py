"""Core configuration and shared exception types."""
