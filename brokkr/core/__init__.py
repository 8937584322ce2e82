"""Core infrastructure: errors, retries and lifecycle events."""
