"""Counter store adapters for rate limiting.

This package provides a small abstraction layer so the limiter can run on a
shared Redis server in production and on an in-memory store in development
and tests without changing the service or API layer.
"""
