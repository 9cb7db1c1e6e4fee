"""
Cache Service package for the Cache Access Layer.

This package exposes a thin façade over a Redis store. It provides:

- app.main: API surface for the diagnostic routes, health and metrics.
- app.cache: Shared connection handle, cache store, façade and pub/sub.

Guidelines:
- Forward calls unmodified; the store owns expiry, typing and ordering.
- No retries or reconnects; failures surface on the calling operation.
"""
