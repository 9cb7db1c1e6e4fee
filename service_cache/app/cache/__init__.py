"""
Cache package for the Cache Service.

Provides the shared Redis connection handle, a cache-manager style store for
plain key/value access, the ``RedisService`` façade and pub/sub
subscription handles.
"""

from .connection import RedisConnection, translate_store_errors
from .facade import RedisService
from .pubsub import Subscription
from .store import CacheStore

__all__ = [
    "CacheStore",
    "RedisConnection",
    "RedisService",
    "Subscription",
    "translate_store_errors",
]
