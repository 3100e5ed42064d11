# services/cache.py
"""
Redis-backed JSON cache for public listings

Redis being unavailable never breaks a request: reads miss and writes are
dropped, with a warning in the log.
"""

import json
import logging
from typing import Any, Optional

import redis
from flask import current_app
from werkzeug.local import LocalProxy

logger = logging.getLogger(__name__)


class CacheService:

    def __init__(self, app=None, client: redis.Redis = None):
        self.client = client
        self.enabled = client is not None
        self.prefix = 'sap:'
        if app is not None:
            self.init_app(app, client)

    def init_app(self, app, client: redis.Redis = None):
        self.enabled = app.config.get('CACHE_ENABLED', True)
        if client is not None:
            self.client = client
        elif self.enabled:
            self.client = redis.Redis.from_url(
                app.config['REDIS_URL'],
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=True,
                health_check_interval=30
            )
        app.extensions['cache'] = self

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[Any]:
        if not self.enabled or self.client is None:
            return None
        try:
            raw = self.client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        return json.loads(raw) if raw else None

    def set(self, key: str, value: Any, ttl: int) -> None:
        if not self.enabled or self.client is None:
            return
        try:
            self.client.setex(self._key(key), ttl, json.dumps(value))
        except redis.RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def invalidate(self, pattern: str) -> int:
        """Delete every key matching pattern (glob syntax)"""
        if not self.enabled or self.client is None:
            return 0
        removed = 0
        try:
            for key in self.client.scan_iter(match=self._key(pattern)):
                removed += self.client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Cache invalidation failed for {pattern}: {e}")
        return removed

    def ping(self) -> bool:
        if not self.enabled or self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


def _current_cache() -> CacheService:
    return current_app.extensions['cache']


cache = LocalProxy(_current_cache)
