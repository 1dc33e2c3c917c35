"""Look-aside Redis cache for the notification read path.

The cache is never the source of truth: every backend failure is logged and
treated as a miss, and every notification write evicts the entries it could
have made stale.
"""

import hashlib
import json
from typing import Any, Optional

import redis

from school_portal.config import Settings
from school_portal.database import Notification, Page
from school_portal.logutils import get_logger
from school_portal.repositories.notifications import NotificationRepository

logger = get_logger(__name__)

NAMESPACE = "notification"
DEFAULT_TTL = 300

# Backend failures (connection, timeouts) and undecodable payloads.
CACHE_ERRORS = (redis.RedisError, ValueError, TypeError)


class NotificationCache:
    """Keys are ``notification:<prefix>:<identifier>``; values are JSON."""

    def __init__(self, client: "redis.Redis", ttl: int = DEFAULT_TTL):
        self._redis = client
        self.ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationCache":
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        return cls(client, ttl=settings.cache_ttl_seconds)

    @staticmethod
    def key(prefix: str, identifier: str) -> str:
        return f"{NAMESPACE}:{prefix}:{identifier}"

    def get(self, prefix: str, identifier: str) -> Optional[Any]:
        key = self.key(prefix, identifier)
        try:
            raw = self._redis.get(key)
            return json.loads(raw) if raw is not None else None
        except CACHE_ERRORS as exc:
            logger.warning("Cache get error", extra={"extra_data": {"key": key, "error": str(exc)}})
            return None

    def set(self, prefix: str, identifier: str, value: Any, ttl: Optional[int] = None) -> None:
        key = self.key(prefix, identifier)
        try:
            self._redis.setex(key, ttl or self.ttl, json.dumps(value))
        except CACHE_ERRORS as exc:
            logger.warning("Cache set error", extra={"extra_data": {"key": key, "error": str(exc)}})

    def invalidate(self, prefix: str, identifier: str) -> None:
        key = self.key(prefix, identifier)
        try:
            self._redis.delete(key)
        except CACHE_ERRORS as exc:
            logger.warning("Cache invalidation error", extra={"extra_data": {"key": key, "error": str(exc)}})

    def invalidate_pattern(self, prefix: str) -> int:
        """Evict every key under ``notification:<prefix>:``; returns the count."""
        pattern = f"{NAMESPACE}:{prefix}:*"
        try:
            keys = list(self._redis.scan_iter(match=pattern, count=100))
            if keys:
                self._redis.delete(*keys)
            return len(keys)
        except CACHE_ERRORS as exc:
            logger.warning(
                "Cache pattern invalidation error",
                extra={"extra_data": {"pattern": pattern, "error": str(exc)}},
            )
            return 0


def filter_signature(filters: Any) -> str:
    """Stable key for a filter payload, independent of key order."""
    payload = json.dumps(filters or {}, sort_keys=True, default=str)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


class CachedNotificationRepository:
    """Notification repository with cached ``get_by_id`` and ``get_all``.

    Example:
        notifications = CachedNotificationRepository(
            NotificationRepository(db), NotificationCache.from_settings(settings)
        )
        page = notifications.get_all({"priority": "high"})
    """

    def __init__(self, repository: NotificationRepository, cache: NotificationCache):
        self.repository = repository
        self.cache = cache

    def _evict(self, notification_id: Optional[str] = None) -> None:
        if notification_id:
            self.cache.invalidate("id", notification_id)
        self.cache.invalidate_pattern("list")

    def get_by_id(self, notification_id: str) -> Notification:
        cached = self.cache.get("id", notification_id)
        if cached is not None:
            try:
                return Notification.model_validate(cached)
            except ValueError:
                logger.warning("Discarding malformed cache entry", extra={"extra_data": {"id": notification_id}})

        notification = self.repository.get_by_id(notification_id)
        self.cache.set("id", notification_id, notification.model_dump(mode="json"))
        return notification

    def get_all(self, filters: Any = None) -> Page[Notification]:
        signature = filter_signature(filters)
        cached = self.cache.get("list", signature)
        if cached is not None:
            try:
                return Page[Notification].model_validate(cached)
            except ValueError:
                logger.warning("Discarding malformed cache entry", extra={"extra_data": {"list": signature}})

        page = self.repository.get_all(filters)
        self.cache.set("list", signature, page.model_dump(mode="json"))
        return page

    def create(self, data: Any) -> Notification:
        notification = self.repository.create(data)
        self._evict()
        return notification

    def update(self, notification_id: str, data: Any) -> Notification:
        notification = self.repository.update(notification_id, data)
        self._evict(notification_id)
        return notification

    def delete(self, notification_id: str) -> None:
        self.repository.delete(notification_id)
        self._evict(notification_id)

    def expire_overdue(self) -> int:
        count = self.repository.expire_overdue()
        if count:
            # Any cached entry may now show a stale status.
            self.cache.invalidate_pattern("id")
            self.cache.invalidate_pattern("list")
        return count
