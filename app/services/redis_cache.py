import logging
import redis
from typing import Optional, TypeVar, Type
from pydantic import BaseModel, ValidationError
from app.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class RedisCache:
    """Pydantic-aware wrapper around a Redis client."""

    def __init__(self, url: Optional[str] = None):
        self.client = redis.from_url(
            url or settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
        )

    def get(self, key: str, model: Type[T]) -> Optional[T]:
        """Get cached item and deserialize to Pydantic model; stale shapes count as a miss."""
        data = self.client.get(key)
        if not data:
            return None
        try:
            return model.model_validate_json(data)
        except ValidationError:
            logger.warning(f"⚠️  Discarding undecodable cache entry {key}")
            self.client.delete(key)
            return None

    def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        """Store the model as JSON, expiring after ttl_seconds."""
        self.client.setex(
            key,
            ttl_seconds,
            value.model_dump_json(),
        )

    def delete(self, key: str) -> None:
        """Drop one key."""
        self.client.delete(key)

    def delete_pattern(self, pattern: str) -> int:
        """Invalidate all keys matching pattern; returns the number removed."""
        removed = 0
        for key in self.client.scan_iter(match=pattern):
            removed += self.client.delete(key)
        return removed
