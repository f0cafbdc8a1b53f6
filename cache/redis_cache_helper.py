import re
import unicodedata

import redis.asyncio as redis
from redis.exceptions import RedisError
import json
import hashlib
from typing import Dict, Any, Optional
from datetime import datetime
from config.logging_config import logger
from config.settings import REDIS_HOST, REDIS_PORT, REDIS_CACHE_TTL_DAYS, REDIS_SOCKET_TIMEOUT_SECONDS
from search.models import SearchDirective


class DirectiveCache:
    """
    Redis-based cache of parsed search directives.

    The same question asked with the same viewer context gets the same
    directive, so repeated searches skip the language model entirely.
    Every failure is logged and reported as a miss; the cache is never
    allowed to break a search.
    """

    CACHE_PREFIX = "career:directive:"

    def __init__(self, host: str = REDIS_HOST, port: int = REDIS_PORT, db: int = 0,
                 ttl_days: int = REDIS_CACHE_TTL_DAYS, password: Optional[str] = None,
                 redis_client: Optional[redis.Redis] = None):
        """
        Args:
            host: Redis host address
            port: Redis port
            db: Redis database number
            ttl_days: Time-to-live for cache entries in days
            password: Redis password (if required)
            redis_client: Pre-built client (tests inject a fake here)
        """
        self.redis_client = redis_client or redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
        )
        self.ttl_seconds = ttl_days * 24 * 3600
        logger.info(f"✅ Directive cache configured at {host}:{port}")

    @staticmethod
    def _normalize(text: str) -> str:
        normalized = unicodedata.normalize('NFC', text or "")
        normalized = normalized.lower().strip()
        return re.sub(r'\s+', ' ', normalized)

    def _generate_cache_key(self, query: str, context: str = "", model_name: str = "") -> str:
        """
        SHA256 key over the normalized query, the viewer context and the model.
        """
        cache_input = f"{self._normalize(model_name)}:{self._normalize(query)}:{self._normalize(context)}"
        cache_hash = hashlib.sha256(cache_input.encode('utf-8')).hexdigest()
        return f"{self.CACHE_PREFIX}{cache_hash}"

    async def get_directive(self, query: str, context: str = "", model_name: str = "") -> Optional[SearchDirective]:
        cache_key = self._generate_cache_key(query, context, model_name)
        try:
            cached_data = await self.redis_client.get(cache_key)
        except RedisError as e:
            logger.warning(f"⚠️ Directive cache read failed: {e}")
            return None

        if not cached_data:
            logger.info(f"🔍 Cache MISS for query: '{query[:50]}'")
            return None

        try:
            cached_entry = json.loads(cached_data)
            directive = SearchDirective.model_validate(cached_entry["directive"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning(f"⚠️ Invalid cache data for key: {cache_key}")
            try:
                await self.redis_client.delete(cache_key)
            except RedisError as e:
                logger.warning(f"⚠️ Could not delete invalid cache entry: {e}")
            return None

        logger.info(f"✅ Cache HIT for query: '{query[:50]}'")
        return directive

    async def cache_directive(self, query: str, directive: SearchDirective,
                              context: str = "", model_name: str = "") -> None:
        if directive.from_fallback:
            return

        cache_key = self._generate_cache_key(query, context, model_name)
        cache_entry = {
            'directive': directive.model_dump(by_alias=True),
            'cached_at': datetime.now().timestamp(),
        }
        try:
            await self.redis_client.setex(cache_key, int(self.ttl_seconds), json.dumps(cache_entry))
            logger.info(f"💾 Cached directive for: '{query[:50]}'")
        except RedisError as e:
            logger.warning(f"⚠️ Failed to cache directive: {e}")

    async def clear_all_cache(self) -> Optional[int]:
        """
        Clear all cached directives.

        Returns:
            Number of keys deleted, or None if redis is unreachable
        """
        deleted_count = 0
        try:
            async for key in self.redis_client.scan_iter(match=f"{self.CACHE_PREFIX}*", count=100):
                await self.redis_client.delete(key)
                deleted_count += 1
        except RedisError as e:
            logger.error(f"❌ Failed to clear directive cache after {deleted_count} entries: {e}")
            return None

        logger.info(f"🗑️ Cleared directive cache: {deleted_count} entries deleted")
        return deleted_count

    async def get_cache_stats(self) -> Optional[Dict[str, Any]]:
        try:
            keys = [key async for key in self.redis_client.scan_iter(match=f"{self.CACHE_PREFIX}*", count=100)]
            memory = await self.redis_client.info('memory')
        except RedisError as e:
            logger.error(f"❌ Failed to read directive cache stats: {e}")
            return None
        return {
            'total_cached_directives': len(keys),
            'used_memory_human': memory.get('used_memory_human'),
        }

    async def health_check(self) -> bool:
        try:
            await self.redis_client.ping()
            return True
        except RedisError:
            logger.error("❌ Redis connection failed")
            return False

    async def aclose(self):
        await self.redis_client.aclose()
