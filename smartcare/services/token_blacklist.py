"""
Token Blacklist Service
Invalidated session tokens, so logout takes effect before the JWT expires.

Uses Redis when REDIS_URL is set (shared across API workers); otherwise keeps
entries in process memory, which only suits single-instance deployments.
"""

import hashlib
import os
import time
import logging
from threading import Lock
from typing import Dict, Optional

import redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "smartcare:blacklist:"


class TokenBlacklist:
    """Revoked-token store keyed by JWT ID (or a hash of the token)."""

    def __init__(self, redis_url: Optional[str] = None):
        self._redis_client: Optional[redis.Redis] = None
        self._memory_expiry: Dict[str, float] = {}
        self._lock = Lock()

        if redis_url:
            try:
                client = redis.from_url(redis_url, decode_responses=True)
                client.ping()
                self._redis_client = client
                logger.info("Token blacklist using Redis")
            except redis.RedisError as e:
                logger.warning(f"Failed to connect to Redis: {e}. Using in-memory blacklist.")
        else:
            logger.info("Token blacklist using in-memory storage")

    @staticmethod
    def _key(token: str, token_jti: Optional[str]) -> str:
        if token_jti:
            return token_jti
        return hashlib.sha256(token.encode()).hexdigest()[:32]

    def add(self, token: str, token_jti: Optional[str] = None, expires_in_seconds: int = 3600) -> None:
        key = self._key(token, token_jti)
        if self._redis_client:
            self._redis_client.setex(f"{KEY_PREFIX}{key}", expires_in_seconds, "1")
            return

        with self._lock:
            self._memory_expiry[key] = time.time() + expires_in_seconds
            self._cleanup_expired()

    def is_blacklisted(self, token: str, token_jti: Optional[str] = None) -> bool:
        key = self._key(token, token_jti)
        if self._redis_client:
            try:
                return self._redis_client.exists(f"{KEY_PREFIX}{key}") > 0
            except redis.RedisError as e:
                logger.error(f"Failed to check blacklist: {e}")
                return False

        with self._lock:
            expiry = self._memory_expiry.get(key)
            return expiry is not None and expiry > time.time()

    def _cleanup_expired(self) -> None:
        now = time.time()
        expired = [key for key, expiry in self._memory_expiry.items() if expiry <= now]
        for key in expired:
            del self._memory_expiry[key]

    def clear(self) -> None:
        """Drop every entry (tests)"""
        if self._redis_client:
            keys = self._redis_client.keys(f"{KEY_PREFIX}*")
            if keys:
                self._redis_client.delete(*keys)
            return
        with self._lock:
            self._memory_expiry.clear()


# Global instance
token_blacklist = TokenBlacklist(os.getenv("REDIS_URL"))


def blacklist_token(token: str, token_jti: Optional[str] = None, expires_in_seconds: int = 3600) -> None:
    token_blacklist.add(token, token_jti, expires_in_seconds)


def is_token_blacklisted(token: str, token_jti: Optional[str] = None) -> bool:
    return token_blacklist.is_blacklisted(token, token_jti)
