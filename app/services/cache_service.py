"""
Cache Service: cluster previews.

Provides a thin cache wrapper with:
  - Cluster-preview cache (CLUSTER_CACHE_TTL, default 5 min) keyed by
    project, audience profile and a hash of the flagged-story set
  - Manual invalidation helpers

Uses Redis in production (via REDIS_URL), falls back to
a simple in-memory dict for development/testing.
"""

import hashlib
import json
import logging
import os
import time

import redis

logger = logging.getLogger(__name__)

# ── In-memory fallback ───────────────────────────────────────────────────

_memory_store: dict = {}  # key → (value_json, expire_ts)


class _MemoryBackend:
    """Simple dict cache for dev/testing."""

    def get(self, key):
        entry = _memory_store.get(key)
        if entry is None:
            return None
        val, expires = entry
        if expires and time.time() > expires:
            _memory_store.pop(key, None)
            return None
        return val

    def setex(self, key, ttl_seconds, value):
        _memory_store[key] = (value, time.time() + ttl_seconds)

    def delete(self, *keys):
        for k in keys:
            _memory_store.pop(k, None)

    def keys(self, pattern):
        """Simple glob matching for 'prefix*' patterns."""
        if pattern.endswith("*"):
            prefix = pattern[:-1]
            return [k for k in _memory_store if k.startswith(prefix)]
        return [k for k in _memory_store if k == pattern]

    def flushdb(self):
        _memory_store.clear()

    def ping(self):
        return True


# ── Singleton cache backend ──────────────────────────────────────────────

_backend = None


def _get_backend():
    """Lazy-initialise Redis or fall back to in-memory."""
    global _backend
    if _backend is not None:
        return _backend

    redis_url = os.getenv("REDIS_URL")
    if redis_url and not redis_url.startswith("memory://"):
        try:
            _backend = redis.from_url(redis_url, decode_responses=True)
            _backend.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
        except redis.RedisError as exc:
            logger.warning("Redis unavailable (%s), falling back to memory cache", exc)
            _backend = _MemoryBackend()
    else:
        _backend = _MemoryBackend()
    return _backend


def reset_backend():
    """Drop the cached backend handle so the next call re-reads REDIS_URL."""
    global _backend
    _backend = None


# ── Default TTLs ─────────────────────────────────────────────────────────

CLUSTER_TTL = 300      # 5 minutes
DEFAULT_TTL = 300


# ── Key builders ─────────────────────────────────────────────────────────


def stories_hash(stories) -> str:
    """Stable digest of a story set: ids and publish times, order-independent."""
    data = "|".join(sorted(f"{s['id']}:{s.get('published_at')}" for s in stories))
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:16]


def _cluster_key(project_id, audience_profile_id, digest):
    return f"clusters:{project_id}:{audience_profile_id}:{digest}"


# ── Public API ───────────────────────────────────────────────────────────


def get_cached_clusters(project_id, audience_profile_id, digest):
    """Return cached normalised clusters, or None on miss."""
    raw = _get_backend().get(_cluster_key(project_id, audience_profile_id, digest))
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None


def set_cached_clusters(project_id, audience_profile_id, digest, clusters, ttl=CLUSTER_TTL):
    _get_backend().setex(
        _cluster_key(project_id, audience_profile_id, digest),
        ttl,
        json.dumps(clusters),
    )


def invalidate_project_clusters(project_id):
    """Remove every cached preview for a project (e.g. after new stories are flagged)."""
    be = _get_backend()
    keys = be.keys(f"clusters:{project_id}:*")
    if keys:
        be.delete(*keys)


def clear_all():
    """Flush entire cache (use sparingly, mainly for testing)."""
    _get_backend().flushdb()


def health_check():
    """Return cache backend status."""
    try:
        be = _get_backend()
        be.ping()
        backend_type = "redis" if not isinstance(be, _MemoryBackend) else "memory"
        return {"status": "ok", "backend": backend_type}
    except redis.RedisError as exc:
        return {"status": "error", "detail": str(exc)}
