"""Sync run statistics per integration ("webflow", "freshbooks").

Stored in Redis for the stats endpoint. When Redis is unreachable the
recording is skipped and readers get empty values.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any, cast

import redis

from app.config import settings

logger = logging.getLogger(__name__)

INTEGRATIONS = ("webflow", "freshbooks")

_KEY_PREFIX = "wrs_sync"
_HISTORY_MAX_SIZE = 20
_DAILY_TTL_SECONDS = 7 * 24 * 60 * 60
_EMPTY_DAILY = {"synced": 0, "errors": 0, "sync_count": 0}

_redis_client: redis.Redis | None = None


def _get_redis() -> redis.Redis | None:
    global _redis_client
    if _redis_client is None:
        try:
            client = redis.from_url(settings.redis_url, decode_responses=True)
            client.ping()
        except redis.RedisError as exc:
            logger.debug("sync_stats_redis_unavailable error=%s", exc)
            return None
        _redis_client = client
    return _redis_client


def _stats_key(integration: str, day: datetime) -> str:
    return f"{_KEY_PREFIX}:{integration}:stats:{day.strftime('%Y-%m-%d')}"


def _last_sync_key(integration: str) -> str:
    return f"{_KEY_PREFIX}:{integration}:last_sync"


def _history_key(integration: str) -> str:
    return f"{_KEY_PREFIX}:{integration}:history"


def record_sync_result(integration: str, result: Any, mode: str = "full") -> None:
    """Record a sync result (anything with total_synced/errors/duration_seconds)."""
    client = _get_redis()
    if client is None:
        logger.debug("sync_stats_skipped integration=%s", integration)
        return

    now = datetime.now(UTC)
    errors = list(result.errors or [])
    entry = {
        "timestamp": now.isoformat(),
        "mode": mode,
        "total": result.total_synced,
        "errors": len(errors),
        "duration_seconds": result.duration_seconds,
        "success": not result.has_errors,
    }
    try:
        daily_key = _stats_key(integration, now)
        pipe = client.pipeline()
        pipe.hincrby(daily_key, "synced", result.total_synced)
        pipe.hincrby(daily_key, "errors", len(errors))
        pipe.hincrby(daily_key, "sync_count", 1)
        pipe.expire(daily_key, _DAILY_TTL_SECONDS)
        pipe.set(_last_sync_key(integration), json.dumps(entry))
        history_entry = dict(entry, error_details=errors[:5])
        pipe.lpush(_history_key(integration), json.dumps(history_entry, default=str))
        pipe.ltrim(_history_key(integration), 0, _HISTORY_MAX_SIZE - 1)
        pipe.execute()
        logger.debug("sync_stats_recorded integration=%s total=%s", integration, result.total_synced)
    except redis.RedisError as exc:
        logger.warning("sync_stats_record_failed integration=%s error=%s", integration, exc)


def get_daily_stats(integration: str, day: datetime | None = None) -> dict:
    client = _get_redis()
    if client is None:
        return dict(_EMPTY_DAILY)
    try:
        stats = cast(dict[str, str], client.hgetall(_stats_key(integration, day or datetime.now(UTC))))
    except redis.RedisError as exc:
        logger.warning("sync_stats_daily_failed integration=%s error=%s", integration, exc)
        return dict(_EMPTY_DAILY)
    return {name: int(stats.get(name, 0)) for name in _EMPTY_DAILY}


def get_last_sync(integration: str) -> dict | None:
    client = _get_redis()
    if client is None:
        return None
    try:
        data = cast(str | None, client.get(_last_sync_key(integration)))
    except redis.RedisError as exc:
        logger.warning("sync_stats_last_failed integration=%s error=%s", integration, exc)
        return None
    return json.loads(data) if data else None


def get_sync_history(integration: str, limit: int = 10) -> list[dict]:
    client = _get_redis()
    if client is None:
        return []
    try:
        entries = cast(list[str], client.lrange(_history_key(integration), 0, limit - 1))
    except redis.RedisError as exc:
        logger.warning("sync_stats_history_failed integration=%s error=%s", integration, exc)
        return []
    return [json.loads(entry) for entry in entries]
