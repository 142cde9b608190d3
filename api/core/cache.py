"""In-memory TTL caching utilities.

Journey content is owned by the content pipeline and can change on disk
while the service runs, so loaded journeys expire after
CONTENT_CACHE_TTL_SECONDS instead of living for the process lifetime.

Note: Cache is per-worker/replica, not shared across instances.
Visibility records are never cached here; they are memoized per request
only (see services.visibility_service.VisibilityCache).
"""

from typing import TYPE_CHECKING

from cachetools import TTLCache

from core.config import get_settings

if TYPE_CHECKING:
    from schemas import Journey

_JOURNEYS_KEY = "journeys"

_journeys_cache: "TTLCache[str, dict[str, Journey]] | None" = None


def _get_journeys_cache() -> "TTLCache[str, dict[str, Journey]]":
    global _journeys_cache
    if _journeys_cache is None:
        _journeys_cache = TTLCache(
            maxsize=1, ttl=get_settings().content_cache_ttl_seconds
        )
    return _journeys_cache


def get_cached_journeys() -> "dict[str, Journey] | None":
    return _get_journeys_cache().get(_JOURNEYS_KEY)


def set_cached_journeys(journeys: "dict[str, Journey]") -> None:
    _get_journeys_cache()[_JOURNEYS_KEY] = journeys


def clear_all_caches() -> None:
    """For testing. Also picks up a changed TTL setting on next use."""
    global _journeys_cache
    _journeys_cache = None

