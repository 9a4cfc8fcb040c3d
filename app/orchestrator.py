import logging
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, Tuple, TypeVar

from adapters.maps import MapCatalogAdapter, find_map, index_maps
from adapters.player_list import PlayerListAdapter, PlayerListParams
from adapters.server_list import ServerListAdapter
from domain.errors import CacheError, FetchError
from domain.models import (
    DisplayServerItem, MapData, PlayerDatabase, PlayerPage, player_from_dict, server_from_dict,
)
from infrastructure.persistence import CacheStorage, DEFAULT_MAX_AGE_MS

logger = logging.getLogger(__name__)

SERVERS_COLLECTION = "servers"
PLAYERS_COLLECTION = "players"
GENERIC_COLLECTION = "cache"
SERVERS_KEY = "server_list"
MAPS_KEY = "maps"

T = TypeVar("T")


@dataclass
class FeedResult(Generic[T]):
    """What a refresh produced and where it came from ("live" or "cache")."""
    data: T
    source: str = "live"
    error: Optional[FetchError] = field(default=None)

    @property
    def is_stale(self) -> bool:
        return self.source != "live"


def _store(cache: Optional[CacheStorage], collection: str, key: str, value: Any) -> None:
    if cache is None:
        return
    try:
        cache.set(collection, key, value)
    except CacheError as e:
        logger.warning("Could not cache %s/%s: %s", collection, key, e)


def refresh_servers(adapter: ServerListAdapter, cache: Optional[CacheStorage] = None,
                    timeout_ms: Optional[int] = None,
                    max_age_ms: int = DEFAULT_MAX_AGE_MS) -> FeedResult[List[DisplayServerItem]]:
    """Fetch the full server list, falling back to the offline cache.

    The live result is written to the cache on success. When the live fetch
    raises and the cache holds a fresh enough copy, that copy is returned with
    the error attached; otherwise the error propagates.
    """
    try:
        servers = adapter.list_all(timeout_ms=timeout_ms)
    except FetchError as e:
        cached = cache.get_with_age(SERVERS_COLLECTION, SERVERS_KEY, max_age_ms) if cache else None
        if cached is None:
            raise
        logger.warning("Live server list unavailable (%s); using %d cached servers", e, len(cached))
        return FeedResult([server_from_dict(d) for d in cached], source="cache", error=e)

    _store(cache, SERVERS_COLLECTION, SERVERS_KEY, servers)
    return FeedResult(servers)


def player_cache_key(params: PlayerListParams) -> str:
    return ":".join([
        PlayerDatabase(params.db).value,
        params.sort or "",
        params.search or "",
        str(params.start),
        str(params.size),
    ])


def load_players(adapter: PlayerListAdapter, params: Optional[PlayerListParams] = None,
                 cache: Optional[CacheStorage] = None,
                 max_age_ms: int = DEFAULT_MAX_AGE_MS) -> FeedResult[PlayerPage]:
    params = params or PlayerListParams()
    key = player_cache_key(params)
    try:
        page = adapter.list_with_pagination(params)
    except FetchError as e:
        cached = cache.get_with_age(PLAYERS_COLLECTION, key, max_age_ms) if cache else None
        if cached is None:
            raise
        logger.warning("Live player list unavailable (%s); using cached page %s", e, key)
        page = PlayerPage(
            players=[player_from_dict(p) for p in cached.get("players", [])],
            has_next=bool(cached.get("has_next")),
            has_previous=bool(cached.get("has_previous")),
        )
        return FeedResult(page, source="cache", error=e)

    _store(cache, PLAYERS_COLLECTION, key, page)
    return FeedResult(page)


def load_maps(adapter: MapCatalogAdapter, cache: Optional[CacheStorage] = None) -> List[MapData]:
    """Map catalog with the last good copy as fallback; an empty catalog is never cached."""
    maps = adapter.get_maps()
    if maps:
        _store(cache, GENERIC_COLLECTION, MAPS_KEY, maps)
        return maps
    cached = cache.get(GENERIC_COLLECTION, MAPS_KEY) if cache else None
    if not cached:
        return []
    return [MapData(**m) for m in cached]


def attach_maps(servers: List[DisplayServerItem],
                maps: List[MapData]) -> List[Tuple[DisplayServerItem, Optional[MapData]]]:
    catalog = index_maps(maps)
    return [(s, find_map(s, catalog)) for s in servers]
