import pytest

from adapters.maps import MapCatalogAdapter
from adapters.player_list import PlayerListAdapter, PlayerListParams
from adapters.server_list import ServerListAdapter
from app.orchestrator import (
    MAPS_KEY, SERVERS_COLLECTION, SERVERS_KEY, attach_maps, load_maps, load_players,
    player_cache_key, refresh_servers,
)
from domain.errors import CacheError, NetworkError, RequestTimeoutError
from domain.models import DisplayServerItem, MapData, PlayerDatabase
from tests.fakes import FakeTransport, batch_payload, server_block, server_payload
from tests.test_player_list import page, player_row


class TestRefreshServers:
    def test_live_result_is_cached(self, cache):
        result = refresh_servers(ServerListAdapter(FakeTransport([batch_payload(5)])), cache)
        assert result.source == "live"
        assert not result.is_stale
        assert len(result.data) == 5
        cached = cache.get(SERVERS_COLLECTION, SERVERS_KEY)
        assert [c["name"] for c in cached] == [s.name for s in result.data]

    def test_falls_back_to_cache(self, cache, clock):
        refresh_servers(ServerListAdapter(FakeTransport([batch_payload(3)])), cache)
        clock.advance(1000)
        result = refresh_servers(ServerListAdapter(FakeTransport([NetworkError("offline")])), cache)
        assert result.source == "cache"
        assert result.is_stale
        assert isinstance(result.error, NetworkError)
        assert all(isinstance(s, DisplayServerItem) for s in result.data)
        assert [s.name for s in result.data] == ["srv-0", "srv-1", "srv-2"]

    def test_raises_when_cache_too_old(self, cache, clock):
        refresh_servers(ServerListAdapter(FakeTransport([batch_payload(3)])), cache)
        clock.advance(10_000)
        with pytest.raises(RequestTimeoutError):
            refresh_servers(ServerListAdapter(FakeTransport([RequestTimeoutError(20000)])), cache,
                            max_age_ms=5000)

    def test_raises_without_cache(self):
        with pytest.raises(NetworkError):
            refresh_servers(ServerListAdapter(FakeTransport([NetworkError("offline")])))

    def test_cache_write_failure_does_not_escape(self, cache, monkeypatch):
        def broken_set(*args, **kwargs):
            raise CacheError("read-only")

        monkeypatch.setattr(cache, "set", broken_set)
        result = refresh_servers(ServerListAdapter(FakeTransport([batch_payload(2)])), cache)
        assert len(result.data) == 2

    def test_partial_batches_are_live(self, cache):
        transport = FakeTransport([batch_payload(100), NetworkError("reset")])
        result = refresh_servers(ServerListAdapter(transport), cache)
        assert result.source == "live"
        assert len(result.data) == 100


class TestLoadPlayers:
    def test_live_then_cached(self, cache):
        params = PlayerListParams(db=PlayerDatabase.PACIFIC, start=0, size=1)
        live = load_players(PlayerListAdapter(FakeTransport([page([player_row(1, "ace")])])), params, cache)
        assert live.source == "live"
        assert live.data.has_next is True

        fallback = load_players(PlayerListAdapter(FakeTransport([NetworkError("offline")])), params, cache)
        assert fallback.source == "cache"
        assert fallback.data.players[0].username == "ace"
        assert fallback.data.players[0].db is PlayerDatabase.PACIFIC
        assert fallback.data.has_next is True
        assert fallback.data.has_previous is False

    def test_other_window_is_a_miss(self, cache):
        load_players(PlayerListAdapter(FakeTransport([page([player_row(1, "ace")])])),
                     PlayerListParams(start=0), cache)
        with pytest.raises(NetworkError):
            load_players(PlayerListAdapter(FakeTransport([NetworkError("offline")])),
                         PlayerListParams(start=20), cache)

    def test_cache_key(self):
        key = player_cache_key(PlayerListParams(search="bob", db=PlayerDatabase.INVASION, sort="kills",
                                                start=20, size=10))
        assert key == "invasion:kills:bob:20:10"


class TestMaps:
    def test_load_maps_caches_and_falls_back(self, cache):
        catalog = [{"name": "Omaha", "path": "levels/ww2/omaha", "image": "omaha.png"}]
        maps = load_maps(MapCatalogAdapter(FakeTransport(json_responses=[catalog])), cache)
        assert maps == [MapData("Omaha", "levels/ww2/omaha", "omaha.png")]
        assert cache.get("cache", MAPS_KEY) == catalog

        fallback = load_maps(MapCatalogAdapter(FakeTransport(json_responses=[NetworkError("offline")])), cache)
        assert fallback == maps

    def test_load_maps_without_anything(self):
        assert load_maps(MapCatalogAdapter(FakeTransport(json_responses=[NetworkError("offline")]))) == []

    def test_attach_maps(self):
        payload = server_payload([
            server_block(name="a", map_id="levels/ww2/omaha"),
            server_block(name="b", map_id="custom/omaha"),
            server_block(name="c", map_id="unknown/map"),
        ])
        servers = ServerListAdapter(FakeTransport([payload])).list()
        pairs = attach_maps(servers, [MapData("Omaha", "levels/ww2/omaha", "omaha.png")])
        assert [m.name if m else None for _, m in pairs] == ["Omaha", "Omaha", None]
