import pytest

from app.filters import (
    CASTLING_REGEX, HELLDIVERS_REGEX, QUICK_FILTERS, apply_quick_filters, calculate_stats,
    get_quick_filter, search_servers, sort_players, sort_servers,
)
from domain.models import DisplayPlayerItem, DisplayServerItem, PlayerDatabase, ServerStats


def make_server(name="srv", realm=None, mode="", current_players=0, port=1, players=None, **kw):
    return DisplayServerItem(
        id=f"10.0.0.1:{port}", name=name, ip_address="10.0.0.1", port=port, map_id=kw.pop("map_id", ""),
        map_name=None, bots=0, country=kw.pop("country", ""), current_players=current_players,
        time_stamp=None, version=0, dedicated=True, mod=None, player_list=players or [],
        mode=mode, realm=realm, **kw,
    )


@pytest.fixture
def servers():
    return [
        make_server("[Official] Invasion", realm="official_invasion", current_players=40, port=1),
        make_server("[Official] Pacific", realm="official_pacific", current_players=12, port=2),
        make_server("[Official] Dominance", realm="official_dominance", current_players=0, port=3),
        make_server("[Castling][EU-1 LV3] Sunday", mode="Castling", current_players=7, port=4),
        make_server("[地狱潜兵] night ops", mode="HD", current_players=3, port=5, players=["Zed"]),
        make_server("Community box", realm="community", current_players=5, port=6, country="FR"),
    ]


class TestQuickFilters:
    def test_known_ids(self):
        assert [f.id for f in QUICK_FILTERS] == ["invasion", "ww2_invasion", "dominance", "castling", "helldivers"]
        assert get_quick_filter("castling").label == "Castling"
        assert get_quick_filter("nope") is None

    def test_realm_filters(self, servers):
        assert [s.port for s in apply_quick_filters(servers, ["invasion"])] == [1]
        assert [s.port for s in apply_quick_filters(servers, ["ww2_invasion"])] == [2]
        assert [s.port for s in apply_quick_filters(servers, ["dominance"])] == [3]

    def test_filters_are_or_combined(self, servers):
        assert [s.port for s in apply_quick_filters(servers, ["invasion", "castling", "helldivers"])] == [1, 4, 5]

    def test_no_filters_keeps_everything(self, servers):
        assert apply_quick_filters(servers, []) == servers

    def test_unknown_filter_matches_nothing(self, servers):
        assert apply_quick_filters(servers, ["bogus"]) == []

    def test_castling_needs_mode_and_name(self):
        named_only = make_server("[Castling][EU-1 LV3] x", mode="Invasion")
        mode_only = make_server("Castling fun", mode="Castling")
        assert apply_quick_filters([named_only, mode_only], ["castling"]) == []


@pytest.mark.parametrize("name, expected", [
    ("[Castling][EU-1 LV3] Sunday", True),
    ("[Castling][Global][NA FOV] late", True),
    ("[Castling] missing tag", False),
    ("Castling[EU LV3]", False),
])
def test_castling_regex(name, expected):
    assert bool(CASTLING_REGEX.match(name)) is expected


def test_helldivers_regex():
    assert HELLDIVERS_REGEX.match("[地狱潜兵] 1")
    assert not HELLDIVERS_REGEX.match("x [地狱潜兵]")


class TestSearch:
    def test_case_insensitive_name(self, servers):
        assert [s.port for s in search_servers(servers, "OFFICIAL")] == [1, 2, 3]

    def test_matches_players_and_country(self, servers):
        assert [s.port for s in search_servers(servers, "zed")] == [5]
        assert [s.port for s in search_servers(servers, "fr")] == [6]

    def test_blank_query_keeps_all(self, servers):
        assert search_servers(servers, "  ") == servers


def test_calculate_stats(servers):
    assert calculate_stats(servers) == ServerStats(total_servers=6, total_players=67)
    assert calculate_stats([]) == ServerStats(0, 0)


class TestSortServers:
    def test_no_column_keeps_payload_order(self, servers):
        assert sort_servers(servers, None, "asc") == servers
        assert sort_servers(servers, "name", None) == servers

    def test_numeric_column(self, servers):
        ports = [s.port for s in sort_servers(servers, "current_players", "asc")]
        assert ports == [3, 5, 6, 4, 2, 1]
        ports = [s.port for s in sort_servers(servers, "player_count", "desc")]
        assert ports == [1, 2, 4, 6, 5, 3]

    def test_port_sorts_as_number(self):
        rows = [make_server(port=10000), make_server(port=9), make_server(port=100)]
        assert [s.port for s in sort_servers(rows, "port", "asc")] == [9, 100, 10000]

    def test_text_column_ignores_case(self):
        rows = [make_server("bravo", port=1), make_server("Alpha", port=2), make_server("charlie", port=3)]
        assert [s.name for s in sort_servers(rows, "name", "asc")] == ["Alpha", "bravo", "charlie"]
        assert [s.name for s in sort_servers(rows, "name", "desc")] == ["charlie", "bravo", "Alpha"]

    def test_missing_text_sorts_first(self, servers):
        ordered = sort_servers(servers, "realm", "asc")
        assert [s.port for s in ordered] == [4, 5, 6, 3, 1, 2]

    def test_ties_keep_payload_order(self):
        rows = [make_server(f"s{i}", port=i, current_players=5) for i in range(6)]
        assert sort_servers(rows, "current_players", "asc") == rows
        assert sort_servers(rows, "current_players", "desc") == rows

    def test_unknown_column_keeps_order(self, servers):
        assert sort_servers(servers, "nope", "asc") == servers

    def test_input_is_not_mutated(self, servers):
        before = list(servers)
        sort_servers(servers, "port", "desc")
        assert servers == before


def make_player(username, kills=None, rank_name=None):
    return DisplayPlayerItem(
        id=f"invasion:{username}", username=username, db=PlayerDatabase.INVASION, row_number=0,
        kills=kills, rank_name=rank_name,
    )


class TestSortPlayers:
    def test_missing_stat_counts_as_zero(self):
        rows = [make_player("a", kills=5), make_player("b"), make_player("c", kills=-1), make_player("d", kills=0)]
        assert [p.username for p in sort_players(rows, "kills", "asc")] == ["c", "b", "d", "a"]
        assert [p.username for p in sort_players(rows, "kills", "desc")] == ["a", "b", "d", "c"]

    def test_text_column(self):
        rows = [make_player("x", rank_name="major"), make_player("y", rank_name="Captain"), make_player("z")]
        assert [p.username for p in sort_players(rows, "rank_name", "asc")] == ["z", "y", "x"]

    def test_no_column(self):
        rows = [make_player("b"), make_player("a")]
        assert sort_players(rows, None, None) == rows
