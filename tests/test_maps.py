from adapters.maps import MAPS_PATH, MapCatalogAdapter, find_map, index_maps
from domain.errors import NetworkError, TransportError
from domain.models import MapData
from tests.fakes import FakeTransport
from tests.test_filters import make_server

CATALOG = [
    {"name": "Omaha", "path": "levels/ww2/omaha", "image": "omaha.png"},
    {"name": "Iwo Jima", "path": "levels/pacific/iwo", "image": "iwo.png"},
]


class TestMapCatalogAdapter:
    def test_get_maps(self):
        transport = FakeTransport(json_responses=[CATALOG])
        maps = MapCatalogAdapter(transport).get_maps(timeout_ms=4000)
        assert maps == [
            MapData("Omaha", "levels/ww2/omaha", "omaha.png"),
            MapData("Iwo Jima", "levels/pacific/iwo", "iwo.png"),
        ]
        assert transport.calls[0]["path"] == MAPS_PATH
        assert transport.calls[0]["timeout_ms"] == 4000

    def test_errors_yield_empty_catalog(self):
        for err in (NetworkError("offline"), TransportError(500), ValueError("bad json")):
            assert MapCatalogAdapter(FakeTransport(json_responses=[err])).get_maps() == []

    def test_unexpected_shapes_are_skipped(self):
        payload = [{"name": "no path"}, "junk", {"path": "a/b"}]
        maps = MapCatalogAdapter(FakeTransport(json_responses=[payload])).get_maps()
        assert maps == [MapData("", "a/b", "")]
        assert MapCatalogAdapter(FakeTransport(json_responses=[{"maps": []}])).get_maps() == []


class TestFindMap:
    def setup_method(self):
        self.catalog = index_maps(MapData(**m) for m in CATALOG)

    def test_exact_path(self):
        assert find_map(make_server(map_id="levels/ww2/omaha"), self.catalog).name == "Omaha"

    def test_leaf_name_ignores_case(self):
        assert find_map(make_server(map_id="mods/x/OMAHA"), self.catalog).name == "Omaha"

    def test_catalog_name_matches_leaf(self):
        catalog = index_maps([MapData("desert", "levels/d1")])
        assert find_map(make_server(map_id="custom/Desert"), catalog).path == "levels/d1"

    def test_no_match(self):
        assert find_map(make_server(map_id="levels/unknown"), self.catalog) is None
        assert find_map(make_server(map_id=""), self.catalog) is None
