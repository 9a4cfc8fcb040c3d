import logging
from typing import Dict, Iterable, List, Optional

from domain.errors import FetchError
from domain.models import DisplayServerItem, MapData
from helpers.normalization import map_leaf_name
from infrastructure.transport import Transport

logger = logging.getLogger(__name__)

MAPS_PATH = "/api/maps"


class MapCatalogAdapter:
    def __init__(self, transport: Transport):
        self.transport = transport

    def get_maps(self, timeout_ms: Optional[int] = None) -> List[MapData]:
        """Fetch the static map catalog. Never raises: failures yield an empty catalog."""
        try:
            payload = self.transport.get_json(MAPS_PATH, timeout_ms=timeout_ms)
        except (FetchError, ValueError) as e:
            logger.error("Failed to fetch maps: %s", e)
            return []
        if not isinstance(payload, list):
            logger.warning("Unexpected maps payload type: %s", type(payload).__name__)
            return []
        maps: List[MapData] = []
        for item in payload:
            if not isinstance(item, dict) or not item.get("path"):
                continue
            maps.append(MapData(
                name=str(item.get("name") or ""),
                path=str(item["path"]),
                image=str(item.get("image") or ""),
            ))
        return maps


def index_maps(maps: Iterable[MapData]) -> Dict[str, MapData]:
    """Key the catalog by its full path; later duplicates win."""
    return {m.path: m for m in maps}


def find_map(server: DisplayServerItem, catalog: Dict[str, MapData]) -> Optional[MapData]:
    """Join a server against the catalog: full path first, then leaf name."""
    if not server.map_id:
        return None
    hit = catalog.get(server.map_id)
    if hit is not None:
        return hit
    leaf = map_leaf_name(server.map_id).lower()
    if not leaf:
        return None
    for m in catalog.values():
        if map_leaf_name(m.path).lower() == leaf or m.name.lower() == leaf:
            return m
    return None
