import logging
import time
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from config import DEFAULT_LIST_ALL_TIMEOUT_MS
from domain.errors import FetchError, ParseError
from domain.models import DisplayServerItem
from helpers.normalization import fix_player_list, is_flag_set, to_int, to_str_or_none
from infrastructure.transport import Transport

logger = logging.getLogger(__name__)

SERVER_LIST_PATH = "/api/server_list"


def _make_soup(raw_xml: str):
    """
    Build a BeautifulSoup object trying multiple XML-capable parsers, with graceful fallback.
    Returns a soup or None if all parsers fail.
    """
    for feature in ("lxml-xml", "xml", "html.parser"):
        try:
            return BeautifulSoup(raw_xml, feature)
        except Exception:
            continue
    return None


def _raw_from_element(server: Tag) -> Dict[str, Any]:
    """Flatten one <server> block into a wire-shaped dict.

    Each field keeps its first occurrence. <player> keeps its wire cardinality:
    absent, a bare scalar, or a list when repeated.
    """
    children = [c for c in server.children if isinstance(c, Tag)]
    if not children:
        raise ParseError("server block has no fields")
    raw: Dict[str, Any] = {}
    players: List[str] = []
    for child in children:
        name = str(child.name).lower()
        if ":" in name:
            name = name.split(":", 1)[1]
        text = child.get_text(strip=True)
        if name == "player":
            if text:
                players.append(text)
            continue
        raw.setdefault(name, text)
    if len(players) == 1:
        raw["player"] = players[0]
    elif players:
        raw["player"] = players
    return raw


def normalize_server(raw: Dict[str, Any]) -> DisplayServerItem:
    """Map one wire-shaped record onto the display schema. No dedup, no filtering."""
    address = to_str_or_none(raw.get("address")) or ""
    port = to_int(raw.get("port"))
    time_stamp = to_int(raw.get("timestamp"))
    return DisplayServerItem(
        id=f"{address}:{port}",
        name=to_str_or_none(raw.get("name")) or "",
        ip_address=address,
        port=port,
        map_id=to_str_or_none(raw.get("map_id")) or "",
        map_name=to_str_or_none(raw.get("map_name")),
        bots=to_int(raw.get("bots")),
        country=to_str_or_none(raw.get("country")) or "",
        current_players=to_int(raw.get("current_players")),
        time_stamp=time_stamp or None,
        version=to_int(raw.get("version")),
        dedicated=is_flag_set(raw.get("dedicated")),
        mod=raw.get("mod"),
        player_list=fix_player_list(raw.get("player")),
        comment=to_str_or_none(raw.get("comment")),
        url=to_str_or_none(raw.get("url")),
        max_players=to_int(raw.get("max_players")),
        mode=to_str_or_none(raw.get("mode")) or "",
        realm=raw.get("realm"),
    )


def parse_server_list_xml(raw_xml: str) -> List[DisplayServerItem]:
    """Parse one server_list payload into display records, in payload order.

    Handles both <result><server/>... and <result><server_list><server/>...
    A block that cannot be normalized is logged and skipped; the rest of the
    batch still parses.
    """
    if not raw_xml or not raw_xml.strip():
        return []
    soup = _make_soup(raw_xml)
    if soup is None:
        return []

    servers: List[DisplayServerItem] = []
    for idx, block in enumerate(soup.find_all("server")):
        try:
            servers.append(normalize_server(_raw_from_element(block)))
        except Exception as e:
            logger.warning("Skipping malformed server block #%d: %s", idx, e)
    return servers


class ServerListAdapter:
    BATCH_SIZE = 100
    MAX_BATCHES = 10

    def __init__(self, transport: Transport, list_all_timeout_ms: int = DEFAULT_LIST_ALL_TIMEOUT_MS):
        self.transport = transport
        self.list_all_timeout_ms = list_all_timeout_ms

    def list(self, start: int = 0, size: int = 20, names: int = 1,
             timeout_ms: Optional[int] = None) -> List[DisplayServerItem]:
        params = {
            "start": start,
            "size": size,
            "names": names,
            # cache-busting nonce
            "_t": int(time.time() * 1000),
        }
        try:
            text = self.transport.get_text(SERVER_LIST_PATH, params=params, timeout_ms=timeout_ms)
        except FetchError as e:
            logger.error("Error fetching server list: %s", e)
            raise
        return parse_server_list_xml(text)

    def list_all(self, timeout_ms: Optional[int] = None) -> List[DisplayServerItem]:
        """Page through the whole server list, best effort.

        Stops on a short batch, an empty batch, the first error, or after
        MAX_BATCHES requests. Partial results win over errors: the last error
        is raised only when nothing at all was collected.
        """
        request_timeout = timeout_ms or self.list_all_timeout_ms
        start = 0
        size = self.BATCH_SIZE
        total: List[DisplayServerItem] = []
        last_error: Optional[FetchError] = None
        batch_count = 0
        has_more = True

        while has_more and batch_count < self.MAX_BATCHES:
            batch_count += 1
            try:
                batch = self.list(start=start, size=size, names=1, timeout_ms=request_timeout)
            except FetchError as e:
                last_error = e
                logger.error("Error in batch %d: %s", batch_count, e)
                break

            if len(batch) == 0:
                has_more = False
                continue

            total.extend(batch)
            start += size
            if len(batch) < size:
                has_more = False

        if last_error is not None:
            if total:
                logger.warning("Returning %d servers despite error: %s", len(total), last_error)
            else:
                raise last_error
        return total
