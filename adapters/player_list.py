import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from domain.errors import FetchError, ParseError
from domain.models import DisplayPlayerItem, PlayerDatabase, PlayerPage
from helpers.normalization import to_int, to_number_or_none, to_str_or_none
from infrastructure.transport import Transport

logger = logging.getLogger(__name__)

PLAYER_LIST_PATH = "/api/player_list"

# Column order of the leaderboard table, first cell first.
NUMERIC_COLUMNS = {
    2: "kills",
    3: "deaths",
    4: "score",
    5: "kd",
    7: "longest_kill_streak",
    8: "targets_destroyed",
    9: "vehicles_destroyed",
    10: "soldiers_healed",
    11: "teamkills",
    13: "shots_fired",
    14: "throwables_thrown",
    15: "rank_progression",
}
TEXT_COLUMNS = {
    6: "time_played",
    12: "distance_moved",
    16: "rank_name",
}
RANK_ICON_COLUMN = 17


@dataclass
class PlayerListParams:
    search: Optional[str] = None
    db: PlayerDatabase = PlayerDatabase.INVASION
    sort: str = "rank_progression"
    start: int = 0
    size: int = 20
    timeout_ms: Optional[int] = None

    def query(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self.search:
            params["search"] = self.search
        params["db"] = PlayerDatabase(self.db).value
        if self.sort:
            params["sort"] = self.sort
        params["start"] = self.start
        params["size"] = self.size
        return params


def make_player_id(username: str, db: PlayerDatabase) -> str:
    return f"{PlayerDatabase(db).value}:{username}"


def _find_table(soup):
    for table in soup.find_all("table"):
        if table.find("tr"):
            return table
    return None


def _cell_text(cell) -> str:
    if cell is None:
        return ""
    return cell.get_text(strip=True)


def _cell_img_src(cell) -> Optional[str]:
    if cell is None:
        return None
    img = cell.find("img")
    if img is None:
        return None
    return to_str_or_none(img.get("src"))


def _parse_row(cells, db: PlayerDatabase) -> DisplayPlayerItem:
    if len(cells) < 2:
        raise ParseError(f"player row has {len(cells)} cells")
    username = _cell_text(cells[1])
    if not username:
        raise ParseError("player row without username")

    def cell(i):
        return cells[i] if i < len(cells) else None

    fields: Dict[str, Any] = {}
    for idx, name in NUMERIC_COLUMNS.items():
        fields[name] = to_number_or_none(_cell_text(cell(idx)))
    for idx, name in TEXT_COLUMNS.items():
        fields[name] = to_str_or_none(_cell_text(cell(idx)))
    fields["rank_icon"] = _cell_img_src(cell(RANK_ICON_COLUMN))

    return DisplayPlayerItem(
        id=make_player_id(username, db),
        username=username,
        db=PlayerDatabase(db),
        row_number=to_int(_cell_text(cells[0])),
        **fields,
    )


def _make_soup(html: str):
    if not html or not html.strip():
        return None
    return BeautifulSoup(html, "html.parser")


def _rows_from_soup(soup, db: PlayerDatabase) -> List[DisplayPlayerItem]:
    if soup is None:
        return []
    table = _find_table(soup)
    if table is None:
        logger.warning("No table found in player list response")
        return []

    players: List[DisplayPlayerItem] = []
    for idx, tr in enumerate(table.find_all("tr")):
        if tr.find("th"):
            continue
        cells = tr.find_all("td", recursive=False)
        try:
            players.append(_parse_row(cells, db))
        except ParseError as e:
            logger.warning("Skipping player row #%d: %s", idx, e)
    return players


def _links_from_soup(soup) -> Tuple[bool, bool]:
    if soup is None:
        return False, False
    has_next = has_previous = False
    for a in soup.find_all("a"):
        label = a.get_text(strip=True).upper()
        if label == "NEXT":
            has_next = True
        elif label == "PREVIOUS":
            has_previous = True
    return has_next, has_previous


def parse_player_list_html(html: str, db: PlayerDatabase) -> List[DisplayPlayerItem]:
    """Parse the leaderboard table. Header rows are skipped, bad rows are logged and skipped."""
    return _rows_from_soup(_make_soup(html), db)


def find_pagination_links(html: str) -> Tuple[bool, bool]:
    """(has_next, has_previous) from explicit Next/Previous anchors in the markup."""
    return _links_from_soup(_make_soup(html))


def parse_player_list_with_pagination(html: str, db: PlayerDatabase, start: int, size: int) -> PlayerPage:
    """A full window means there may be more; any offset past zero means there is a page before."""
    soup = _make_soup(html)
    players = _rows_from_soup(soup, db)
    link_next, link_previous = _links_from_soup(soup)
    return PlayerPage(
        players=players,
        has_next=(size > 0 and len(players) >= size) or link_next,
        has_previous=start > 0 or link_previous,
    )


def format_stat(value: Any, placeholder: str = "-") -> str:
    """Presentation only: None renders as the placeholder, 0 stays 0."""
    if value is None:
        return placeholder
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class PlayerListAdapter:
    def __init__(self, transport: Transport):
        self.transport = transport

    def _fetch(self, params: PlayerListParams) -> str:
        query = params.query()
        query["_t"] = int(time.time() * 1000)
        try:
            return self.transport.get_text(PLAYER_LIST_PATH, params=query, timeout_ms=params.timeout_ms)
        except FetchError as e:
            logger.error("Error fetching player list: %s", e)
            raise

    def list(self, params: Optional[PlayerListParams] = None) -> List[DisplayPlayerItem]:
        params = params or PlayerListParams()
        return parse_player_list_html(self._fetch(params), params.db)

    def list_with_pagination(self, params: Optional[PlayerListParams] = None) -> PlayerPage:
        params = params or PlayerListParams()
        html = self._fetch(params)
        return parse_player_list_with_pagination(html, params.db, params.start, params.size)
