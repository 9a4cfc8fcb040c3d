import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

from adapters.player_list import NUMERIC_COLUMNS
from domain.models import DisplayPlayerItem, DisplayServerItem, ServerStats

CASTLING_REGEX = re.compile(r"^\[Castling](\[Global])?\[[\w!\\?]+(-\d)?\s(LV\d|FOV)]")
HELLDIVERS_REGEX = re.compile(r"^\[地狱潜兵]")


@dataclass(frozen=True)
class QuickFilter:
    id: str
    label: str
    predicate: Callable[[DisplayServerItem], bool]


def _realm_is(value: str) -> Callable[[DisplayServerItem], bool]:
    return lambda s: s.realm == value


QUICK_FILTERS: List[QuickFilter] = [
    QuickFilter("invasion", "Invasion", _realm_is("official_invasion")),
    QuickFilter("ww2_invasion", "WW2 Invasion", _realm_is("official_pacific")),
    QuickFilter("dominance", "Dominance", _realm_is("official_dominance")),
    QuickFilter(
        "castling", "Castling",
        lambda s: "castling" in s.mode.lower() and bool(CASTLING_REGEX.match(s.name)),
    ),
    QuickFilter(
        "helldivers", "HellDivers",
        lambda s: "hd" in s.mode.lower() and bool(HELLDIVERS_REGEX.match(s.name)),
    ),
]


def get_quick_filter(filter_id: str) -> Optional[QuickFilter]:
    for f in QUICK_FILTERS:
        if f.id == filter_id:
            return f
    return None


def apply_quick_filters(servers: Iterable[DisplayServerItem], filter_ids: Sequence[str]) -> List[DisplayServerItem]:
    """Keep servers matching ANY of the given filters. Unknown ids match nothing; no ids keeps all."""
    servers = list(servers)
    if not filter_ids:
        return servers
    active = [f for f in (get_quick_filter(i) for i in filter_ids) if f is not None]
    return [s for s in servers if any(f.predicate(s) for f in active)]


def search_servers(servers: Iterable[DisplayServerItem], query: str) -> List[DisplayServerItem]:
    """Case-insensitive substring search over the fields a user would type."""
    servers = list(servers)
    q = (query or "").strip().lower()
    if not q:
        return servers

    def matches(s: DisplayServerItem) -> bool:
        return (
            q in s.name.lower()
            or q in s.ip_address.lower()
            or q in str(s.port)
            or q in s.country.lower()
            or q in s.mode.lower()
            or q in s.map_id.lower()
            or (s.comment is not None and q in s.comment.lower())
            or any(q in p.lower() for p in s.player_list)
        )

    return [s for s in servers if matches(s)]


def calculate_stats(servers: Iterable[DisplayServerItem]) -> ServerStats:
    servers = list(servers)
    return ServerStats(
        total_servers=len(servers),
        total_players=sum(s.current_players for s in servers),
    )


SERVER_SORT_ALIASES = {"player_count": "current_players"}
SERVER_NUMERIC_SORT_COLUMNS = ("bots", "current_players", "max_players", "port")
SERVER_SORT_COLUMNS = tuple(DisplayServerItem.__dataclass_fields__) + tuple(SERVER_SORT_ALIASES)
PLAYER_NUMERIC_SORT_COLUMNS = ("row_number",) + tuple(NUMERIC_COLUMNS.values())


def _as_text(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value).lower()


def sort_servers(servers: Iterable[DisplayServerItem], column: Optional[str],
                 direction: Optional[str] = "asc") -> List[DisplayServerItem]:
    """Client-side column sort. No column or direction keeps the payload order.

    Counts and port compare as numbers, everything else as lowercased text.
    The sort is stable, so ties keep their payload order in either direction.
    """
    servers = list(servers)
    if not column or not direction:
        return servers
    column = SERVER_SORT_ALIASES.get(column, column)
    known = column in DisplayServerItem.__dataclass_fields__

    if column in SERVER_NUMERIC_SORT_COLUMNS:
        def key(s: DisplayServerItem):
            return getattr(s, column)
    else:
        def key(s: DisplayServerItem):
            return _as_text((getattr(s, column) if known else None) or "")

    return sorted(servers, key=key, reverse=direction == "desc")


def sort_players(players: Iterable[DisplayPlayerItem], column: Optional[str],
                 direction: Optional[str] = "asc") -> List[DisplayPlayerItem]:
    """Same contract as sort_servers; a missing stat sorts as 0."""
    players = list(players)
    if not column or not direction:
        return players
    known = column in DisplayPlayerItem.__dataclass_fields__

    def value(p: DisplayPlayerItem):
        if not known:
            return ""
        v = getattr(p, column)
        return 0 if v is None else v

    if column in PLAYER_NUMERIC_SORT_COLUMNS:
        key = value
    else:
        def key(p: DisplayPlayerItem):
            return _as_text(value(p))

    return sorted(players, key=key, reverse=direction == "desc")
