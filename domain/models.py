from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class PlayerDatabase(str, Enum):
    INVASION = "invasion"
    PACIFIC = "pacific"
    PRERESET_INVASION = "prereset_invasion"


PLAYER_SORT_FIELDS = (
    "rank_progression",
    "username",
    "kills",
    "deaths",
    "kd",
    "score",
    "time_played",
    "teamkills",
    "longest_kill_streak",
    "targets_destroyed",
    "vehicles_destroyed",
    "soldiers_healed",
    "distance_moved",
    "shots_fired",
    "throwables_thrown",
)


@dataclass
class DisplayServerItem:
    id: str
    name: str
    ip_address: str
    port: int
    map_id: str
    map_name: Optional[str]
    bots: int
    country: str
    current_players: int
    time_stamp: Optional[int]
    version: int
    dedicated: bool
    # upstream schema unconfirmed; kept as received
    mod: Any
    player_list: List[str] = field(default_factory=list)
    comment: Optional[str] = None
    url: Optional[str] = None
    max_players: int = 0
    mode: str = ""
    realm: Any = None

    def occupancy(self) -> float:
        """currentPlayers / maxPlayers clamped to [0, 1]; over-capacity is not an error."""
        if self.max_players <= 0:
            return 0.0
        return max(0.0, min(1.0, self.current_players / self.max_players))


@dataclass
class DisplayPlayerItem:
    id: str
    username: str
    db: PlayerDatabase
    row_number: int
    kills: Optional[float] = None
    deaths: Optional[float] = None
    kd: Optional[float] = None
    score: Optional[float] = None
    time_played: Optional[str] = None
    teamkills: Optional[float] = None
    longest_kill_streak: Optional[float] = None
    targets_destroyed: Optional[float] = None
    vehicles_destroyed: Optional[float] = None
    soldiers_healed: Optional[float] = None
    distance_moved: Optional[str] = None
    shots_fired: Optional[float] = None
    throwables_thrown: Optional[float] = None
    rank_progression: Optional[float] = None
    rank_name: Optional[str] = None
    rank_icon: Optional[str] = None


@dataclass
class PlayerPage:
    players: List[DisplayPlayerItem]
    has_next: bool
    has_previous: bool


@dataclass(frozen=True)
class MapData:
    name: str
    path: str
    image: str = ""


@dataclass(frozen=True)
class ServerStats:
    total_servers: int
    total_players: int


def server_from_dict(data: dict) -> DisplayServerItem:
    """Rebuild a server record from its cached (JSON) form."""
    return DisplayServerItem(**{k: data[k] for k in DisplayServerItem.__dataclass_fields__ if k in data})


def player_from_dict(data: dict) -> DisplayPlayerItem:
    kwargs = {k: data[k] for k in DisplayPlayerItem.__dataclass_fields__ if k in data}
    kwargs["db"] = PlayerDatabase(kwargs.get("db", PlayerDatabase.INVASION.value))
    return DisplayPlayerItem(**kwargs)
