import argparse
import dataclasses
import logging
import os
import sys
from typing import List

import pandas as pd
from dotenv import load_dotenv

# Load .env variables before other imports that might depend on them
load_dotenv()

from config import load_default_params
from adapters.maps import MapCatalogAdapter
from adapters.player_list import PlayerListAdapter, PlayerListParams, format_stat
from adapters.server_list import ServerListAdapter
from app.filters import (
    QUICK_FILTERS, SERVER_SORT_COLUMNS, apply_quick_filters, calculate_stats,
    search_servers, sort_players, sort_servers,
)
from app.orchestrator import attach_maps, load_maps, load_players, refresh_servers
from domain.errors import CacheError, FetchError
from domain.models import PLAYER_SORT_FIELDS, PlayerDatabase
from helpers.normalization import map_leaf_name
from infrastructure.persistence import COLLECTIONS, CacheStorage
from infrastructure.transport import HttpTransport

SERVER_COLUMNS = ["name", "ip_address", "port", "map", "mode", "players", "country", "realm"]
PLAYER_COLUMNS = [
    "row_number", "username", "kills", "deaths", "kd", "score", "time_played",
    "rank_progression", "rank_name",
]


def servers_frame(rows) -> pd.DataFrame:
    """Tabular view of (server, map) pairs; occupancy clamped, raw counts kept."""
    records = []
    for server, map_data in rows:
        records.append({
            "name": server.name,
            "ip_address": server.ip_address,
            "port": server.port,
            "map": map_data.name if map_data is not None else map_leaf_name(server.map_id),
            "mode": server.mode,
            "players": f"{server.current_players}/{server.max_players}",
            "occupancy": round(server.occupancy(), 2),
            "country": server.country,
            "realm": server.realm or "",
            "bots": server.bots,
            "dedicated": server.dedicated,
        })
    return pd.DataFrame(records, columns=SERVER_COLUMNS + ["occupancy", "bots", "dedicated"])


def players_frame(players, placeholder: str = "-") -> pd.DataFrame:
    records = []
    for p in players:
        row = dataclasses.asdict(p)
        records.append({k: format_stat(row.get(k), placeholder) if k != "username" else row[k] for k in PLAYER_COLUMNS})
    return pd.DataFrame(records, columns=PLAYER_COLUMNS)


def _write_csv(df: pd.DataFrame, out_csv: str) -> None:
    out_dir = os.path.dirname(out_csv)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    df.to_csv(out_csv, index=False)
    print(f"Saved {len(df)} row(s) to {out_csv}")


def _build(settings):
    transport = HttpTransport(
        base_url=settings["base_url"],
        timeout_ms=settings["request_timeout_ms"],
        user_agent=settings["user_agent"],
    )
    cache = CacheStorage(settings["cache_database_url"])
    return transport, cache


def cmd_servers(args, settings) -> int:
    transport, cache = _build(settings)
    try:
        adapter = ServerListAdapter(transport, list_all_timeout_ms=settings["list_all_timeout_ms"])
        try:
            result = refresh_servers(
                adapter, cache,
                timeout_ms=args.timeout_ms,
                max_age_ms=args.max_age_ms or settings["cache_max_age_ms"],
            )
        except FetchError as e:
            print(f"Server list unavailable and no cached copy: {e}")
            return 1

        if result.is_stale:
            print(f"[Warn] Showing cached server list ({result.error})")

        servers = search_servers(result.data, args.search or "")
        servers = apply_quick_filters(servers, args.filter or settings["quick_filters"])
        servers = sort_servers(servers, args.sort_by, "desc" if args.desc else "asc")
        total = calculate_stats(result.data)
        shown = calculate_stats(servers)
        print(f"Servers: {shown.total_servers}/{total.total_servers}  Players: {shown.total_players}/{total.total_players}")

        maps = load_maps(MapCatalogAdapter(transport), cache)
        df = servers_frame(attach_maps(servers, maps))
        if not df.empty:
            print(df[SERVER_COLUMNS].to_string(index=False))
        if args.out_csv:
            _write_csv(df, args.out_csv)
        return 0
    finally:
        cache.close()
        transport.close()


def cmd_players(args, settings) -> int:
    transport, cache = _build(settings)
    try:
        params = PlayerListParams(
            search=args.search,
            db=PlayerDatabase(args.db or settings["player_db"]),
            sort=args.sort or settings["player_sort"],
            start=args.start,
            size=args.size or settings["player_page_size"],
            timeout_ms=args.timeout_ms,
        )
        try:
            result = load_players(PlayerListAdapter(transport), params, cache,
                                  max_age_ms=settings["cache_max_age_ms"])
        except FetchError as e:
            print(f"Player list unavailable and no cached copy: {e}")
            return 1

        if result.is_stale:
            print(f"[Warn] Showing cached player list ({result.error})")
        page = result.data
        players = sort_players(page.players, args.sort_by, "desc" if args.desc else "asc")
        df = players_frame(players)
        if not df.empty:
            print(df.to_string(index=False))
        nav = []
        if page.has_previous:
            nav.append("previous")
        if page.has_next:
            nav.append("next")
        print(f"Pages available: {', '.join(nav) if nav else 'none'}")
        if args.out_csv:
            _write_csv(df, args.out_csv)
        return 0
    finally:
        cache.close()
        transport.close()


def cmd_maps(args, settings) -> int:
    transport, cache = _build(settings)
    try:
        maps = load_maps(MapCatalogAdapter(transport), cache)
        if not maps:
            print("No maps available.")
            return 1
        df = pd.DataFrame([dataclasses.asdict(m) for m in maps], columns=["name", "path", "image"])
        print(df.to_string(index=False))
        return 0
    finally:
        cache.close()
        transport.close()


def cmd_cache_clear(args, settings) -> int:
    cache = CacheStorage(settings["cache_database_url"])
    targets: List[str] = [args.collection] if args.collection else list(COLLECTIONS)
    try:
        for name in targets:
            cache.clear(name)
            print(f"Cleared cache collection: {name}")
    except CacheError as e:
        print(f"[Warn] {e}")
        return 1
    finally:
        cache.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="robinstats", description="Game server and player stats CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    sv = subparsers.add_parser("servers", help="Fetch the full server list (falls back to the offline cache)")
    sv.add_argument("--timeout-ms", dest="timeout_ms", type=int, default=None,
                    help="Per-batch timeout in milliseconds (default: LIST_ALL_TIMEOUT_MS)")
    sv.add_argument("--max-age-ms", dest="max_age_ms", type=int, default=None,
                    help="Oldest cached copy to accept when the API is down (default: CACHE_MAX_AGE_MS)")
    sv.add_argument("--search", default=None, help="Substring filter on name, address, map, mode, players")
    sv.add_argument("--filter", action="append", choices=[f.id for f in QUICK_FILTERS],
                    help="Quick filter id; repeat to OR several together")
    sv.add_argument("--sort-by", dest="sort_by", choices=SERVER_SORT_COLUMNS, default=None,
                    help="Sort the listing by this column (default: payload order)")
    sv.add_argument("--desc", action="store_true", help="Sort descending")
    sv.add_argument("--out-csv", dest="out_csv", default=None, help="Optional CSV snapshot path")

    pl = subparsers.add_parser("players", help="Fetch one page of the player leaderboard")
    pl.add_argument("--search", default=None, help="Username search")
    pl.add_argument("--db", choices=[d.value for d in PlayerDatabase], default=None,
                    help="Player database (default: PLAYER_DB)")
    pl.add_argument("--sort", choices=PLAYER_SORT_FIELDS, default=None, help="Sort field (default: PLAYER_SORT)")
    pl.add_argument("--start", type=int, default=0, help="Window start (default 0)")
    pl.add_argument("--size", type=int, default=None, help="Window size (default: PLAYER_PAGE_SIZE)")
    pl.add_argument("--timeout-ms", dest="timeout_ms", type=int, default=None, help="Request timeout in milliseconds")
    pl.add_argument("--sort-by", dest="sort_by", choices=PLAYER_SORT_FIELDS + ("row_number",), default=None,
                    help="Re-sort the fetched page locally by this column")
    pl.add_argument("--desc", action="store_true", help="Sort descending")
    pl.add_argument("--out-csv", dest="out_csv", default=None, help="Optional CSV snapshot path")

    subparsers.add_parser("maps", help="Print the map catalog")

    cc = subparsers.add_parser("cache-clear", help="Drop cached entries")
    cc.add_argument("--collection", choices=COLLECTIONS, default=None, help="Only clear this collection (default: all)")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_default_params()

    level = logging.DEBUG if args.verbose else getattr(logging, str(settings["log_level"]).upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s [%(name)s] %(message)s")

    cmd = args.command
    if cmd == "servers":
        return cmd_servers(args, settings)
    elif cmd == "players":
        return cmd_players(args, settings)
    elif cmd == "maps":
        return cmd_maps(args, settings)
    elif cmd == "cache-clear":
        return cmd_cache_clear(args, settings)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
