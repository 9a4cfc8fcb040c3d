import os
import json
import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_MS = 10000
DEFAULT_LIST_ALL_TIMEOUT_MS = 20000
DEFAULT_CACHE_MAX_AGE_MS = 5 * 60 * 1000
DEFAULT_CACHE_DATABASE_URL = "sqlite:///data/cache.db"


def _int_env(name, default):
    raw = os.getenv(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("%s in .env is not an integer (%r). Using default %s.", name, raw, default)
        return default


def _load_json_env(name, default="[]"):
    raw = os.getenv(name)
    if raw is None:
        raw = default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("%s in .env is not valid JSON. Using default.", name)
        return json.loads(default)


def load_default_params():
    """Read runtime settings from the environment (.env supported).

    Returns a flat dict; every key has a usable default so the client runs
    without any .env at all (against a same-origin base URL).
    """
    load_dotenv()

    quick_filters = _load_json_env("QUICK_FILTERS", default="[]")
    if not isinstance(quick_filters, list):
        quick_filters = []

    return {
        "base_url": (os.getenv("API_BASE_URL") or "").rstrip("/"),
        "request_timeout_ms": _int_env("REQUEST_TIMEOUT_MS", DEFAULT_REQUEST_TIMEOUT_MS),
        "list_all_timeout_ms": _int_env("LIST_ALL_TIMEOUT_MS", DEFAULT_LIST_ALL_TIMEOUT_MS),
        "cache_database_url": os.getenv("CACHE_DATABASE_URL", DEFAULT_CACHE_DATABASE_URL),
        "cache_max_age_ms": _int_env("CACHE_MAX_AGE_MS", DEFAULT_CACHE_MAX_AGE_MS),
        "player_db": os.getenv("PLAYER_DB", "invasion"),
        "player_sort": os.getenv("PLAYER_SORT", "rank_progression"),
        "player_page_size": _int_env("PLAYER_PAGE_SIZE", 20),
        "user_agent": os.getenv("USER_AGENT", "robinstats/0.1"),
        "log_level": os.getenv("LOG_LEVEL", "WARNING"),
        "quick_filters": [str(f) for f in quick_filters],
    }
