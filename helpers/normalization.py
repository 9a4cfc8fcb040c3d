import re
from typing import Any, List, Optional

_INT_RE = re.compile(r"^[+-]?\d+$")


def _text(value: Any) -> str:
    return str(value if value is not None else '').strip()


def to_int(value: Any, default: int = 0) -> int:
    """Lenient integer coercion: anything unparseable becomes ``default``.

    Accepts ints, numeric strings and float-looking strings ("12.0" -> 12).
    Booleans are not treated as numbers.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and value not in (float('inf'), float('-inf')) else default
    s = _text(value)
    if not s:
        return default
    if _INT_RE.match(s):
        return int(s)
    try:
        f = float(s)
    except ValueError:
        return default
    if f != f or f in (float('inf'), float('-inf')):
        return default
    return int(f)


def to_number_or_none(value: Any) -> Optional[float]:
    """Numeric coercion for player stats: blank, '-' or garbage -> None.

    Zero is a real observed value and is returned as 0, never folded into None.
    Integral values come back as int.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    s = _text(value)
    if s in ('', '-'):
        return None
    s = s.replace(',', '')
    if _INT_RE.match(s):
        return int(s)
    try:
        f = float(s)
    except ValueError:
        return None
    if f != f:
        return None
    return f


def to_str_or_none(value: Any) -> Optional[str]:
    s = _text(value)
    return s or None


def fix_player_list(raw: Any) -> List[str]:
    """The player element may be absent, a bare scalar, or repeated."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(p) for p in raw]
    return [str(raw)]


def is_flag_set(value: Any) -> bool:
    """1 (or "1") -> True; anything else, including absent, -> False."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value == 1
    return _text(value) == '1'


def map_leaf_name(map_id: str) -> str:
    """Last path segment of a map id; presentation only, ids stay unsplit."""
    return _text(map_id).split('/')[-1]
