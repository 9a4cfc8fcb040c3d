import os
import json
import time
import logging
import threading
import dataclasses
from enum import Enum
from typing import Any, Callable, List, Optional

from sqlalchemy import create_engine, BigInteger, String, Text, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker, Session

from domain.errors import CacheError

logger = logging.getLogger(__name__)

COLLECTIONS = ("servers", "players", "cache")
DEFAULT_MAX_AGE_MS = 5 * 60 * 1000


class Base(DeclarativeBase):
    pass


class CacheEntry(Base):
    """One cached payload with its capture time (epoch milliseconds)."""
    __tablename__ = "cache_entries"
    collection: Mapped[str] = mapped_column(String(32), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


def _ensure_data_dir_sqlite(url: str):
    if url.startswith("sqlite:///"):
        # Path is relative to CWD
        path = url.replace("sqlite:///", "")
        d = os.path.dirname(path)
        if d and not os.path.exists(d):
            os.makedirs(d, exist_ok=True)


def get_engine_url() -> str:
    return os.getenv("CACHE_DATABASE_URL", "sqlite:///data/cache.db")


def _json_default(obj: Any):
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"{type(obj).__name__} is not JSON serializable")


def _now_ms() -> int:
    return int(time.time() * 1000)


class CacheStorage:
    """Persistent key-value store used as an offline fallback.

    Values live in named collections ("servers", "players", "cache") and are
    stamped with their capture time. Reads never raise: a broken store reads
    as empty. Writes raise CacheError and are the caller's to log.
    """

    def __init__(self, database_url: Optional[str] = None, clock: Callable[[], int] = _now_ms):
        self.database_url = database_url or get_engine_url()
        self.clock = clock
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._init_lock = threading.Lock()

    def init(self) -> None:
        """Open the engine and create the schema once; concurrent callers share the result."""
        if self._session_factory is not None:
            return
        with self._init_lock:
            if self._session_factory is not None:
                return
            url = self.database_url
            _ensure_data_dir_sqlite(url)
            # Heroku may provide postgres://; SQLAlchemy prefers postgresql://
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql://", 1)
            engine = create_engine(url, future=True)
            try:
                self._migrate(engine)
            except Exception:
                engine.dispose()
                raise
            self.engine = engine
            self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
            logger.debug("Cache storage initialized at %s", self.database_url)

    def _migrate(self, engine: Engine) -> None:
        root_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        ini_path = os.path.join(root_dir, "alembic.ini")
        if os.path.exists(ini_path):
            try:
                import alembic.config
                import alembic.command

                cfg = alembic.config.Config(ini_path)
                cfg.set_main_option("sqlalchemy.url", self.database_url.replace("%", "%%"))
                with engine.begin() as conn:
                    cfg.attributes["connection"] = conn
                    cfg.attributes["configure_logger"] = False
                    alembic.command.upgrade(cfg, "head")
                return
            except Exception as e:
                logger.warning("Auto-migration failed: %s. Falling back to metadata.create_all()", e)
        Base.metadata.create_all(engine)

    def _session(self) -> Session:
        if self._session_factory is None:
            self.init()
        return self._session_factory()

    def close(self) -> None:
        with self._init_lock:
            if self.engine is not None:
                self.engine.dispose()
            self.engine = None
            self._session_factory = None

    # Writes

    def set(self, collection: str, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, default=_json_default)
            with self._session() as session:
                obj = session.get(CacheEntry, (collection, key))
                if obj is None:
                    session.add(CacheEntry(collection=collection, key=key, payload=payload, timestamp=self.clock()))
                else:
                    obj.payload = payload
                    obj.timestamp = self.clock()
                session.commit()
        except Exception as e:
            raise CacheError(f"Failed to write {collection}/{key}: {e}") from e

    def delete(self, collection: str, key: str) -> None:
        try:
            with self._session() as session:
                session.execute(delete(CacheEntry).where(CacheEntry.collection == collection, CacheEntry.key == key))
                session.commit()
        except Exception as e:
            raise CacheError(f"Failed to delete {collection}/{key}: {e}") from e

    def clear(self, collection: str) -> None:
        try:
            with self._session() as session:
                session.execute(delete(CacheEntry).where(CacheEntry.collection == collection))
                session.commit()
        except Exception as e:
            raise CacheError(f"Failed to clear {collection}: {e}") from e

    # Reads

    def _load(self, collection: str, key: str) -> Optional[CacheEntry]:
        with self._session() as session:
            return session.get(CacheEntry, (collection, key))

    def get(self, collection: str, key: str) -> Any:
        try:
            obj = self._load(collection, key)
            return json.loads(obj.payload) if obj is not None else None
        except Exception as e:
            logger.warning("Cache read failed for %s/%s: %s", collection, key, e)
            return None

    def get_all(self, collection: str) -> List[Any]:
        try:
            with self._session() as session:
                rows = session.scalars(
                    select(CacheEntry).where(CacheEntry.collection == collection).order_by(CacheEntry.key)
                ).all()
                return [json.loads(r.payload) for r in rows]
        except Exception as e:
            logger.warning("Cache read failed for %s: %s", collection, e)
            return []

    def get_with_age(self, collection: str, key: str, max_age_ms: int = DEFAULT_MAX_AGE_MS) -> Any:
        """Like get(), but an entry older than max_age_ms reads as a miss. Stale rows are kept."""
        try:
            obj = self._load(collection, key)
            if obj is None:
                return None
            age = self.clock() - int(obj.timestamp)
            if age > max_age_ms:
                logger.debug("Cache entry %s/%s expired (%sms old)", collection, key, age)
                return None
            return json.loads(obj.payload)
        except Exception as e:
            logger.warning("Cache read failed for %s/%s: %s", collection, key, e)
            return None
