"""Database Configuration for AniSync."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from types import TracebackType

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from anisync.exceptions import DataPathError

__all__ = ["AniSyncDB", "db"]

ALEMBIC_DIR = Path(__file__).resolve().parent.parent.parent / "alembic"


class AniSyncDB:
    """Database manager for the AniSync SQLite store.

    Creates the engine, applies migrations and hands out sessions. Used as a
    (re-entrant) context manager, the session opened by the outermost `with`
    block is shared by nested blocks and closed when that outermost block exits:

        with db() as ctx:
            ctx.session.execute(...)
            ctx.session.commit()

    Passing `url="sqlite://"` gives a private in-memory database whose schema is
    created straight from the models, which is what the test suite uses.
    """

    def __init__(
        self,
        data_path: Path | None = None,
        *,
        url: str | None = None,
        migrate: bool = True,
    ) -> None:
        """Initializes the database manager.

        Args:
            data_path (Path | None): Directory where `anisync.db` is stored
            url (str | None): Explicit SQLAlchemy URL, overrides `data_path`
            migrate (bool): Run Alembic migrations; if False the schema is created
                directly from the model metadata

        Raises:
            DataPathError: If data_path exists but is a file instead of a directory
        """
        if url is None:
            if data_path is None:
                raise DataPathError("Either a data path or a database URL is required")
            url = f"sqlite:///{data_path / 'anisync.db'}"

        self.data_path = data_path
        self.url = url

        self.engine = self._setup_db()
        self._SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
        self._session: Session | None = None
        self._depth = 0

        if migrate:
            self._do_migrations()
        else:
            from anisync.models.db import Base

            Base.metadata.create_all(self.engine)

    @property
    def is_memory(self) -> bool:
        return self.url in ("sqlite://", "sqlite:///:memory:")

    def _setup_db(self) -> Engine:
        """Creates the SQLAlchemy engine, preparing the data directory first.

        Returns:
            Engine: Configured SQLAlchemy engine instance
        """
        import anisync.models  # noqa: F401

        if self.data_path is not None and not self.is_memory:
            if not self.data_path.exists():
                self.data_path.mkdir(parents=True, exist_ok=True)
            elif self.data_path.is_file():
                raise DataPathError(
                    f"The path '{self.data_path}' is a file, please delete it first "
                    "or choose a different data folder path"
                )

        if self.is_memory:
            engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                future=True,
            )
        else:
            engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False},
                pool_pre_ping=True,
                future=True,
            )

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, _connection_record):
            cur = dbapi_connection.cursor()
            try:
                if not self.is_memory:
                    cur.execute("PRAGMA journal_mode=WAL;")
                    cur.execute("PRAGMA synchronous=NORMAL;")
                cur.execute("PRAGMA temp_store=MEMORY;")
                cur.execute("PRAGMA foreign_keys=ON;")
            finally:
                cur.close()

        return engine

    def _do_migrations(self) -> None:
        """Upgrades the schema to the latest Alembic revision."""
        from alembic import command
        from alembic.config import Config

        cfg = Config()
        cfg.set_main_option("script_location", str(ALEMBIC_DIR))
        cfg.set_main_option("sqlalchemy.url", self.url)

        with self.engine.begin() as connection:
            cfg.attributes["connection"] = connection
            command.upgrade(cfg, "head")

    def __enter__(self) -> AniSyncDB:
        """Enters the context manager, opening a session if none is active."""
        if self._session is None:
            self._session = self._SessionLocal()
        self._depth += 1
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the session once the outermost context exits."""
        self._depth = max(0, self._depth - 1)
        if self._depth == 0 and self._session is not None:
            if exc_type is not None:
                self._session.rollback()
            self._session.close()
            self._session = None

    @property
    def session(self) -> Session:
        """Return the current SQLAlchemy session, creating it if needed."""
        if self._session is None:
            self._session = self._SessionLocal()
        return self._session

    def dispose(self) -> None:
        """Close any open session and release pooled connections."""
        if self._session is not None:
            self._session.close()
            self._session = None
        self._depth = 0
        self.engine.dispose()


@lru_cache(maxsize=1)
def db() -> AniSyncDB:
    """Get the process-wide database manager."""
    from anisync import config

    return AniSyncDB(config.data_path)
