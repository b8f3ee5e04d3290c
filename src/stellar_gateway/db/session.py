"""Database session configuration."""

from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager
from pathlib import Path

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import stellar_gateway.models  # noqa: E402,F401


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Store:
    """Explicitly opened handle over the relational store.

    The store owns the engine and session factory. It is created once at
    startup, passed to whoever needs it and closed on shutdown.
    """

    def __init__(self, url: str, *, echo: bool = False, engine: Engine | None = None) -> None:
        self.url = url
        self.echo = echo
        self._engine: Engine | None = engine
        self._session_factory: sessionmaker[Session] | None = None
        if engine is not None:
            self._bind(engine)

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Store is not open")
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def _bind(self, engine: Engine) -> None:
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(
            bind=engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    def open(self) -> Store:
        """Create the engine; calling it on an open store is a no-op."""
        if self._engine is not None:
            return self
        connect_args: dict[str, object] = {}
        if self.url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            database = self.url.split("///", 1)[-1]
            if database and database != ":memory:" and "///" in self.url:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
        self._engine = create_engine(
            self.url,
            pool_pre_ping=True,
            echo=self.echo,
            connect_args=connect_args,
        )
        self._bind(self._engine)
        return self

    def close(self) -> None:
        """Dispose of pooled connections and forget the engine."""
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None

    def new_session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Store is not open")
        return self._session_factory()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session that is always closed afterwards."""
        db = self.new_session()
        try:
            yield db
        finally:
            db.close()

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables."""
        Base.metadata.drop_all(bind=self.engine)

    def __enter__(self) -> Store:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def get_db(request: Request) -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    store: Store = request.app.state.store
    with store.session() as db:
        yield db
