"""
EmbedSearch Database Session Management

The engine is a process-wide resource created once at startup (see
``embedsearch.main.lifespan``) and kept on ``app.state``. Each request
acquires its own session through ``get_db`` and releases it when the
response is sent.

Functions:
    - create_db_engine(): Build the SQLite engine (FK enforcement on)
    - create_session_factory(): sessionmaker bound to an engine
    - init_db(): Create the chunks/vectors tables if missing
    - get_db(): FastAPI dependency yielding a request-scoped session
"""

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from embedsearch.db.models import Base


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the engine for the embedded datastore.

    In-memory SQLite URLs get a ``StaticPool`` so that every session sees
    the same database.
    """
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)

    if engine.dialect.name == "sqlite":
        # SQLite needs foreign key enforcement enabled explicitly
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a database session.

    Usage:
        @router.get("/items")
        async def get_items(db: Session = Depends(get_db)):
            ...

    The session is automatically closed after the request completes.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
