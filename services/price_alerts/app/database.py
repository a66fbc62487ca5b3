from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import PriceAlertSettings

Base = declarative_base()


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the outer transaction.

    pysqlite otherwise starts transactions lazily and a released outermost
    savepoint commits on its own.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection) -> None:
        connection.exec_driver_sql("BEGIN")

    return engine


def create_session_factory(settings: PriceAlertSettings | None = None) -> sessionmaker[Session]:
    settings = settings or PriceAlertSettings()
    is_sqlite = settings.database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    engine = create_engine(
        settings.database_url,
        connect_args=connect_args,
        pool_pre_ping=not is_sqlite,
        future=True,
    )
    if is_sqlite:
        enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


def get_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
