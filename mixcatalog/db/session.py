from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from mixcatalog.core.config import get_settings


def enable_sqlite_savepoints(sqlite_engine: Engine) -> None:
    """Let SAVEPOINT work on pysqlite by taking over BEGIN from the driver."""

    @event.listens_for(sqlite_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


settings = get_settings()

_is_sqlite = settings.database_url.startswith("sqlite")
_connect_args = {"check_same_thread": False} if _is_sqlite else {}

engine = create_engine(
    settings.database_url_sync,
    pool_pre_ping=True,
    connect_args=_connect_args,
)
if _is_sqlite:
    enable_sqlite_savepoints(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create all tables directly (local SQLite setups; production uses alembic)."""
    from mixcatalog.models import Base

    Base.metadata.create_all(bind=engine)
