import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///local.db")

TIMEOUT_SECONDS = int(os.getenv("DB_TIMEOUT_SECONDS", "120"))
BATCH_TIMEOUT_SECONDS = int(os.getenv("BATCH_TIMEOUT_SECONDS", "60"))


def configure_sqlite(engine: Engine) -> None:
    """
    Turn on foreign keys and let SQLAlchemy own BEGIN so that SAVEPOINTs
    nest inside the outer transaction instead of committing on release.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    url = url or DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": TIMEOUT_SECONDS},
            echo=echo,
            pool_pre_ping=True,
            poolclass=NullPool,
        )
        configure_sqlite(engine)
        return engine

    return create_engine(url, echo=echo, pool_pre_ping=True)
