import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _engine_options(url: str) -> dict:
    options = {"pool_pre_ping": True, "future": True}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            # one shared connection, otherwise every checkout sees an empty database
            options["poolclass"] = StaticPool
    return options


SPAREPART_STOCK_DB_URL = _require_env("SPAREPART_STOCK_DB_URL")

engine_stock = create_engine(SPAREPART_STOCK_DB_URL, **_engine_options(SPAREPART_STOCK_DB_URL))

SessionLocalStock = sessionmaker(
    bind=engine_stock,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)
