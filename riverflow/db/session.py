# riverflow/db/session.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from riverflow.db.models import Base  # models must be imported before create_all


def _ensure_sqlite_dir(db_url: str) -> None:
    # sqlite:///./data/data.db  → ./data
    prefix = "sqlite:///"
    if db_url.startswith(prefix):
        fs_path = db_url[len(prefix):]
        # :memory:, nothing to create
        if not fs_path or fs_path == ":memory:":
            return
        Path(fs_path).resolve().parent.mkdir(parents=True, exist_ok=True)


def make_engine(db_url: str) -> Engine:
    _ensure_sqlite_dir(db_url)
    kwargs: Dict[str, Any] = {"future": True}
    if db_url.startswith("sqlite"):
        # durable writes run in worker threads
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(db_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist yet."""
    Base.metadata.create_all(bind=engine)
