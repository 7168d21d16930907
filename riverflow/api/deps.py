# riverflow/api/deps.py
from __future__ import annotations

from typing import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from riverflow.services.runtime import LiveRuntime


def get_runtime(request: Request) -> LiveRuntime:
    return request.app.state.runtime


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.runtime.session_factory()
    try:
        yield db
    finally:
        db.close()
