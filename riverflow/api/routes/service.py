# riverflow/api/routes/service.py
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health(request: Request):
    rt = getattr(request.app.state, "runtime", None)
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "nodes": len(rt.session.live_records) if rt else 0,
        "subscribers": rt.hub.count if rt else 0,
    }
