# riverflow/api/routes/ingest.py
from __future__ import annotations

import io
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from openpyxl import Workbook

from riverflow.api.deps import get_runtime
from riverflow.api.schemas import parse_reading
from riverflow.core.errors import ReadingValidationError
from riverflow.services.runtime import LiveRuntime
from riverflow.services.throttle import parse_ts

log = logging.getLogger("web")

# mounted twice: at the root and under /api/esp32
router = APIRouter()


# ─────────────────────────────────────────────────────────────────────────────
# Sensor ingest
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/reading")
async def post_reading(request: Request, rt: LiveRuntime = Depends(get_runtime)):
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Body must be valid JSON"}, status_code=400)

    try:
        data = parse_reading(body)
    except ReadingValidationError as e:
        log.info("reading rejected: %s", e)
        return JSONResponse({"error": str(e)}, status_code=400)

    try:
        reading = await rt.pipeline.submit(data.node_id, data.water_level, data.timestamp)
    except Exception as e:
        log.exception("reading processing failed for %s: %s", data.node_id, e)
        return JSONResponse({"error": "Failed to process reading"}, status_code=500)

    return {
        "status": "success",
        "message": "Reading received",
        "nodeId": reading.node_id,
        "timestamp": reading.timestamp,
        "alertStatus": reading.alert_status.value,
        "confirmedAlert": reading.confirmed_alert,
    }


@router.get("/reading")
def reading_usage():
    return {
        "message": "POST a JSON body to this endpoint",
        "method": "POST",
        "body": {
            "nodeId": "string, required",
            "waterLevel": "number (metres), required",
            "timestamp": "ISO-8601 string, optional (server time if omitted)",
        },
    }


# ─────────────────────────────────────────────────────────────────────────────
# Live state
# ─────────────────────────────────────────────────────────────────────────────
@router.get("/live")
def live(rt: LiveRuntime = Depends(get_runtime)):
    return rt.live.to_dict()


def _loc(ts: str) -> str:
    if not ts:
        return ""
    try:
        dt = parse_ts(ts)
    except ValueError:
        return ts
    return dt.astimezone().isoformat(timespec="seconds")


@router.get("/live/export")
def export_live_xlsx(rt: LiveRuntime = Depends(get_runtime)):
    records = rt.live.get_all()

    headers = ["Node", "Water level, m", "Status", "Confirmed", "Reading time", "Last update", "History size"]

    wb = Workbook()
    ws = wb.active
    ws.title = "live"
    ws.append(headers)

    for node_id in sorted(records):
        rec = records[node_id]
        cur = rec.current
        ws.append([
            node_id,
            cur.water_level,
            cur.alert_status.value,
            "yes" if cur.confirmed_alert else "no",
            _loc(cur.timestamp),
            _loc(rec.last_update),
            len(rec.history),
        ])

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="live.xlsx"'},
    )
