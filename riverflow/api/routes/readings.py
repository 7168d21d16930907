# riverflow/api/routes/readings.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from riverflow.api.deps import get_db
from riverflow.api.routes.nodes import _error, reading_to_dict
from riverflow.db.models import Node, Reading

log = logging.getLogger("db")

router = APIRouter(prefix="/api/readings")


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    # naive query bounds are taken as UTC
    if dt is not None and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _apply_range(q, start_date: Optional[datetime], end_date: Optional[datetime]):
    start_date, end_date = _utc(start_date), _utc(end_date)
    if start_date is not None:
        q = q.where(Reading.timestamp >= start_date)
    if end_date is not None:
        q = q.where(Reading.timestamp <= end_date)
    return q


@router.get("")
def list_readings(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=5000),
    db: Session = Depends(get_db),
):
    q = select(Reading, Node.name).join(Node, Node.id == Reading.node_id)
    q = _apply_range(q, start_date, end_date)
    try:
        rows = db.execute(q.order_by(Reading.timestamp.desc(), Reading.id.desc()).limit(limit)).all()
    except SQLAlchemyError as e:
        log.error("fetch readings: %s", e)
        return _error(500, "Failed to fetch readings")
    out = []
    for r, name in rows:
        item = reading_to_dict(r)
        item["node_name"] = name
        out.append(item)
    return out


@router.get("/node/{node_id}")
def node_readings(
    node_id: int,
    limit: int = Query(100, ge=1, le=5000),
    db: Session = Depends(get_db),
):
    try:
        rows: List[Reading] = db.scalars(
            select(Reading)
            .where(Reading.node_id == node_id)
            .order_by(Reading.timestamp.desc(), Reading.id.desc())
            .limit(limit)
        ).all()
    except SQLAlchemyError as e:
        log.error("fetch readings of node %s: %s", node_id, e)
        return _error(500, "Failed to fetch readings")
    return [reading_to_dict(r) for r in rows]


@router.get("/node/{node_id}/latest")
def node_latest(node_id: int, db: Session = Depends(get_db)):
    try:
        r = db.scalars(
            select(Reading)
            .where(Reading.node_id == node_id)
            .order_by(Reading.timestamp.desc(), Reading.id.desc())
            .limit(1)
        ).first()
    except SQLAlchemyError as e:
        log.error("fetch latest reading of node %s: %s", node_id, e)
        return _error(500, "Failed to fetch latest reading")
    if r is None:
        return _error(404, "No readings for this node")
    return reading_to_dict(r)


@router.get("/stats/{node_id}")
def node_stats(
    node_id: int,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
):
    q = select(
        func.count(Reading.id),
        func.avg(Reading.water_level), func.min(Reading.water_level), func.max(Reading.water_level),
        func.avg(Reading.flow_rate), func.min(Reading.flow_rate), func.max(Reading.flow_rate),
    ).where(Reading.node_id == node_id)
    q = _apply_range(q, start_date, end_date)
    try:
        count, wl_avg, wl_min, wl_max, fr_avg, fr_min, fr_max = db.execute(q).one()
    except SQLAlchemyError as e:
        log.error("stats for node %s: %s", node_id, e)
        return _error(500, "Failed to calculate statistics")

    if not count:
        return {"message": "No data available"}
    return {
        "count": count,
        "water_level": {"avg": wl_avg, "min": wl_min, "max": wl_max},
        "flow_rate": {"avg": fr_avg, "min": fr_min, "max": fr_max},
    }


@router.delete("/{reading_id}")
def delete_reading(reading_id: int, db: Session = Depends(get_db)):
    try:
        res = db.execute(delete(Reading).where(Reading.id == reading_id))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error("delete reading %s: %s", reading_id, e)
        return _error(500, "Failed to delete reading")
    if not res.rowcount:
        return _error(404, "Reading not found")
    return {"message": "Reading deleted successfully"}
