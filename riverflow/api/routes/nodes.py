# riverflow/api/routes/nodes.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from riverflow.api.deps import get_db
from riverflow.api.schemas import NodeCreate, NodeUpdate
from riverflow.db.models import Node, Reading

log = logging.getLogger("db")

router = APIRouter(prefix="/api/nodes")


def _iso(ts: Optional[datetime]) -> Optional[str]:
    # SQLite gives naive datetimes back; they were stored as UTC
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat()


def node_to_dict(n: Node) -> Dict[str, Any]:
    return {
        "id": n.id,
        "name": n.name,
        "latitude": n.latitude,
        "longitude": n.longitude,
        "threshold": n.threshold,
        "created_at": _iso(n.created_at),
    }


def reading_to_dict(r: Reading) -> Dict[str, Any]:
    return {
        "id": r.id,
        "node_id": r.node_id,
        "water_level": r.water_level,
        "flow_rate": r.flow_rate,
        "timestamp": _iso(r.timestamp),
        "confirmed_alert": bool(r.confirmed_alert),
    }


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)


@router.get("")
def list_nodes(db: Session = Depends(get_db)):
    try:
        rows = db.scalars(select(Node).order_by(Node.name)).all()
    except SQLAlchemyError as e:
        log.error("fetch nodes: %s", e)
        return _error(500, "Failed to fetch nodes")
    return [node_to_dict(n) for n in rows]


# declared before /{node_id} so "readings" is not taken for an id
@router.get("/readings/latest")
def nodes_with_latest(db: Session = Depends(get_db)):
    try:
        out = []
        for n in db.scalars(select(Node).order_by(Node.name)).all():
            latest = db.scalars(
                select(Reading)
                .where(Reading.node_id == n.id)
                .order_by(Reading.timestamp.desc(), Reading.id.desc())
                .limit(1)
            ).first()
            item = node_to_dict(n)
            item["latest_reading"] = reading_to_dict(latest) if latest else None
            out.append(item)
    except SQLAlchemyError as e:
        log.error("fetch nodes with readings: %s", e)
        return _error(500, "Failed to fetch nodes with readings")
    return out


@router.get("/{node_id}")
def get_node(node_id: int, db: Session = Depends(get_db)):
    try:
        node = db.get(Node, node_id)
    except SQLAlchemyError as e:
        log.error("fetch node %s: %s", node_id, e)
        return _error(500, "Failed to fetch node")
    if node is None:
        return _error(404, "Node not found")
    return node_to_dict(node)


@router.post("", status_code=201)
def create_node(body: NodeCreate, db: Session = Depends(get_db)):
    node = Node(**body.model_dump())
    try:
        db.add(node)
        db.commit()
    except IntegrityError:
        db.rollback()
        return _error(400, f"Node '{body.name}' already exists")
    except SQLAlchemyError as e:
        db.rollback()
        log.error("create node: %s", e)
        return _error(500, "Failed to create node")
    log.info("node created: %s (id=%s)", node.name, node.id)
    return node_to_dict(node)


@router.put("/{node_id}")
def update_node(node_id: int, body: NodeUpdate, db: Session = Depends(get_db)):
    try:
        node = db.get(Node, node_id)
        if node is None:
            return _error(404, "Node not found")
        for k, v in body.changes().items():
            setattr(node, k, v)
        db.commit()
    except IntegrityError:
        db.rollback()
        return _error(400, f"Node '{body.name}' already exists")
    except SQLAlchemyError as e:
        db.rollback()
        log.error("update node %s: %s", node_id, e)
        return _error(500, "Failed to update node")
    return node_to_dict(node)


@router.delete("/{node_id}")
def delete_node(node_id: int, db: Session = Depends(get_db)):
    try:
        node = db.get(Node, node_id)
        if node is None:
            return _error(404, "Node not found")
        # readings first: SQLite does not enforce ON DELETE CASCADE by default
        db.execute(delete(Reading).where(Reading.node_id == node_id))
        db.delete(node)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error("delete node %s: %s", node_id, e)
        return _error(500, "Failed to delete node")
    log.info("node deleted: id=%s", node_id)
    return {"message": "Node deleted successfully"}
