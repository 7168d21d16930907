# riverflow/db/store.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from riverflow.core.errors import TransientStorageError
from riverflow.db.models import Node, Reading

log = logging.getLogger("db")


class DurableStore:
    """
    The three durable operations the live pipeline needs.
    Every SQLAlchemy failure surfaces as TransientStorageError.
    Blocking: call from a worker thread when on the event loop.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._sf = session_factory

    def find_or_create_node(self, name: str, default_location: Optional[Dict[str, Any]] = None) -> Node:
        loc = default_location or {}
        try:
            with self._sf() as s:
                node = s.scalars(select(Node).where(Node.name == name)).first()
                if node is not None:
                    return node
                node = Node(
                    name=name,
                    latitude=float(loc.get("latitude", 0.0) or 0.0),
                    longitude=float(loc.get("longitude", 0.0) or 0.0),
                )
                s.add(node)
                s.commit()
                log.info("durable node created: %s (id=%s)", name, node.id)
                return node
        except SQLAlchemyError as e:
            raise TransientStorageError(f"find_or_create_node({name!r}): {e}") from e

    def insert_reading(
        self,
        node_id: int,
        water_level: float,
        flow_rate: float,
        timestamp: datetime,
        confirmed_alert: bool,
    ) -> int:
        try:
            with self._sf() as s:
                row = Reading(
                    node_id=node_id,
                    water_level=float(water_level),
                    flow_rate=float(flow_rate),
                    timestamp=timestamp,
                    confirmed_alert=bool(confirmed_alert),
                )
                s.add(row)
                s.commit()
                return row.id
        except SQLAlchemyError as e:
            raise TransientStorageError(f"insert_reading(node_id={node_id}): {e}") from e

    def delete_readings_older_than_retained(self, node_id: int, keep_count: int) -> int:
        """Keep the newest `keep_count` readings of a node, delete the rest."""
        try:
            with self._sf() as s:
                old_ids = s.scalars(
                    select(Reading.id)
                    .where(Reading.node_id == node_id)
                    .order_by(Reading.timestamp.desc(), Reading.id.desc())
                    .offset(max(0, int(keep_count)))
                ).all()
                if not old_ids:
                    return 0
                s.execute(delete(Reading).where(Reading.id.in_(old_ids)))
                s.commit()
                log.info("cleaned up %d old reading(s) for node id=%s", len(old_ids), node_id)
                return len(old_ids)
        except SQLAlchemyError as e:
            raise TransientStorageError(f"delete_readings_older_than_retained(node_id={node_id}): {e}") from e
