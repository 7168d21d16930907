# riverflow/db/models.py
from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, ForeignKey

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class Node(Base):
    __tablename__ = "nodes"
    id = Column(Integer, primary_key=True)
    name = Column(String(128), unique=True, index=True, nullable=False)
    latitude = Column(Float, default=0.0)
    longitude = Column(Float, default=0.0)
    threshold = Column(Float, nullable=True)          # informational, the live path uses alerts.* config
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    readings = relationship("Reading", back_populates="node", passive_deletes=True)


class Reading(Base):
    __tablename__ = "readings"
    id = Column(Integer, primary_key=True)
    node_id = Column(Integer, ForeignKey("nodes.id", ondelete="CASCADE"), index=True, nullable=False)
    water_level = Column(Float, nullable=False)
    flow_rate = Column(Float, default=0.0)            # no flow sensor feed yet
    timestamp = Column(DateTime(timezone=True), index=True)
    confirmed_alert = Column(Boolean, default=False)

    node = relationship("Node", back_populates="readings")
