# riverflow/services/messages.py
"""
Live reading model and the push-channel message shapes.

Everything that goes over the live feed (websocket, MQTT relay) is one of:
    {"type": "connected",    "message": "Live feed active"}
    {"type": "live_reading", "data": {nodeId, waterLevel, timestamp, alertStatus, confirmedAlert}}
    {"type": "pong"}
Outgoing messages are built from these models; incoming ones go through parse_message().
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from riverflow.services.types import AlertStatus


class LiveReading(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    node_id: str = Field(alias="nodeId")
    water_level: float = Field(alias="waterLevel")
    timestamp: str
    alert_status: AlertStatus = Field(alias="alertStatus")
    confirmed_alert: bool = Field(alias="confirmedAlert")

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class ConnectedMessage(BaseModel):
    type: Literal["connected"] = "connected"
    message: str = "Live feed active"


class LiveReadingMessage(BaseModel):
    type: Literal["live_reading"] = "live_reading"
    data: LiveReading


class PongMessage(BaseModel):
    type: Literal["pong"] = "pong"


LiveMessage = Annotated[
    Union[ConnectedMessage, LiveReadingMessage, PongMessage],
    Field(discriminator="type"),
]

_adapter: TypeAdapter = TypeAdapter(LiveMessage)


def parse_message(raw: Any) -> BaseModel:
    """Validate a received message (JSON text/bytes or an already decoded dict)."""
    if isinstance(raw, (str, bytes, bytearray)):
        return _adapter.validate_json(raw)
    return _adapter.validate_python(raw)


def dump_message(msg: BaseModel) -> str:
    return msg.model_dump_json(by_alias=True)
