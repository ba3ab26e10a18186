from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional


class TransportMeta(BaseModel):
    """Where a broker-delivered event came from."""
    topic: str
    partition: int
    offset: int
    key: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class EventPayload(BaseModel):
    """
    The JSON body carried on the topic. Unknown fields are ignored, a missing
    source or action is recorded as ``unknown``.
    """
    source: str = "unknown"
    action: str = "unknown"
    item_id: Optional[str] = Field(default=None, alias="itemId")
    ts: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("source", "action", mode="before")
    @classmethod
    def _blank_to_unknown(cls, value):
        return "unknown" if value is None or value == "" else value

    @field_validator("ts", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return None if value == "" else value

    @field_validator("item_id", mode="before")
    @classmethod
    def _normalize_item_id(cls, value):
        # Producers may send numeric ids. 0 and "" count as no id.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value) if value else None
        return None if value == "" else value


class EventCreate(BaseModel):
    """Body of a direct ``POST /events`` ingestion."""
    source: str = Field(min_length=1)
    action: str = Field(min_length=1)
    item_id: Optional[str] = Field(default=None, alias="itemId")
    ts: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> EventPayload:
        return EventPayload(source=self.source, action=self.action, item_id=self.item_id, ts=self.ts)


class Event(BaseModel):
    """An entry of the event log. Immutable once stored."""
    id: str
    source: str
    action: str
    item_id: Optional[str] = Field(default=None, alias="itemId")
    ts: str
    received_at: str = Field(alias="receivedAt")
    transport: Optional[TransportMeta] = Field(default=None, alias="kafka")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True)
