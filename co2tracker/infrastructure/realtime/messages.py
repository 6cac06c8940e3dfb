"""Inbound realtime messages and the codec that decodes them."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from co2tracker.domain.exceptions import MalformedMessageError

INVALID_FORMAT_MESSAGE = "Invalid message format"


def _coerce_identifier(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class SubscribeCO2DataPayload(BaseModel):
    """Payload of a ``subscribe-co2-data`` request."""

    model_config = ConfigDict(populate_by_name=True)

    data_type: str = Field(alias="dataType", min_length=1)

    @field_validator("data_type", mode="before")
    @classmethod
    def stringify_data_type(cls, value: Any) -> Any:
        return _coerce_identifier(value)


class SubscribeGoalProgressPayload(BaseModel):
    """Payload of a ``subscribe-goal-progress`` request."""

    model_config = ConfigDict(populate_by_name=True)

    goal_id: str = Field(alias="goalId", min_length=1)

    @field_validator("goal_id", mode="before")
    @classmethod
    def stringify_goal_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)


class SubscribeCO2DataMessage(BaseModel):
    type: Literal["subscribe-co2-data"]
    payload: SubscribeCO2DataPayload


class SubscribeGoalProgressMessage(BaseModel):
    type: Literal["subscribe-goal-progress"]
    payload: SubscribeGoalProgressPayload


class PingMessage(BaseModel):
    """Liveness probe; clients may attach their own send timestamp."""

    type: Literal["ping"]
    payload: Any = None
    timestamp: int | None = None


@dataclass(frozen=True)
class UnknownMessage:
    """Fallback for well-formed messages whose ``type`` is not recognized."""

    type: str
    payload: Any = None


ClientMessage = Union[
    SubscribeCO2DataMessage,
    SubscribeGoalProgressMessage,
    PingMessage,
    UnknownMessage,
]

_MESSAGE_MODELS: dict[str, type[BaseModel]] = {
    "subscribe-co2-data": SubscribeCO2DataMessage,
    "subscribe-goal-progress": SubscribeGoalProgressMessage,
    "ping": PingMessage,
}


def parse_client_message(raw: str | bytes | None) -> ClientMessage:
    """Decode a text frame into one of the :data:`ClientMessage` variants.

    Raises :class:`MalformedMessageError` when the frame is not a JSON object
    with a string ``type`` or when a recognized type carries an invalid payload.
    """

    if raw is None:
        raise MalformedMessageError(INVALID_FORMAT_MESSAGE)
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedMessageError(INVALID_FORMAT_MESSAGE) from exc

    if not isinstance(data, dict):
        raise MalformedMessageError(INVALID_FORMAT_MESSAGE)

    message_type = data.get("type")
    if not isinstance(message_type, str) or not message_type:
        raise MalformedMessageError("Message type is required")

    model = _MESSAGE_MODELS.get(message_type)
    if model is None:
        return UnknownMessage(type=message_type, payload=data.get("payload"))

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedMessageError(f"Invalid payload for {message_type}") from exc


__all__ = [
    "ClientMessage",
    "PingMessage",
    "SubscribeCO2DataMessage",
    "SubscribeGoalProgressMessage",
    "UnknownMessage",
    "parse_client_message",
]
