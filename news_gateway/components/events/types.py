"""
Event value objects.

Inbound client frames are decoded once, at the edge, into a closed set of
typed events. Anything that does not decode raises UnknownEvent before any
handler runs.

Outbound traffic is described by Delivery: event name, payload and exactly
one Target (a user, a room, or everyone). A Delivery is serialized once and
the same text frame is written to every recipient.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from shared.utils.exceptions import UnknownEvent


def encode_frame(event: str, data: Any) -> str:
    """Serialize a server -> client frame."""
    return json.dumps({"event": event, "data": data}, default=str)


# =============================================================================
# Outbound
# =============================================================================


class TargetKind(str, Enum):
    USER = "user"
    ROOM = "room"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class Target:
    """Recipient selector of a Delivery."""

    kind: TargetKind
    value: str | None = None

    def __post_init__(self) -> None:
        if self.kind is TargetKind.ALL:
            if self.value is not None:
                raise ValueError("Target 'all' takes no value")
        elif not self.value:
            raise ValueError(f"Target '{self.kind.value}' requires a value")

    @classmethod
    def user(cls, user_id: str | int) -> "Target":
        return cls(TargetKind.USER, str(user_id))

    @classmethod
    def room(cls, room: str) -> "Target":
        return cls(TargetKind.ROOM, room)

    @classmethod
    def everyone(cls) -> "Target":
        return cls(TargetKind.ALL)

    def __str__(self) -> str:
        if self.kind is TargetKind.ALL:
            return "all"
        return f"{self.kind.value}({self.value})"


@dataclass(frozen=True, slots=True)
class Delivery:
    """An ephemeral outbound event routed to one target."""

    event: str
    data: Any
    target: Target

    def __post_init__(self) -> None:
        if not isinstance(self.event, str) or not self.event:
            raise ValueError("Delivery event must be a non-empty string")

    def encode(self) -> str:
        return encode_frame(self.event, self.data)


# =============================================================================
# Inbound
# =============================================================================


class ClientEventKind(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    GET_STATS = "get_stats"
    PING = "ping"
    PONG = "pong"


def _data_object(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise UnknownEvent(UnknownEvent.INVALID_FORMAT)
    return data


@dataclass(frozen=True)
class SubscribeEvent:
    kind: ClassVar[ClientEventKind] = ClientEventKind.SUBSCRIBE

    type: str
    filters: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_data(cls, data: Any) -> "SubscribeEvent":
        data = _data_object(data)
        sub_type = data.get("type")
        if not isinstance(sub_type, str) or not sub_type:
            raise UnknownEvent(f"Invalid {cls.kind.value} payload: type is required")
        filters = data.get("filters") or {}
        if not isinstance(filters, dict):
            raise UnknownEvent(f"Invalid {cls.kind.value} payload: filters must be an object")
        return cls(type=sub_type, filters=filters)


@dataclass(frozen=True)
class UnsubscribeEvent(SubscribeEvent):
    kind: ClassVar[ClientEventKind] = ClientEventKind.UNSUBSCRIBE


@dataclass(frozen=True)
class JoinRoomEvent:
    kind: ClassVar[ClientEventKind] = ClientEventKind.JOIN_ROOM

    room: str

    @classmethod
    def from_data(cls, data: Any) -> "JoinRoomEvent":
        room = _data_object(data).get("room")
        if not isinstance(room, str) or not room.strip():
            raise UnknownEvent(f"Invalid {cls.kind.value} payload: room is required")
        return cls(room=room.strip())


@dataclass(frozen=True)
class LeaveRoomEvent(JoinRoomEvent):
    kind: ClassVar[ClientEventKind] = ClientEventKind.LEAVE_ROOM


@dataclass(frozen=True)
class GetStatsEvent:
    kind: ClassVar[ClientEventKind] = ClientEventKind.GET_STATS

    @classmethod
    def from_data(cls, data: Any) -> "GetStatsEvent":
        return cls()


@dataclass(frozen=True)
class PingEvent:
    kind: ClassVar[ClientEventKind] = ClientEventKind.PING

    @classmethod
    def from_data(cls, data: Any) -> "PingEvent":
        return cls()


@dataclass(frozen=True)
class PongEvent:
    kind: ClassVar[ClientEventKind] = ClientEventKind.PONG

    @classmethod
    def from_data(cls, data: Any) -> "PongEvent":
        return cls()


ClientEvent = Union[
    SubscribeEvent,
    UnsubscribeEvent,
    JoinRoomEvent,
    LeaveRoomEvent,
    GetStatsEvent,
    PingEvent,
    PongEvent,
]

_EVENT_TYPES: dict[ClientEventKind, Any] = {
    ClientEventKind.SUBSCRIBE: SubscribeEvent,
    ClientEventKind.UNSUBSCRIBE: UnsubscribeEvent,
    ClientEventKind.JOIN_ROOM: JoinRoomEvent,
    ClientEventKind.LEAVE_ROOM: LeaveRoomEvent,
    ClientEventKind.GET_STATS: GetStatsEvent,
    ClientEventKind.PING: PingEvent,
    ClientEventKind.PONG: PongEvent,
}


def parse_client_frame(raw: str | bytes) -> ClientEvent:
    """
    Decode a raw client frame into a typed event.

    Raises:
        UnknownEvent: "Invalid message format" for undecodable frames,
            "Unknown event: <name>" for names outside ClientEventKind, or a
            payload-specific message when required fields are missing.
    """
    try:
        message = json.loads(raw)
    except (ValueError, TypeError):
        raise UnknownEvent(UnknownEvent.INVALID_FORMAT)

    if not isinstance(message, dict):
        raise UnknownEvent(UnknownEvent.INVALID_FORMAT)

    name = message.get("event")
    if not isinstance(name, str) or not name:
        raise UnknownEvent(UnknownEvent.INVALID_FORMAT)

    try:
        kind = ClientEventKind(name)
    except ValueError:
        raise UnknownEvent.unknown_name(name[:64])

    return _EVENT_TYPES[kind].from_data(message.get("data"))
