"""Inbound client events and outbound deliveries."""

from news_gateway.components.events.types import (
    ClientEvent,
    ClientEventKind,
    Delivery,
    Target,
    TargetKind,
    encode_frame,
    parse_client_frame,
)

__all__ = [
    "ClientEvent",
    "ClientEventKind",
    "Delivery",
    "Target",
    "TargetKind",
    "encode_frame",
    "parse_client_frame",
]
