"""
Control API.

Lets trusted internal services inject a delivery without a bus hop.
Authenticated with the ``X-Internal-Token`` header against INTERNAL_TOKEN.

A bad secret and a malformed body produce the same 403 response, so the
caller learns nothing about which check failed. The reason is logged.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shared.config.logging import audit_control_event, get_logger
from shared.security.auth import verify_internal_token
from shared.utils.exceptions import ForbiddenError
from news_gateway.components.connection.registry import validate_room_name
from news_gateway.components.events.types import Delivery, Target

if TYPE_CHECKING:
    from news_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)

INTERNAL_TOKEN_HEADER = "X-Internal-Token"

router = APIRouter(tags=["control"])


class BroadcastRequest(BaseModel):
    """Body of POST /broadcast. ``userId`` wins over ``room``; neither means everyone."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event: str = Field(min_length=1, max_length=64)
    data: Any = None
    room: str | None = None
    user_id: str | None = Field(default=None, alias="userId")

    @field_validator("user_id", mode="before")
    @classmethod
    def _coerce_user_id(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("userId must be a string or integer")
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("room", mode="before")
    @classmethod
    def _check_room(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return validate_room_name(value)

    def to_delivery(self) -> Delivery:
        if self.user_id:
            target = Target.user(self.user_id)
        elif self.room:
            target = Target.room(self.room)
        else:
            target = Target.everyone()
        return Delivery(self.event, self.data, target)


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("/broadcast")
async def broadcast(request: Request) -> dict[str, Any]:
    """
    Inject one delivery.

    Returns ``{"success": true, "delivered": <frames written>}``; any
    failure is ``403 {"error": "Forbidden"}``.
    """
    manager: "ConnectionManager" = request.app.state.manager

    if not verify_internal_token(request.headers.get(INTERNAL_TOKEN_HEADER)):
        manager.metrics.increment("event", "control_rejected")
        audit_control_event(False, reason="bad_secret", ip_address=_client_ip(request))
        raise ForbiddenError("bad_secret")

    try:
        payload = BroadcastRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        manager.metrics.increment("event", "control_rejected")
        audit_control_event(
            False,
            reason="malformed_body",
            ip_address=_client_ip(request),
            error=str(e)[:200],
        )
        raise ForbiddenError("malformed_body")

    delivery = payload.to_delivery()
    delivered = await manager.deliver(delivery)
    manager.metrics.increment("event", "control_accepted")
    audit_control_event(
        True,
        ip_address=_client_ip(request),
        event=delivery.event,
        target=str(delivery.target),
        delivered=delivered,
    )
    return {"success": True, "delivered": delivered}
