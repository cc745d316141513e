"""
Session and Room Registry.

Single synchronized owner of:
- user identity -> set of live sessions
- room name -> set of member user identities
- each session's local room set

Room membership is held per user: a user joins or leaves a room for all of
its sessions at once, and every session of a member user receives room
deliveries. Each session mirrors the rooms of its user, so for every live
session the rooms whose member set contains its user equal its room set.

All mutations run under one asyncio.Lock because the invariants span both
maps. Readers get snapshots, never the live containers. No external I/O is
ever awaited while the lock is held.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from news_gateway.components.core.constants import WSConstants
from news_gateway.components.events.types import Target, TargetKind

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


@dataclass(eq=False)
class Session:
    """
    One accepted, authenticated WebSocket connection.

    Hashes by identity so it can live in sets.

    Liveness:
        is_alive: a frame was received since the last heartbeat probe.
        is_dead: a send failed or timed out (slow consumer); the next
            heartbeat cycle evicts it.
        closed: removed from the registry; nothing is sent to it anymore.
    """

    websocket: "WebSocket"
    user_id: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    rooms: set[str] = field(default_factory=set)
    is_alive: bool = True
    is_dead: bool = False
    closed: bool = False
    connected_at: float = field(default_factory=time.time)

    def mark_alive(self) -> None:
        self.is_alive = True

    def mark_dead(self) -> None:
        self.is_dead = True

    @property
    def deliverable(self) -> bool:
        return not (self.closed or self.is_dead)

    def __repr__(self) -> str:
        return f"Session(user_id={self.user_id!r}, session_id={self.session_id[:8]!r})"


def validate_room_name(room: Any) -> str:
    """
    Validate a room name coming from a client or the control API.

    Raises:
        ValueError: If the name is not a non-empty string of bounded length.
    """
    if not isinstance(room, str) or not room.strip():
        raise ValueError("Room name must be a non-empty string")
    room = room.strip()
    if len(room) > WSConstants.MAX_ROOM_NAME_LENGTH:
        raise ValueError(
            f"Room name exceeds {WSConstants.MAX_ROOM_NAME_LENGTH} characters"
        )
    return room


class SessionRegistry:
    """
    Synchronized connection and room registry.

    Usage:
        registry = SessionRegistry()
        await registry.register("42", session)
        await registry.join("42", "news:sports")
        sessions = await registry.resolve(Target.room("news:sports"))
        await registry.remove(session)
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, set[Session]] = {}
        self._rooms: dict[str, set[str]] = {}

    # =========================================================================
    # Connection registry
    # =========================================================================

    async def register(self, user_id: str, session: Session) -> None:
        """
        Add a session to its user's set, creating the set if absent.

        A new session inherits the rooms its user already belongs to.
        """
        if session.user_id != user_id:
            raise ValueError("Session belongs to a different user")
        async with self._lock:
            if session.closed:
                raise ValueError("Cannot register a closed session")
            sessions = self._sessions.setdefault(user_id, set())
            sessions.add(session)
            session.rooms = {
                room for room, members in self._rooms.items() if user_id in members
            }
            logger.debug(
                "Session registered",
                user_id=user_id,
                session_id=session.session_id,
                user_sessions=len(sessions),
            )

    async def remove(self, session: Session) -> bool:
        """
        Remove a session. Idempotent.

        When it was the user's last session, the user entry is deleted and
        the user leaves every room recorded on the session.

        Returns:
            True if the session was registered.
        """
        async with self._lock:
            session.closed = True
            sessions = self._sessions.get(session.user_id)
            if sessions is None or session not in sessions:
                session.rooms = set()
                return False

            sessions.discard(session)
            if not sessions:
                del self._sessions[session.user_id]
                for room in list(session.rooms):
                    self._leave_locked(session.user_id, room)
            session.rooms = set()

            logger.debug(
                "Session removed",
                user_id=session.user_id,
                session_id=session.session_id,
                remaining_sessions=len(sessions),
            )
            return True

    async def sessions_for(self, user_id: str) -> set[Session]:
        """Snapshot of the live sessions of a user."""
        async with self._lock:
            return set(self._sessions.get(user_id, ()))

    async def all_sessions(self) -> list[Session]:
        """Snapshot of every registered session."""
        async with self._lock:
            return [s for sessions in self._sessions.values() for s in sessions]

    # =========================================================================
    # Room registry
    # =========================================================================

    async def join(self, user_id: str, room: str) -> bool:
        """
        Add a user to a room. Joining an already-joined room is a no-op.

        Returns:
            True if the user is a member afterwards, False if the user has no
            live session (nothing to deliver to, so nothing is recorded).
        """
        async with self._lock:
            sessions = self._sessions.get(user_id)
            if not sessions:
                return False
            members = self._rooms.setdefault(room, set())
            if user_id not in members:
                members.add(user_id)
                logger.debug("Room joined", user_id=user_id, room=room, members=len(members))
            for session in sessions:
                session.rooms.add(room)
            return True

    async def leave(self, user_id: str, room: str) -> bool:
        """
        Remove a user from a room; an emptied room is deleted.

        Returns:
            True if the user was a member.
        """
        async with self._lock:
            return self._leave_locked(user_id, room)

    def _leave_locked(self, user_id: str, room: str) -> bool:
        for session in self._sessions.get(user_id, ()):
            session.rooms.discard(room)

        members = self._rooms.get(room)
        if members is None or user_id not in members:
            return False
        members.discard(user_id)
        if not members:
            del self._rooms[room]
            logger.debug("Room deleted (no members)", room=room)
        return True

    async def members_of(self, room: str) -> set[str]:
        """Snapshot of the user identities in a room."""
        async with self._lock:
            return set(self._rooms.get(room, ()))

    async def rooms_for(self, user_id: str) -> set[str]:
        """Rooms the user currently belongs to."""
        async with self._lock:
            return {room for room, members in self._rooms.items() if user_id in members}

    # =========================================================================
    # Delivery resolution
    # =========================================================================

    async def resolve(self, target: Target) -> list[Session]:
        """
        Snapshot the deliverable sessions for a target.

        Closed and dead sessions are skipped. An empty list means the target
        has no live sessions.
        """
        async with self._lock:
            if target.kind is TargetKind.ALL:
                candidates = [s for sessions in self._sessions.values() for s in sessions]
            elif target.kind is TargetKind.USER:
                candidates = list(self._sessions.get(str(target.value), ()))
            else:
                candidates = [
                    s
                    for user_id in self._rooms.get(str(target.value), ())
                    for s in self._sessions.get(user_id, ())
                ]
            return [s for s in candidates if s.deliverable]

    # =========================================================================
    # Stats and diagnostics
    # =========================================================================

    @property
    def session_count(self) -> int:
        return sum(len(sessions) for sessions in self._sessions.values())

    @property
    def user_count(self) -> int:
        return len(self._sessions)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def get_stats(self) -> dict[str, int]:
        return {
            "sessions": self.session_count,
            "users": self.user_count,
            "rooms": self.room_count,
        }

    async def check_consistency(self) -> list[str]:
        """
        Verify the cross-map invariants.

        Returns:
            Human readable violations; empty when consistent.
        """
        problems: list[str] = []
        async with self._lock:
            for room, members in self._rooms.items():
                if not members:
                    problems.append(f"room {room!r} has no members")
                for user_id in members:
                    if user_id not in self._sessions:
                        problems.append(f"room {room!r} lists {user_id!r} without sessions")
            for user_id, sessions in self._sessions.items():
                if not sessions:
                    problems.append(f"user {user_id!r} has an empty session set")
                expected = {r for r, members in self._rooms.items() if user_id in members}
                for session in sessions:
                    if session.rooms != expected:
                        problems.append(
                            f"session {session.session_id[:8]} of {user_id!r} tracks "
                            f"{sorted(session.rooms)}, registry has {sorted(expected)}"
                        )
        return problems
