"""Session registry for the SSE transport.

A session pairs one outbound event stream with the inbound ``/messages``
channel. Capacity is a setting (``MAX_SESSIONS``, default 1): opening a
session while at capacity preempts the oldest one, whose stream then ends.
Inbound messages that cannot be matched to a live session fail fast; they
are never queued.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from speech_relay.errors import NO_SESSION, TransportError

log = logging.getLogger(__name__)

_CLOSE = object()


@dataclass(slots=True, eq=False)
class Session:
    session_id: str
    endpoint: str
    connected_mono: float = field(default_factory=time.monotonic)
    closed: bool = False
    _outbox: asyncio.Queue = field(default_factory=asyncio.Queue, repr=False)

    def send(self, message: dict[str, Any]) -> bool:
        """Queue *message* for the stream. Returns False if the session is closed."""
        if self.closed:
            return False
        self._outbox.put_nowait(message)
        return True

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._outbox.put_nowait(_CLOSE)

    async def next_message(self, timeout_s: float | None = None) -> dict[str, Any] | None:
        """Wait for the next outbound message.

        Returns None once the session is closed. Raises ``asyncio.TimeoutError``
        when *timeout_s* elapses with nothing queued.
        """
        if timeout_s is None:
            item = await self._outbox.get()
        else:
            item = await asyncio.wait_for(self._outbox.get(), timeout=timeout_s)
        if item is _CLOSE:
            return None
        return item


class SessionRegistry:
    """Tracks live SSE sessions keyed by generated session id."""

    def __init__(self, max_sessions: int = 1) -> None:
        self._max_sessions = max(1, int(max_sessions))
        self._sessions: dict[str, Session] = {}
        self._opened = 0
        self._preempted = 0
        self._closed = 0
        self._lock = asyncio.Lock()

    @property
    def max_sessions(self) -> int:
        return self._max_sessions

    async def open(self, endpoint_base: str) -> Session:
        """Register a new session; preempt the oldest ones beyond capacity.

        The session's announced endpoint is ``endpoint_base?sessionId=<id>``.
        """
        session_id = uuid.uuid4().hex
        session = Session(
            session_id=session_id,
            endpoint=f"{endpoint_base}?sessionId={session_id}",
        )
        async with self._lock:
            while len(self._sessions) >= self._max_sessions:
                oldest_id = next(iter(self._sessions))
                oldest = self._sessions.pop(oldest_id)
                oldest.close()
                self._preempted += 1
                log.info(
                    "Session %s preempted by newer session %s", oldest_id, session_id
                )
            self._sessions[session_id] = session
            self._opened += 1
        log.info("Session %s opened (endpoint=%s)", session_id, session.endpoint)
        return session

    async def close(self, session: Session) -> None:
        async with self._lock:
            existing = self._sessions.get(session.session_id)
            if existing is session:
                del self._sessions[session.session_id]
                self._closed += 1
                log.info("Session %s closed", session.session_id)
        session.close()

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def latest(self) -> Session | None:
        if not self._sessions:
            return None
        return next(reversed(self._sessions.values()))

    def resolve(self, session_id: str | None) -> Session:
        """Pick the session an inbound message belongs to.

        Raises:
            TransportError: when no matching live session exists.
        """
        if session_id:
            session = self.get(session_id)
            if session is None or session.closed:
                raise TransportError(
                    f"Unknown or expired session: {session_id}",
                    code=NO_SESSION,
                    http_status=404,
                )
            return session
        session = self.latest()
        if session is None:
            raise TransportError(
                "SSE connection not established",
                code=NO_SESSION,
                http_status=503,
            )
        return session

    def snapshot(self) -> dict[str, Any]:
        return {
            "max_sessions": self._max_sessions,
            "active_sessions": len(self._sessions),
            "opened": self._opened,
            "preempted": self._preempted,
            "closed": self._closed,
        }
