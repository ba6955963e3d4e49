#!/usr/bin/env python3
"""
session_tracker.py - Authenticated-session state of a connected device

The device reports its session as a profile name, with the sentinel
"anonymous" meaning nobody is logged in. The tracker turns that into an
explicit state and publishes transitions:

    Authenticated(a) -> Anonymous          logged-out
    Anonymous        -> Authenticated(b)   logged-in(b)
    Authenticated(a) -> Authenticated(b)   logged-in(b)

The first observation after creation (or after the device was seen
disconnected) is adopted silently, so reconnecting to a device whose
session is already authenticated does not announce a login.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from datalog_errors import transport_errors
from notifications import LOGGED_IN, LOGGED_OUT, EventSink

logger = logging.getLogger(__name__)

ANONYMOUS_PROFILE = 'anonymous'


class SessionStatus(Enum):
    DISCONNECTED = 'disconnected'
    ANONYMOUS = 'anonymous'
    AUTHENTICATED = 'authenticated'


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus
    profile_name: Optional[str] = None

    @classmethod
    def disconnected(cls) -> 'SessionState':
        return cls(SessionStatus.DISCONNECTED)

    @classmethod
    def anonymous(cls) -> 'SessionState':
        return cls(SessionStatus.ANONYMOUS)

    @classmethod
    def authenticated(cls, profile_name: str) -> 'SessionState':
        if profile_name is None or profile_name == ANONYMOUS_PROFILE:
            raise ValueError(f"Not an authenticated profile name: {profile_name!r}")
        return cls(SessionStatus.AUTHENTICATED, profile_name)

    @classmethod
    def from_name(cls, name: str) -> 'SessionState':
        """Map a device-reported profile name to a state."""
        if name == ANONYMOUS_PROFILE:
            return cls.anonymous()
        return cls.authenticated(name)

    @property
    def name(self) -> Optional[str]:
        """Device-level profile name; None when disconnected."""
        if self.status == SessionStatus.AUTHENTICATED:
            return self.profile_name
        if self.status == SessionStatus.ANONYMOUS:
            return ANONYMOUS_PROFILE
        return None

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED

    def __str__(self) -> str:
        if self.is_authenticated:
            return f"Authenticated({self.profile_name})"
        return self.status.value.capitalize()


class SessionTracker:
    """
    Tracks one device's session and publishes logged-in/logged-out.

    Only the task driving the device should call :meth:`refresh`.
    """

    def __init__(self, transport: Any, sink: EventSink):
        self.transport = transport
        self.sink = sink
        self._state = SessionState.disconnected()
        self._observed = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_logged(self) -> bool:
        return self._state.is_authenticated

    def reset(self) -> None:
        """Forget every observation, as if freshly created."""
        self._state = SessionState.disconnected()
        self._observed = False

    def observe(self, new_state: SessionState) -> Optional[str]:
        """
        Apply one observed state and publish the resulting event.

        Returns: the published event name, or None
        """
        previous = self._state
        self._state = new_state

        if new_state.status == SessionStatus.DISCONNECTED:
            self._observed = False
            return None

        if not self._observed:
            self._observed = True
            logger.debug("Initial session state: %s", new_state)
            return None

        if new_state.status == SessionStatus.ANONYMOUS:
            if previous.is_authenticated:
                logger.info("Profile %s logged out", previous.profile_name)
                self.sink(LOGGED_OUT)
                return LOGGED_OUT
            return None

        if new_state.profile_name != previous.profile_name:
            logger.info("Profile %s logged in", new_state.profile_name)
            self.sink(LOGGED_IN, new_state.profile_name)
            return LOGGED_IN
        return None

    async def refresh(self) -> SessionState:
        """Query the transport and apply the fresh session state."""
        if not self.transport.is_connected():
            self.observe(SessionState.disconnected())
            return self._state

        with transport_errors('refresh_session_state'):
            session = await self.transport.refresh_session_state()
            name = session if isinstance(session, str) else session.name
            if not isinstance(name, str):
                raise TypeError(f"Session reply has no profile name: {session!r}")
        self.observe(SessionState.from_name(name))
        return self._state
