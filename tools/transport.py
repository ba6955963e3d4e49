#!/usr/bin/env python3
"""
transport.py - Device transport contract and an in-memory device

The datalog and session logic never talk to hardware directly. They go
through a transport object that performs the request/response exchanges
with one device, one at a time. ``DeviceTransport`` describes what that
object must provide; ``InMemoryTransport`` is a scripted device used by
the tests.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Iterable, Optional, Protocol

from datalog_decoder import RawPacket
from session_tracker import ANONYMOUS_PROFILE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionInfo:
    """Session as reported by the device: the logged profile name."""
    name: str


class DatalogService(Protocol):
    async def get_packet_count(self) -> int: ...

    async def dequeue_one_packet(self) -> RawPacket: ...


class DeviceTransport(Protocol):
    datalog: DatalogService

    async def connect(self, config: Any) -> None: ...

    async def disconnect(self) -> None: ...

    def is_connected(self) -> bool: ...

    async def login(self, user: str, password: str) -> bool: ...

    async def logout(self) -> None: ...

    async def refresh_session_state(self) -> SessionInfo: ...

    async def get_serial_number(self) -> str: ...


class InMemoryDatalog:
    """Device-side datalog queue of an InMemoryTransport."""

    def __init__(self, device: 'InMemoryTransport'):
        self._device = device
        self.queue: Deque[RawPacket] = deque()
        self.fail_on_dequeue: Optional[int] = None  # 1-based dequeue call that fails
        self.dequeue_calls = 0

    async def get_packet_count(self) -> int:
        await self._device._exchange('get_packet_count')
        return len(self.queue)

    async def dequeue_one_packet(self) -> RawPacket:
        await self._device._exchange('dequeue_one_packet')
        self.dequeue_calls += 1
        if self.fail_on_dequeue is not None and self.dequeue_calls == self.fail_on_dequeue:
            raise IOError(f"Device did not answer dequeue #{self.dequeue_calls}")
        if not self.queue:
            raise IOError("Datalog queue is empty")
        return self.queue.popleft()


class InMemoryTransport:
    """
    Scripted device for tests.

    Holds a user table, a datalog queue and the current session profile.
    Setting ``failures['<operation>']`` to an exception makes the next
    call of that operation raise it.
    """

    def __init__(self, users: Optional[Dict[str, str]] = None,
                 packets: Iterable[RawPacket] = (),
                 serial_number: str = 'SN-0000',
                 session_name: str = ANONYMOUS_PROFILE,
                 latency: float = 0.0):
        self.users = dict(users or {})
        self.serial_number = serial_number
        self.session_name = session_name
        self.latency = latency
        self.connected = False
        self.config: Any = None
        self.failures: Dict[str, BaseException] = {}
        self.datalog = InMemoryDatalog(self)
        self.datalog.queue.extend(packets)

    async def _exchange(self, operation: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        failure = self.failures.pop(operation, None)
        if failure is not None:
            raise failure
        if operation != 'connect' and not self.connected:
            raise ConnectionError(f"{operation}: device not connected")

    async def connect(self, config: Any = None) -> None:
        await self._exchange('connect')
        self.config = config
        self.connected = True
        logger.debug("In-memory device connected (config=%r)", config)

    async def disconnect(self) -> None:
        await self._exchange('disconnect')
        self.connected = False

    def is_connected(self) -> bool:
        return self.connected

    async def login(self, user: str, password: str) -> bool:
        await self._exchange('login')
        if self.users.get(user) != password:
            return False
        self.session_name = user
        return True

    async def logout(self) -> None:
        await self._exchange('logout')
        self.session_name = ANONYMOUS_PROFILE

    async def refresh_session_state(self) -> SessionInfo:
        await self._exchange('refresh_session_state')
        return SessionInfo(name=self.session_name)

    async def get_serial_number(self) -> str:
        await self._exchange('get_serial_number')
        return self.serial_number
