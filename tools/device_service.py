#!/usr/bin/env python3
"""
device_service.py - One connected device as seen by the UI layer

Wraps a device transport with session tracking, datalog retrieval and
the connected/disconnected/logged-in/logged-out notifications.

Usage:
    bus = EventBus()
    bus.subscribe('logged-in', lambda profile: print('hello', profile))

    service = DeviceService(lambda: InMemoryTransport(users={'admin': 'admin'}),
                            events=bus)
    await service.init(config)
    await service.login('admin', 'admin')
    bundles = await service.get_datalog()
"""

import logging
from typing import Any, Callable, List, Optional

from datalog_decoder import DatalogDecoder, DecodedBundle, DecodePolicy, RawPacket
from datalog_errors import (
    ConnectError, DatalogError, DeviceNotInitialized, transport_errors,
)
from datalog_fetch import DatalogFetcher, host_time_ms
from notifications import CONNECTED, DISCONNECTED, EventBus, EventSink
from session_tracker import SessionState, SessionTracker
from variable_registry import DEFAULT_REGISTRY, VariableRegistry

logger = logging.getLogger(__name__)


class DeviceService:
    """
    Facade over one device transport.

    Args:
        transport_factory: Creates a fresh transport on each init()
        registry: Variable registry for datalog decoding
        events: Sink for connected/disconnected/logged-in/logged-out
        policy: Datalog decode policy
        clock: Host time in epoch milliseconds
    """

    def __init__(self, transport_factory: Callable[[], Any],
                 registry: VariableRegistry = DEFAULT_REGISTRY,
                 events: Optional[EventSink] = None,
                 policy: DecodePolicy = DecodePolicy.FAIL_FAST,
                 clock: Callable[[], float] = host_time_ms):
        self.transport_factory = transport_factory
        self.events = events if events is not None else EventBus()
        self.decoder = DatalogDecoder(registry, policy=policy)
        self.clock = clock

        self.device: Any = None
        self.tracker: Optional[SessionTracker] = None
        self.is_ready = False

        self.datalog_count = 0
        self.datalog_packets: List[RawPacket] = []
        self.parsed_datalog_packets: List[DecodedBundle] = []
        self.time_offset: Optional[float] = None

    @property
    def session(self) -> SessionState:
        if self.tracker is None:
            return SessionState.disconnected()
        return self.tracker.state

    @property
    def is_logged(self) -> bool:
        return self.tracker is not None and self.tracker.is_logged

    def _require_device(self) -> Any:
        if self.device is None:
            raise DeviceNotInitialized("Device service has no transport; call init() first")
        return self.device

    async def init(self, config: Any = None) -> None:
        """Create the transport, connect and observe the initial session."""
        self.is_ready = False
        try:
            self.device = self.transport_factory()
            self.tracker = SessionTracker(self.device, self.events)
            logger.debug("Transport created, connecting")
            await self.device.connect(config)
            await self.tracker.refresh()
        except Exception as e:
            logger.error("Connection failed: %s", e)
            raise ConnectError(str(e) or type(e).__name__) from e

        self.is_ready = True
        logger.info("Connected, session %s", self.tracker.state)
        self.events(CONNECTED)

    async def disconnect(self) -> None:
        """Disconnect; ``disconnected`` is published even when this fails."""
        device = self._require_device()
        self.is_ready = False
        try:
            with transport_errors('disconnect'):
                await device.disconnect()
            await self.tracker.refresh()
        except DatalogError:
            self.events(DISCONNECTED)
            raise
        logger.info("Disconnected")
        self.events(DISCONNECTED)

    def clear(self) -> None:
        """Drop the transport; init() must run again before further use."""
        self.is_ready = False
        self.device = None
        self.tracker = None

    async def get_serial_number(self) -> str:
        device = self._require_device()
        with transport_errors('get_serial_number'):
            return await device.get_serial_number()

    async def login(self, user: str, password: str) -> bool:
        """Log in; the session is refreshed only when the device accepts."""
        device = self._require_device()
        logger.info("Trying to log in as %s", user)
        with transport_errors('login'):
            success = bool(await device.login(user, password))
        if success:
            await self.tracker.refresh()
        else:
            logger.info("Login rejected for %s", user)
        return success

    async def logout(self) -> bool:
        """Log out. Never raises; any failure is reported as False."""
        try:
            device = self._require_device()
            with transport_errors('logout'):
                await device.logout()
        except DatalogError as e:
            logger.warning("Logout failed: %s", e)
            return False

        try:
            await self.tracker.refresh()
        except DatalogError as e:
            logger.warning("Session refresh after logout failed: %s", e)
            return False
        return True

    async def get_datalog(self) -> List[DecodedBundle]:
        """Retrieve and decode the datalog queue."""
        device = self._require_device()
        logger.info("Getting datalog")
        fetcher = DatalogFetcher(device.datalog, self.decoder, clock=self.clock)
        try:
            bundles = await fetcher.fetch_all()
        except DatalogError:
            self.datalog_packets = []
            self.parsed_datalog_packets = []
            raise
        finally:
            self.datalog_count = fetcher.packet_count
            self.time_offset = fetcher.time_offset

        self.datalog_packets = fetcher.packets
        self.parsed_datalog_packets = bundles
        return bundles
