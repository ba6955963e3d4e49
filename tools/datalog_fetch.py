#!/usr/bin/env python3
"""
datalog_fetch.py - Retrieve and decode a device's datalog queue

Retrieval is all-or-nothing: the packet count is read, then packets are
dequeued one request at a time. Any transport failure aborts the fetch
and nothing is returned. Decoding starts only once every packet is in
hand.

The device clock is synchronised on the first packet of each fetch:

    time_offset_ms = host_now_ms - first_packet.send_time_s * 1000

and every bundle's log time becomes host-clock milliseconds.
"""

import logging
import time
from typing import Any, Callable, List, Optional

from datalog_decoder import DatalogDecoder, DecodedBundle, RawPacket
from datalog_errors import transport_errors

logger = logging.getLogger(__name__)


def host_time_ms() -> float:
    return time.time() * 1000.0


def compute_time_offset(send_time_s: float, now_ms: float) -> float:
    """Host-minus-device clock offset in milliseconds."""
    return now_ms - send_time_s * 1000


class DatalogFetcher:
    """
    Fetch loop over one transport's datalog service.

    ``clock`` returns host time in epoch milliseconds.
    """

    def __init__(self, datalog: Any, decoder: DatalogDecoder,
                 clock: Callable[[], float] = host_time_ms):
        self.datalog = datalog
        self.decoder = decoder
        self.clock = clock
        self.time_offset: Optional[float] = None
        self.packet_count = 0
        self.packets: List[RawPacket] = []

    async def retrieve_packets(self) -> List[RawPacket]:
        """Dequeue every queued packet; synchronise the clock on the first."""
        with transport_errors('get_packet_count'):
            count = await self.datalog.get_packet_count()
        logger.debug("Datalog holds %d packets", count)

        self.packet_count = count
        self.packets = []
        self.time_offset = None

        packets: List[RawPacket] = []
        for i in range(count):
            with transport_errors(f'dequeue_one_packet[{i}]'):
                packet = await self.datalog.dequeue_one_packet()
            packets.append(packet)
            if i == 0:
                self.time_offset = compute_time_offset(packet.send_time, self.clock())
                logger.debug("Clock offset %.0f ms from first packet", self.time_offset)

        self.packets = packets
        return packets

    async def fetch_all(self) -> List[DecodedBundle]:
        """Retrieve then decode the whole queue, in packet order."""
        packets = await self.retrieve_packets()
        if not packets:
            return []
        bundles = self.decoder.decode_all(packets, self.time_offset)
        logger.info("Fetched %d datalog bundles", len(bundles))
        return bundles
