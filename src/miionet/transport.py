"""UDP transport shared by all device sessions."""

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from .core.exceptions import TransportError

logger = logging.getLogger(__name__)

DatagramHandler = Callable[[bytes], None]


class Transport(Protocol):
    """What a device session needs from the network."""

    async def send(self, data: bytes, host: str, port: int) -> None:
        """Send one datagram, raising on local failure."""
        ...


class UdpTransport(asyncio.DatagramProtocol):
    """Single asyncio UDP endpoint routing replies by sender address."""

    def __init__(self) -> None:
        self._transport: asyncio.DatagramTransport | None = None
        self._handlers: dict[str, DatagramHandler] = {}

    @property
    def is_open(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    async def open(self, local_port: int = 0, broadcast: bool = True) -> None:
        """Bind the endpoint."""
        if self.is_open:
            return

        loop = asyncio.get_running_loop()
        try:
            await loop.create_datagram_endpoint(
                lambda: self,
                local_addr=("0.0.0.0", local_port),
                allow_broadcast=broadcast,
            )
        except OSError as e:
            raise TransportError(f"Could not bind UDP port {local_port}", str(e)) from e

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def register(self, host: str, handler: DatagramHandler) -> None:
        """Deliver datagrams from ``host`` to ``handler``."""
        self._handlers[host] = handler

    def unregister(self, host: str) -> None:
        self._handlers.pop(host, None)

    async def send(self, data: bytes, host: str, port: int) -> None:
        if not self.is_open:
            raise TransportError("Transport is not open")
        try:
            self._transport.sendto(data, (host, port))
        except OSError as e:
            raise TransportError(f"Could not send to {host}:{port}", str(e)) from e

    # asyncio.DatagramProtocol callbacks

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]
        logger.debug("UDP endpoint open on %s", transport.get_extra_info("sockname"))

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        handler = self._handlers.get(addr[0])
        if handler is not None:
            handler(data)
        else:
            logger.debug("<- Dropping %d bytes from unknown sender %s", len(data), addr[0])

    def error_received(self, exc: Exception) -> None:
        logger.warning("UDP error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.warning("UDP endpoint closed: %s", exc)
        self._transport = None
