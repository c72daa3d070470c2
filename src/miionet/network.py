"""Entry point for talking to devices over one shared UDP endpoint."""

import logging

from .core.config import Config, get_config
from .core.utils import resolve_target, validate_ip
from .session import DeviceSession
from .tokens import TokenStore
from .transport import UdpTransport

logger = logging.getLogger(__name__)


class MiioNetwork:
    """Owns the UDP transport, the token store and one session per device address.

    Example:
        >>> async with MiioNetwork() as network:
        ...     session = await network.connect("192.168.1.100", "0123456789abcdef0123456789abcdef")
        ...     await session.call("get_prop", ["power", "bright"])
    """

    def __init__(
        self,
        config: Config | None = None,
        token_store: TokenStore | None = None,
        transport: UdpTransport | None = None,
    ):
        self.config = config or get_config()
        self.token_store = token_store or TokenStore.from_config(self.config.tokens)
        self.transport = transport or UdpTransport()
        self._sessions: dict[str, DeviceSession] = {}

    async def __aenter__(self) -> "MiioNetwork":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    async def open(self) -> None:
        await self.transport.open(self.config.network.local_port)

    def close(self) -> None:
        for session in self._sessions.values():
            session.close()
            self.transport.unregister(session.address)
        self._sessions.clear()
        self.transport.close()

    @property
    def sessions(self) -> list[DeviceSession]:
        return list(self._sessions.values())

    def session(
        self,
        address: str,
        token: str | bytes | None = None,
        device_id: int | None = None,
    ) -> DeviceSession:
        """Get or create the session for a device address.

        ``address`` must be an IPv4 literal; use ``resolve()`` for hostnames.

        Raises:
            ValidationError: If the address is not an IPv4 literal.
        """
        host = str(validate_ip(address))
        session = self._sessions.get(host)
        if session is None:
            session = DeviceSession(
                self.transport,
                host,
                port=self.config.network.port,
                device_id=device_id,
                token_store=self.token_store,
                config=self.config.session,
            )
            self._sessions[host] = session
            self.transport.register(host, session.handle_datagram)
            logger.debug("Created session for %s", host)

        if token is not None:
            session.set_token(token)
        return session

    async def resolve(self, address: str) -> str:
        """Resolve a hostname or IP string without blocking the event loop."""
        return await resolve_target(address)

    async def connect(self, address: str, token: str | bytes | None = None) -> DeviceSession:
        """Handshake with a device and validate its token.

        Raises:
            HandshakeTimeout: If the device does not answer the handshake.
            MissingToken: If no token is known for the device.
            ConnectionFailure: If the token seems to be wrong.
        """
        await self.open()
        session = self.session(await self.resolve(address), token)
        await session.handshake()
        await session.enrich()
        logger.info("Connected to %s (%s, id %s)", session.address, session.model, session.device_id)
        return session
