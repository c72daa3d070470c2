"""Device session: handshake, token resolution and call correlation.

A session owns everything needed to talk to one device address: the current
token, the device stamp learned from the last handshake, the request id
counter and the table of calls waiting for a reply. Replies are matched to
calls purely by id; arrival order does not matter.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .core.config import MIIO_PORT, SessionConfig
from .core.exceptions import (
    CallTimeout,
    ConnectionFailure,
    DecryptFailure,
    HandshakeTimeout,
    MiioError,
    MissingToken,
    NoIdentifier,
    RemoteError,
    TokenStoreError,
    ValidationError,
)
from .core.utils import parse_token
from .protocol import packet
from .protocol.packet import HandshakeReply
from .tokens import TokenStore
from .transport import Transport

logger = logging.getLogger(__name__)

MAX_REQUEST_ID = 10000


class _NoParams:
    def __repr__(self) -> str:
        return "NO_PARAMS"


NO_PARAMS = _NoParams()
"""Pass as ``params`` to send a request without a ``params`` member."""


class HandshakeState(Enum):
    """Handshake progress of a session."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class TokenSource(Enum):
    """Where the current token came from."""

    MANUAL = "manual"
    STORED = "stored"
    DEVICE = "device"


def _invalid_argument(expected: str) -> Callable[[str, str], str]:
    def handler(method: str, message: str) -> str:
        return "Invalid argument" if message == expected else message

    return handler


ERRORS: dict[int, Callable[[str, str], str]] = {
    -5001: _invalid_argument("invalid_arg"),
    -5005: _invalid_argument("params error"),
    -10000: lambda method, message: f"Method `{method}` is not supported",
}


def remote_error(method: str, error: Any) -> RemoteError:
    """Translate a device error object into a RemoteError."""
    if isinstance(error, dict):
        code = error.get("code")
        message = str(error.get("message") or "")
    else:
        code = None
        message = "" if error is None else str(error)

    try:
        handler = ERRORS.get(int(code)) if code is not None else None
    except (TypeError, ValueError):
        handler = None

    if handler is not None:
        text = handler(method, message)
    else:
        text = message or f"Device returned an error for {method}"

    return RemoteError(text, code=code, method=method)


@dataclass
class PendingCall:
    """A call waiting for its reply."""

    method: str
    params: Any
    future: asyncio.Future
    retries_left: int
    request_id: int = 0
    attempts: int = 0

    @property
    def resolved(self) -> bool:
        return self.future.done()


class DeviceSession:
    """Protocol state for a single device address."""

    def __init__(
        self,
        transport: Transport,
        address: str,
        port: int = MIIO_PORT,
        device_id: int | None = None,
        token: str | bytes | None = None,
        token_store: TokenStore | None = None,
        config: SessionConfig | None = None,
    ):
        """Initialize the session.

        Args:
            transport: Sends datagrams; replies are fed back via handle_datagram().
            address: Device IP address.
            port: Device UDP port.
            device_id: Device identifier if already known.
            token: Manually supplied token (hex string or 16 bytes).
            token_store: Store consulted when no manual token is set.
            config: Timeouts and retry settings.
        """
        self.transport = transport
        self.address = address
        self.port = port
        self.device_id = device_id
        self.token_store = token_store
        self.config = config or SessionConfig()

        self.model: str | None = None
        self.info: dict | None = None
        self.enriched = False
        self.token_changed = False
        self.token_source: TokenSource | None = None

        self._token: bytes | None = None
        self._server_stamp = 0
        self._stamp_time: float | None = None

        self._last_id = 0
        self._pending: dict[int, PendingCall] = {}

        self._handshake_task: asyncio.Task | None = None
        self._handshake_reply: asyncio.Future | None = None
        self._enrich_task: asyncio.Task | None = None
        self._decrypt_failure: tuple[float, DecryptFailure] | None = None

        if token is not None:
            self.set_token(token)

    def __repr__(self) -> str:
        return f"DeviceSession({self.address}:{self.port}, id={self.device_id})"

    @property
    def token(self) -> bytes | None:
        return self._token

    @property
    def auto_token(self) -> bool:
        """True when the token was advertised by the device itself."""
        return self.token_source is TokenSource.DEVICE

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def needs_handshake(self) -> bool:
        if self._token is None or self._stamp_time is None:
            return True
        return time.monotonic() - self._stamp_time > self.config.handshake_refresh

    @property
    def handshake_state(self) -> HandshakeState:
        if self._handshake_task is not None:
            return HandshakeState.IN_PROGRESS
        if self.needs_handshake:
            return HandshakeState.IDLE
        return HandshakeState.COMPLETE

    def set_token(self, token: str | bytes) -> None:
        """Use a manually supplied token. It takes precedence over any other source."""
        self._replace_token(parse_token(token), TokenSource.MANUAL)
        logger.debug("Using manual token for %s", self.address)

    def _replace_token(self, token: bytes, source: TokenSource) -> None:
        if token != self._token:
            self.token_changed = True
        self._token = token
        self.token_source = source

    # Handshake

    async def handshake(self) -> bytes:
        """Make sure the device id, stamp and token are known.

        Concurrent callers share a single in-flight handshake.

        Raises:
            HandshakeTimeout: If the device did not reply in time.
            MissingToken: If neither the device nor the token store supplied a token.
        """
        if not self.needs_handshake:
            return self._token

        if self._handshake_task is None:
            self._handshake_task = asyncio.ensure_future(self._run_handshake())
        return await asyncio.shield(self._handshake_task)

    async def _run_handshake(self) -> bytes:
        loop = asyncio.get_running_loop()
        self._handshake_reply = loop.create_future()
        try:
            logger.debug("-> Handshake to %s", self.address)
            await self.transport.send(packet.encode_handshake(), self.address, self.port)
            try:
                reply = await asyncio.wait_for(self._handshake_reply, self.config.handshake_timeout)
            except asyncio.TimeoutError:
                raise HandshakeTimeout(self.address, self.config.handshake_timeout) from None

            self._apply_handshake_reply(reply)
            if self._token is None:
                await self._load_stored_token()
            if self._token is None and reply.token is not None:
                self._replace_token(reply.token, TokenSource.DEVICE)
                logger.debug("Device %s advertised its token", self.device_id)
            if self._token is None:
                raise MissingToken("Could not connect to device, token needs to be specified")
            return self._token
        finally:
            self._handshake_reply = None
            self._handshake_task = None

    def _apply_handshake_reply(self, reply: HandshakeReply) -> None:
        if reply.device_id != self.device_id:
            logger.debug(
                "Identifier of device %s updated: %s -> %s",
                self.address,
                self.device_id,
                reply.device_id,
            )
            self.device_id = reply.device_id
        self._server_stamp = reply.stamp
        self._stamp_time = time.monotonic()

    def _stamp(self) -> int:
        if self._stamp_time is None:
            return 0
        elapsed = int(time.monotonic() - self._stamp_time)
        return (self._server_stamp + elapsed) & 0xFFFFFFFF

    async def _load_stored_token(self) -> None:
        if self.token_store is None or self.device_id is None:
            return

        stored = await self.token_store.get(self.device_id)
        if not stored:
            return
        try:
            token = parse_token(stored)
        except ValidationError as e:
            logger.warning("Ignoring stored token for device %s: %s", self.device_id, e)
            return

        logger.debug("Loaded token for device %s from storage", self.device_id)
        self._replace_token(token, TokenSource.STORED)

    # Enrichment

    async def enrich(self) -> None:
        """Validate the token and learn the model by calling ``miIO.info``.

        Raises:
            NoIdentifier: If no handshake has revealed the device id yet.
            MissingToken: If no token could be resolved.
            ConnectionFailure: If a token is present but the device did not answer.
        """
        if self.device_id is None:
            raise NoIdentifier("Device has no identifier yet, handshake needed")

        if self.model and not self.token_changed and self._token is not None:
            return

        if self._enrich_task is None:
            self._enrich_task = asyncio.ensure_future(self._run_enrich())
        await asyncio.shield(self._enrich_task)

    async def _resolve_token(self) -> None:
        if self._token is None:
            logger.debug("Loading token from storage, device hides token and no token set via options")
            await self._load_stored_token()
        if self._token is None:
            raise MissingToken("Could not connect to device, token needs to be specified")
        if self.auto_token:
            logger.debug("Using automatic token for device %s", self.device_id)

    async def _run_enrich(self) -> None:
        try:
            await self._resolve_token()
            info = await self.call("miIO.info")
        except MissingToken:
            self.enriched = True
            raise
        except (MiioError, OSError) as e:
            self.enriched = True
            if self._token is not None:
                raise ConnectionFailure(
                    "Could not connect to device, token might be wrong", str(e)
                ) from e
            raise MissingToken("Could not connect to device, token needs to be specified") from e
        finally:
            self._enrich_task = None

        self.enriched = True
        self.info = info if isinstance(info, dict) else None
        self.model = self.info.get("model") if self.info else None
        self.token_changed = False
        logger.debug("Device %s is %s", self.device_id, self.model)

        if self.auto_token and self.token_store is not None:
            try:
                await self.token_store.update(self.device_id, self._token.hex())
            except TokenStoreError as e:
                logger.warning("Could not persist token for device %s: %s", self.device_id, e)

    # Calls

    async def call(
        self,
        method: str,
        params: Any = None,
        *,
        retries: int | None = None,
        sid: str | None = None,
    ) -> Any:
        """Call a method on the device and return the ``result`` of its reply.

        Args:
            method: miIO method name, e.g. ``get_prop``.
            params: Method parameters; None sends ``[]``, NO_PARAMS omits them.
            retries: Extra attempts after the first one (default from config).
            sid: Sub-device identifier for gateways.

        Raises:
            MissingToken: If no token is known; nothing is sent in that case.
            CallTimeout: If every attempt went unanswered.
            DecryptFailure: If every attempt went unanswered and the device sent
                frames that could not be decrypted.
            RemoteError: If the device replied with an error.
            TransportError: If the datagram could not be sent.
        """
        request: dict[str, Any] = {"method": method}
        if params is not NO_PARAMS:
            request["params"] = [] if params is None else params
        if sid:
            request["sid"] = sid

        if self._token is None and self.device_id is not None:
            await self._load_stored_token()
            if self._token is None:
                raise MissingToken(
                    "Could not connect to device, token needs to be specified",
                    f"no token stored for device {self.device_id}",
                )

        loop = asyncio.get_running_loop()
        pending = PendingCall(
            method=method,
            params=params,
            future=loop.create_future(),
            retries_left=self.config.retries if retries is None else retries,
        )
        started = time.monotonic()

        try:
            while True:
                pending.attempts += 1
                try:
                    token = await self.handshake()
                except HandshakeTimeout:
                    logger.debug("<- Handshake with %s timed out", self.address)
                else:
                    self._assign_id(pending)
                    request["id"] = pending.request_id
                    logger.debug("-> (%d) %s", pending.retries_left, request)
                    data = packet.encode_request(request, token, self.device_id or 0, self._stamp())
                    await self.transport.send(data, self.address, self.port)

                    try:
                        return await asyncio.wait_for(
                            asyncio.shield(pending.future), self.config.call_timeout
                        )
                    except asyncio.TimeoutError:
                        if pending.resolved:
                            return pending.future.result()

                if pending.retries_left <= 0:
                    raise self._exhausted(pending, started)
                pending.retries_left -= 1
        finally:
            if self._pending.get(pending.request_id) is pending:
                del self._pending[pending.request_id]
            if not pending.future.done():
                pending.future.cancel()

    def _assign_id(self, pending: PendingCall) -> None:
        if pending.request_id:
            # retry: skip past ids a straggling reply could still carry
            self._pending.pop(pending.request_id, None)
            next_id = self._last_id + self.config.retry_id_jump
        else:
            next_id = self._last_id + 1

        for _ in range(MAX_REQUEST_ID):
            if next_id >= MAX_REQUEST_ID:
                next_id = 1
            if next_id not in self._pending:
                break
            next_id += 1

        self._last_id = next_id
        pending.request_id = next_id
        self._pending[next_id] = pending

    def _exhausted(self, pending: PendingCall, started: float) -> MiioError:
        if self._decrypt_failure is not None:
            seen_at, error = self._decrypt_failure
            if seen_at >= started:
                return error
        return CallTimeout(pending.method, pending.attempts)

    # Inbound

    def handle_datagram(self, data: bytes) -> None:
        """Process a datagram received from this session's address."""
        try:
            header = packet.decode_header(data)
        except MiioError as e:
            logger.debug("<- Unable to parse packet from %s: %s", self.address, e)
            return

        if header.is_handshake:
            reply = packet.decode_handshake_reply(data)
            logger.debug("<- Handshake reply from %s, device %s", self.address, reply.device_id)
            if self._handshake_reply is not None and not self._handshake_reply.done():
                self._handshake_reply.set_result(reply)
            return

        try:
            message = packet.decode_response(data, self._token)
        except DecryptFailure as e:
            logger.debug("<- Unable to decrypt packet from %s: %s", self.address, e)
            self._decrypt_failure = (time.monotonic(), e)
            return
        except MiioError as e:
            logger.debug("<- Invalid message from %s: %s", self.address, e)
            return

        self._dispatch(message)

    def _dispatch(self, message: Any) -> None:
        logger.debug("<- Message: %s", message)
        if not isinstance(message, dict):
            return

        request_id = message.get("id")
        pending = self._pending.get(request_id) if isinstance(request_id, int) else None
        if pending is None or pending.resolved:
            logger.debug("<- No pending call for id %s", request_id)
            return

        del self._pending[request_id]
        if "result" in message:
            pending.future.set_result(message["result"])
        else:
            pending.future.set_exception(remote_error(pending.method, message.get("error")))

    def close(self) -> None:
        """Abort outstanding calls and any in-flight handshake."""
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.cancel()
        self._pending.clear()
        for task in (self._handshake_task, self._enrich_task):
            if task is not None:
                task.cancel()
