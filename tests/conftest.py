"""Shared fixtures: an in-memory transport wired to a scripted device."""

import asyncio
import struct
from collections.abc import Callable

import pytest

from miionet.core.config import SessionConfig
from miionet.core.exceptions import DecryptFailure
from miionet.protocol import packet

TOKEN_HEX = "0123456789abcdef0123456789abcdef"
TOKEN = bytes.fromhex(TOKEN_HEX)
OTHER_TOKEN = bytes.fromhex("fedcba9876543210fedcba9876543210")
DEVICE_ID = 0x04D2A1F0
DEVICE_IP = "192.168.1.50"


def handshake_reply(device_id: int = DEVICE_ID, stamp: int = 1000, token: bytes | None = None) -> bytes:
    """Header-only reply as a device sends it after a hello."""
    return struct.pack(
        ">HHIII16s", packet.MAGIC, packet.HEADER_SIZE, 0, device_id, stamp, token or b"\xff" * 16
    )


class ScriptedDevice:
    """Fake device: answers handshakes and replies to requests via ``handler``.

    ``handler`` gets the decoded request and returns the reply object, or
    None to stay silent.
    """

    def __init__(
        self,
        token: bytes = TOKEN,
        device_id: int = DEVICE_ID,
        handler: Callable[[dict], dict | None] | None = None,
        answer_handshake: bool = True,
        advertise_token: bool = False,
        reply_token: bytes | None = None,
    ):
        self.token = token
        self.device_id = device_id
        self.handler = handler or (lambda request: {"id": request["id"], "result": ["ok"]})
        self.answer_handshake = answer_handshake
        self.advertise_token = advertise_token
        self.reply_token = reply_token or token
        self.requests: list[dict] = []

    def respond(self, data: bytes) -> bytes | None:
        header = packet.decode_header(data)
        if header.is_handshake:
            if not self.answer_handshake:
                return None
            return handshake_reply(
                self.device_id, token=self.token if self.advertise_token else None
            )

        try:
            request = packet.decode_response(data, self.token)
        except DecryptFailure:
            # real devices silently drop frames sealed with another token
            return None
        self.requests.append(request)
        reply = self.handler(request)
        if reply is None:
            return None
        return packet.encode_request(reply, self.reply_token, self.device_id, 1000)


class FakeTransport:
    """Records every datagram and feeds the device's answers back to the receiver."""

    def __init__(self, device: ScriptedDevice | None = None):
        self.device = device
        self.sent: list[tuple[bytes, str, int]] = []
        self.receiver: Callable[[bytes], None] | None = None
        self.is_open = False

    async def open(self, local_port: int = 0, broadcast: bool = True) -> None:
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    def register(self, host: str, handler: Callable[[bytes], None]) -> None:
        self.receiver = handler

    def unregister(self, host: str) -> None:
        self.receiver = None

    @property
    def handshakes(self) -> int:
        return sum(1 for data, _, _ in self.sent if packet.is_handshake(data))

    async def send(self, data: bytes, host: str, port: int) -> None:
        self.sent.append((data, host, port))
        if self.device is None or self.receiver is None:
            return
        reply = self.device.respond(data)
        if reply is not None:
            asyncio.get_running_loop().call_soon(self.receiver, reply)


@pytest.fixture
def fast_config():
    """Session settings with short timeouts."""
    return SessionConfig(handshake_timeout=0.05, call_timeout=0.05, retries=2)
