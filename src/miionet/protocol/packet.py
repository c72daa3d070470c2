"""miIO wire frame codec.

Frame layout (32-byte header, all integers big-endian):

- 0-1: Magic (0x2131)
- 2-3: Total length (header + encrypted body)
- 4-7: Unknown (0xffffffff in handshakes, 0 otherwise)
- 8-11: Device ID
- 12-15: Stamp
- 16-31: MD5 checksum, or the token in a handshake reply

The body is AES-128-CBC with PKCS7 padding. The key is MD5(token) and the
IV is MD5(key + token). The checksum is MD5 over the first 16 header bytes,
the token and the ciphertext.

All functions are pure: the token is passed in on every call.
"""

import hashlib
import hmac
import json
import re
import struct
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..core.exceptions import DecryptFailure, MalformedPacket, NoToken
from . import lenient_json

MAGIC = 0x2131
HEADER_SIZE = 32
UNKNOWN_HANDSHAKE = 0xFFFFFFFF

_PREFIX = struct.Struct(">HHIII")
_HEADER = struct.Struct(">HHIII16s")

# Keeps \n and \r, drops the rest of C0/C1 and DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x09\x0b\x0c\x0e-\x1f\x7f-\x9f]")

_HIDDEN_TOKENS = (b"\x00" * 16, b"\xff" * 16)


@dataclass(frozen=True)
class Header:
    """Decoded frame header."""

    length: int
    unknown: int
    device_id: int
    stamp: int
    checksum: bytes

    @property
    def is_handshake(self) -> bool:
        """Header-only frame (handshake request or reply)."""
        return self.length == HEADER_SIZE


@dataclass(frozen=True)
class HandshakeReply:
    """Contents of a device's handshake reply."""

    device_id: int
    stamp: int
    token: bytes | None


def _md5(data: bytes) -> bytes:
    return hashlib.md5(data).digest()


def _cipher(token: bytes) -> Cipher:
    key = _md5(token)
    iv = _md5(key + token)
    return Cipher(algorithms.AES(key), modes.CBC(iv))


def encrypt(plaintext: bytes, token: bytes) -> bytes:
    """Encrypt a payload with the token-derived key."""
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = _cipher(token).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt(ciphertext: bytes, token: bytes) -> bytes:
    """Decrypt a payload with the token-derived key.

    Raises:
        DecryptFailure: If the ciphertext is not block aligned or the padding is invalid.
    """
    if len(ciphertext) % 16:
        raise DecryptFailure("Ciphertext is not a multiple of the block size", str(len(ciphertext)))

    decryptor = _cipher(token).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptFailure("Invalid padding, token might be wrong", str(e)) from e


def checksum(prefix: bytes, token: bytes, ciphertext: bytes) -> bytes:
    """Token-keyed digest over the header prefix and the ciphertext."""
    return _md5(prefix + token + ciphertext)


def decode_header(data: bytes) -> Header:
    """Parse and validate the 32-byte header of a datagram.

    Raises:
        MalformedPacket: If the datagram is too short, has the wrong magic or a
            length field that disagrees with the datagram size.
    """
    if len(data) < HEADER_SIZE:
        raise MalformedPacket("Packet too short", f"{len(data)} bytes")

    magic, length, unknown, device_id, stamp, digest = _HEADER.unpack_from(data)
    if magic != MAGIC:
        raise MalformedPacket("Invalid magic", f"0x{magic:04x}")
    if length != len(data):
        raise MalformedPacket("Length mismatch", f"header says {length}, got {len(data)}")

    return Header(
        length=length,
        unknown=unknown,
        device_id=device_id,
        stamp=stamp,
        checksum=digest,
    )


def is_handshake(data: bytes) -> bool:
    """True for a valid header-only frame."""
    try:
        return decode_header(data).is_handshake
    except MalformedPacket:
        return False


def encode_handshake() -> bytes:
    """Build the fixed handshake ("hello") frame."""
    return _HEADER.pack(
        MAGIC,
        HEADER_SIZE,
        UNKNOWN_HANDSHAKE,
        UNKNOWN_HANDSHAKE,
        UNKNOWN_HANDSHAKE,
        b"\xff" * 16,
    )


def decode_handshake_reply(data: bytes) -> HandshakeReply:
    """Extract device id, stamp and advertised token from a handshake reply.

    Raises:
        MalformedPacket: If the datagram is not a header-only frame.
    """
    header = decode_header(data)
    if not header.is_handshake:
        raise MalformedPacket("Not a handshake reply", f"length {header.length}")

    token = None if header.checksum in _HIDDEN_TOKENS else header.checksum
    return HandshakeReply(device_id=header.device_id, stamp=header.stamp, token=token)


def encode_request(
    payload: Any,
    token: bytes | None,
    device_id: int = 0,
    stamp: int = 0,
) -> bytes:
    """Encrypt and frame a request.

    Args:
        payload: JSON-serializable object, or already encoded bytes.
        token: 16-byte device token.
        device_id: Device identifier written into the header.
        stamp: Device stamp written into the header.

    Raises:
        NoToken: If no token is given.
    """
    if not token:
        raise NoToken()

    if isinstance(payload, bytes):
        body = payload
    else:
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")

    ciphertext = encrypt(body, token)
    prefix = _PREFIX.pack(MAGIC, HEADER_SIZE + len(ciphertext), 0, device_id, stamp)
    return prefix + checksum(prefix, token, ciphertext) + ciphertext


def decode_payload(plaintext: bytes) -> Any:
    """Clean up and parse a decrypted payload."""
    if plaintext.endswith(b"\x00"):
        plaintext = plaintext[:-1]
    if not plaintext:
        return None

    text = _CONTROL_CHARS.sub("", plaintext.decode("utf-8", errors="replace"))
    return lenient_json.loads(text)


def decode_response(data: bytes, token: bytes | None) -> Any:
    """Verify, decrypt and parse a data frame.

    Returns:
        The decoded JSON value, or None for a header-only frame.

    Raises:
        MalformedPacket: If the header is invalid or the JSON is unrecoverable.
        NoToken: If the frame has a body but no token is known.
        DecryptFailure: If the checksum or the padding does not match the token.
    """
    header = decode_header(data)
    if header.is_handshake:
        return None
    if not token:
        raise NoToken("cannot decrypt data frame")

    ciphertext = data[HEADER_SIZE:]
    expected = checksum(data[:16], token, ciphertext)
    if not hmac.compare_digest(expected, header.checksum):
        raise DecryptFailure("Checksum mismatch, token might be wrong")

    return decode_payload(decrypt(ciphertext, token))
