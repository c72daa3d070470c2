"""miIO wire protocol: frame codec and tolerant payload decoding."""

from .packet import (
    HEADER_SIZE,
    MAGIC,
    HandshakeReply,
    Header,
    decode_handshake_reply,
    decode_header,
    decode_response,
    encode_handshake,
    encode_request,
    is_handshake,
)

__all__ = [
    "HEADER_SIZE",
    "MAGIC",
    "Header",
    "HandshakeReply",
    "decode_header",
    "decode_handshake_reply",
    "decode_response",
    "encode_handshake",
    "encode_request",
    "is_handshake",
]
