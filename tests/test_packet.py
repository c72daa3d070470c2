"""Tests for the miIO frame codec and tolerant JSON decoding."""

import struct

import pytest

from conftest import DEVICE_ID, OTHER_TOKEN, TOKEN, handshake_reply
from miionet.core.exceptions import DecryptFailure, MalformedPacket, MissingToken, NoToken
from miionet.protocol import lenient_json, packet


class TestHeader:
    """Tests for header parsing."""

    def test_handshake_frame(self):
        """Test the hello frame is the fixed 32-byte pattern."""
        frame = packet.encode_handshake()
        assert frame == bytes.fromhex("21310020") + b"\xff" * 28

    def test_is_handshake(self):
        """Test only valid header-only frames count as handshakes."""
        assert packet.is_handshake(packet.encode_handshake())
        assert packet.is_handshake(handshake_reply())
        assert not packet.is_handshake(packet.encode_request({"id": 1}, TOKEN))
        assert not packet.is_handshake(b"\x21\x31")

    def test_decode_request_header(self):
        """Test header fields of an encoded request."""
        frame = packet.encode_request({"id": 1, "method": "miIO.info"}, TOKEN, DEVICE_ID, 1234)

        header = packet.decode_header(frame)

        assert header.length == len(frame)
        assert header.device_id == DEVICE_ID
        assert header.stamp == 1234
        assert header.unknown == 0
        assert not header.is_handshake
        assert (len(frame) - packet.HEADER_SIZE) % 16 == 0

    def test_too_short(self):
        """Test datagrams shorter than a header are rejected."""
        with pytest.raises(MalformedPacket):
            packet.decode_header(b"\x21\x31\x00\x20")

    def test_invalid_magic(self):
        """Test wrong magic bytes are rejected."""
        with pytest.raises(MalformedPacket):
            packet.decode_header(b"\x00\x00" + b"\x00" * 30)

    def test_length_mismatch(self):
        """Test a length field that disagrees with the datagram size."""
        frame = packet.encode_request({"id": 1}, TOKEN)
        with pytest.raises(MalformedPacket):
            packet.decode_header(frame + b"\x00")


class TestHandshakeReply:
    """Tests for handshake reply parsing."""

    def test_hidden_token(self):
        """Test all-ff and all-zero tokens are reported as hidden."""
        assert packet.decode_handshake_reply(handshake_reply()).token is None
        zeros = struct.pack(">HHIII16s", 0x2131, 32, 0, DEVICE_ID, 5, b"\x00" * 16)
        assert packet.decode_handshake_reply(zeros).token is None

    def test_advertised_token(self):
        """Test a device that exposes its token."""
        reply = packet.decode_handshake_reply(handshake_reply(stamp=77, token=TOKEN))

        assert reply.device_id == DEVICE_ID
        assert reply.stamp == 77
        assert reply.token == TOKEN

    def test_data_frame_is_not_a_handshake(self):
        """Test a frame with a body is rejected as handshake reply."""
        frame = packet.encode_request({"id": 1}, TOKEN)
        with pytest.raises(MalformedPacket):
            packet.decode_handshake_reply(frame)


class TestRequestResponse:
    """Tests for encrypting and decrypting data frames."""

    def test_round_trip(self):
        """Test a reply encoded with the token decodes to the same object."""
        message = {"id": 7, "result": ["on", "80"]}
        frame = packet.encode_request(message, TOKEN, DEVICE_ID, 10)

        assert packet.decode_response(frame, TOKEN) == message

    def test_compact_json(self):
        """Test requests are serialized without whitespace."""
        frame = packet.encode_request({"id": 1, "params": [1, 2]}, TOKEN)
        body = packet.decrypt(frame[packet.HEADER_SIZE:], TOKEN)
        assert body == b'{"id":1,"params":[1,2]}'

    def test_wrong_token(self):
        """Test a frame sealed with another token fails the checksum."""
        frame = packet.encode_request({"id": 1}, OTHER_TOKEN)
        with pytest.raises(DecryptFailure):
            packet.decode_response(frame, TOKEN)

    def test_encode_without_token(self):
        """Test encoding needs a token."""
        with pytest.raises(NoToken) as exc_info:
            packet.encode_request({"id": 1}, None)
        assert isinstance(exc_info.value, MissingToken)
        assert exc_info.value.code == "missing-token"

    def test_decode_without_token(self):
        """Test decoding a data frame needs a token."""
        frame = packet.encode_request({"id": 1}, TOKEN)
        with pytest.raises(NoToken):
            packet.decode_response(frame, None)

    def test_header_only_response(self):
        """Test a header-only frame decodes to None."""
        assert packet.decode_response(handshake_reply(), TOKEN) is None

    def test_decrypt_misaligned(self):
        """Test ciphertext that is not block aligned."""
        with pytest.raises(DecryptFailure):
            packet.decrypt(b"\x00" * 15, TOKEN)

    def test_decrypt_bad_padding(self):
        """Test a block ending in a zero byte is not valid PKCS7."""
        encryptor = packet._cipher(TOKEN).encryptor()
        ciphertext = encryptor.update(b"\x00" * 16) + encryptor.finalize()
        with pytest.raises(DecryptFailure):
            packet.decrypt(ciphertext, TOKEN)

    def test_encrypt_decrypt(self):
        """Test the token-derived key and IV are symmetric."""
        assert packet.decrypt(packet.encrypt(b"hello", TOKEN), TOKEN) == b"hello"


class TestPayload:
    """Tests for cleaning up decrypted payloads."""

    def test_trailing_nul(self):
        """Test a single trailing NUL is dropped."""
        assert packet.decode_payload(b'{"id":1,"result":0}\x00') == {"id": 1, "result": 0}

    def test_empty(self):
        """Test empty payloads decode to None."""
        assert packet.decode_payload(b"") is None
        assert packet.decode_payload(b"\x00") is None

    def test_control_characters(self):
        """Test stray control characters are removed."""
        assert packet.decode_payload(b'{"id":2,\x01"result":\x7f"ok"}') == {"id": 2, "result": "ok"}

    def test_trailing_garbage(self):
        """Test bytes after the JSON document are ignored."""
        assert packet.decode_payload(b'{"id":3,"result":[]}xyz') == {"id": 3, "result": []}


class TestLenientJson:
    """Tests for tolerant JSON decoding."""

    def test_strict_json(self):
        """Test well-formed JSON."""
        assert lenient_json.loads('{"a": [1, 2]}') == {"a": [1, 2]}

    def test_empty_array_slots(self):
        """Test repeated, leading and trailing commas inside arrays."""
        assert lenient_json.loads("[1,,2]") == [1, 2]
        assert lenient_json.loads('{"result":[,"on",]}') == {"result": ["on"]}

    def test_unrecoverable(self):
        """Test text with no JSON value raises MalformedPacket."""
        with pytest.raises(MalformedPacket):
            lenient_json.loads("not json")
