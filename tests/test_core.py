"""Tests for core module."""

import asyncio
import json
import socket
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from miionet.core.config import Config, DeviceEntry, SessionConfig, get_config, set_config
from miionet.core.exceptions import (
    CallTimeout,
    HandshakeTimeout,
    MiioError,
    RemoteError,
    ValidationError,
)
from miionet.core.utils import (
    format_mac,
    get_broadcast_addresses,
    parse_token,
    resolve_target,
    validate_ip,
    validate_token,
)


class TestConfig:
    """Test configuration management."""

    def test_default_config(self):
        """Test default configuration values."""
        config = Config()
        assert config.verbose is False
        assert config.network.port == 54321
        assert config.tokens.path == Path.home() / ".miionet" / "tokens.json"
        assert config.devices == []

    def test_session_config_defaults(self):
        """Test default session configuration."""
        config = SessionConfig()
        assert config.handshake_timeout == 2.0
        assert config.call_timeout == 2.0
        assert config.retries == 5
        assert config.retry_id_jump == 100

    def test_from_missing_file(self, tmp_path):
        """Test a missing file gives defaults."""
        config = Config.from_file(tmp_path / "absent.json")
        assert config.session.retries == 5

    def test_from_file(self, tmp_path):
        """Test loading sections and devices from JSON."""
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "session": {"retries": 2, "call_timeout": 0.5, "bogus": 1},
                    "tokens": {"path": str(tmp_path / "tokens.json")},
                    "devices": [
                        {"name": "Ceiling", "address": "192.168.1.20", "type": "ct_moon_light"},
                        {"address": "192.168.1.21"},
                    ],
                }
            )
        )

        config = Config.from_file(path)

        assert config.session.retries == 2
        assert config.session.call_timeout == 0.5
        assert not hasattr(config.session, "bogus")
        assert config.tokens.path == tmp_path / "tokens.json"
        assert config.devices[0] == DeviceEntry("Ceiling", "192.168.1.20", None, "ct_moon_light")
        assert config.devices[1].name == "192.168.1.21"
        assert config.devices[1].type == "light"

    def test_save_and_reload(self, tmp_path):
        """Test a saved configuration loads back unchanged."""
        config = Config()
        config.session.retries = 1
        config.tokens.path = tmp_path / "tokens.json"
        config.devices.append(DeviceEntry("Lamp", "192.168.1.30", "ab" * 16, "color_light"))
        path = tmp_path / "out" / "config.json"

        config.save(path)
        loaded = Config.from_file(path)

        assert loaded.session.retries == 1
        assert loaded.tokens.path == tmp_path / "tokens.json"
        assert loaded.devices == config.devices

    def test_global_config(self):
        """Test set_config replaces the process-wide instance."""
        config = Config(verbose=True)
        set_config(config)
        assert get_config() is config


class TestValidation:
    """Test input validation functions."""

    def test_validate_ip_valid(self):
        """Test valid IP addresses."""
        assert str(validate_ip("192.168.1.1")) == "192.168.1.1"
        assert str(validate_ip("10.0.0.1")) == "10.0.0.1"

    def test_validate_ip_invalid(self):
        """Test invalid IP addresses."""
        with pytest.raises(ValidationError):
            validate_ip("256.1.1.1")
        with pytest.raises(ValidationError):
            validate_ip("not.an.ip")
        with pytest.raises(ValidationError):
            validate_ip("::1")

    @pytest.mark.asyncio
    async def test_resolve_target_ip(self):
        """Test an IP resolves to itself without a lookup."""
        loop = asyncio.get_running_loop()
        with patch.object(loop, "getaddrinfo", AsyncMock()) as mock_lookup:
            assert await resolve_target("192.168.1.5") == "192.168.1.5"
        mock_lookup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolve_target_hostname(self):
        """Test a hostname is looked up through the event loop."""
        loop = asyncio.get_running_loop()
        infos = [(socket.AF_INET, socket.SOCK_DGRAM, 17, "", ("192.168.1.77", 0))]
        with patch.object(loop, "getaddrinfo", AsyncMock(return_value=infos)) as mock_lookup:
            assert await resolve_target("lamp.local") == "192.168.1.77"
        mock_lookup.assert_awaited_once_with(
            "lamp.local", None, family=socket.AF_INET, type=socket.SOCK_DGRAM
        )

    @pytest.mark.asyncio
    async def test_resolve_target_unknown_host(self):
        """Test an unresolvable hostname."""
        loop = asyncio.get_running_loop()
        lookup = AsyncMock(side_effect=socket.gaierror("no such host"))
        with patch.object(loop, "getaddrinfo", lookup):
            with pytest.raises(ValidationError):
                await resolve_target("lamp.invalid")

    def test_validate_token(self):
        """Test token format validation."""
        assert validate_token("0123456789abcdef0123456789ABCDEF")
        assert not validate_token("0123")
        assert not validate_token("z" * 32)
        assert not validate_token("")

    def test_parse_token(self):
        """Test tokens from hex strings and bytes."""
        assert parse_token(" " + "ab" * 16 + "\n") == b"\xab" * 16
        assert parse_token(b"\x01" * 16) == b"\x01" * 16

    def test_parse_token_invalid(self):
        """Test malformed tokens are rejected."""
        with pytest.raises(ValidationError):
            parse_token("abc")
        with pytest.raises(ValidationError):
            parse_token(b"\x01" * 8)


class TestFormatting:
    """Test formatting functions."""

    def test_format_mac_colons(self):
        """Test MAC address with colons."""
        assert format_mac("aa:bb:cc:dd:ee:ff") == "aa:bb:cc:dd:ee:ff"

    def test_format_mac_dashes(self):
        """Test MAC address with dashes."""
        assert format_mac("aa-bb-cc-dd-ee-ff") == "aa:bb:cc:dd:ee:ff"

    def test_format_mac_uppercase(self):
        """Test uppercase MAC address."""
        assert format_mac("AA:BB:CC:DD:EE:FF") == "aa:bb:cc:dd:ee:ff"


class TestBroadcastAddresses:
    """Test broadcast address discovery."""

    @patch("miionet.core.utils.psutil")
    def test_interfaces(self, mock_psutil):
        """Test broadcast addresses are derived from interface netmasks."""
        mock_psutil.net_if_stats.return_value = {
            "eth0": MagicMock(isup=True),
            "wlan0": MagicMock(isup=False),
        }
        mock_psutil.net_if_addrs.return_value = {
            "lo": [MagicMock(family=socket.AF_INET, address="127.0.0.1", netmask="255.0.0.0", broadcast=None)],
            "eth0": [
                MagicMock(family=socket.AF_INET, address="192.168.1.10", netmask="255.255.255.0", broadcast=None),
                MagicMock(family=socket.AF_INET6, address="fe80::1", netmask=None, broadcast=None),
            ],
            "wlan0": [
                MagicMock(family=socket.AF_INET, address="10.0.0.5", netmask="255.0.0.0", broadcast="10.255.255.255"),
            ],
        }

        assert get_broadcast_addresses() == ["192.168.1.255"]

    @patch("miionet.core.utils.psutil")
    def test_fallback(self, mock_psutil):
        """Test the limited broadcast address is used without interfaces."""
        mock_psutil.net_if_stats.return_value = {}
        mock_psutil.net_if_addrs.return_value = {}

        assert get_broadcast_addresses() == ["255.255.255.255"]


class TestExceptions:
    """Test custom exceptions."""

    def test_base_exception(self):
        """Test base MiioError."""
        err = MiioError("Test error", "Details")
        assert str(err) == "Test error: Details"
        assert err.code == "error"

    def test_timeouts_share_code(self):
        """Test both timeout kinds report the same code."""
        assert HandshakeTimeout("192.168.1.2", 2.0).code == "timeout"
        err = CallTimeout("get_prop", 6)
        assert err.code == "timeout"
        assert str(err) == "Call to device timed out: get_prop: no reply after 6 attempt(s)"

    def test_remote_error_code(self):
        """Test RemoteError carries the device code."""
        err = RemoteError("Invalid argument", code=-5001, method="set_bright")
        assert err.code == -5001
        assert isinstance(err, MiioError)

    def test_validation_error(self):
        """Test ValidationError."""
        err = ValidationError("Invalid input", "Expected integer")
        assert "Invalid input" in str(err)
        assert err.code == "invalid"
