"""Utility functions for miionet."""

import asyncio
import socket
from ipaddress import IPv4Address, IPv4Network, IPv6Address, ip_address

import psutil

from .exceptions import ValidationError

TOKEN_LENGTH = 16


def validate_ip(ip_str: str) -> IPv4Address | IPv6Address:
    """Validate and parse an IP address string."""
    try:
        ip = ip_address(ip_str)
        if ip.version == 6:
            raise ValidationError(f"IPv6 address not supported: {ip_str}")
        return ip
    except ValueError as e:
        raise ValidationError(f"Invalid IP address: {ip_str}", str(e)) from e


async def resolve_target(target: str) -> str:
    """Resolve a hostname or IP string to an IPv4 address string.

    Hostnames are looked up through the running event loop.
    """
    try:
        return str(validate_ip(target))
    except ValidationError:
        pass

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(target, None, family=socket.AF_INET, type=socket.SOCK_DGRAM)
    except socket.gaierror as e:
        raise ValidationError(f"Invalid hostname or IP: {target}", str(e)) from e
    if not infos:
        raise ValidationError(f"Invalid hostname or IP: {target}", "no IPv4 address")
    return infos[0][4][0]


def validate_token(token: str) -> bool:
    """Validate a device token format.

    Args:
        token: Token to validate.

    Returns:
        True if valid, False otherwise.
    """
    if not token:
        return False

    # Token should be 32 hex characters
    if len(token) != TOKEN_LENGTH * 2:
        return False

    try:
        int(token, 16)
        return True
    except ValueError:
        return False


def parse_token(token: str | bytes) -> bytes:
    """Convert a hex string or raw bytes into a 16-byte token.

    Raises:
        ValidationError: If the token is not 16 bytes / 32 hex characters.
    """
    if isinstance(token, bytes):
        if len(token) != TOKEN_LENGTH:
            raise ValidationError(f"Token must be {TOKEN_LENGTH} bytes, got {len(token)}")
        return token

    token = token.strip()
    if not validate_token(token):
        raise ValidationError("Invalid token", "expected 32 hex characters")
    return bytes.fromhex(token)


def format_mac(mac: str) -> str:
    """Format MAC address consistently."""
    mac = mac.replace("-", ":").lower()
    parts = mac.split(":")
    if len(parts) == 6:
        return ":".join(p.zfill(2) for p in parts)
    return mac


def get_broadcast_addresses() -> list[str]:
    """Broadcast addresses of all IPv4 interfaces that are up."""
    addresses: list[str] = []
    stats = psutil.net_if_stats()

    for name, addrs in psutil.net_if_addrs().items():
        if name.startswith("lo"):
            continue
        if name in stats and not stats[name].isup:
            continue

        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            broadcast = addr.broadcast
            if not broadcast and addr.netmask:
                network = IPv4Network(f"{addr.address}/{addr.netmask}", strict=False)
                broadcast = str(network.broadcast_address)
            if broadcast and broadcast not in addresses:
                addresses.append(broadcast)

    return addresses or ["255.255.255.255"]
