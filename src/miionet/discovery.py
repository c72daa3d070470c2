"""miIO device discovery.

Supports discovery via:
- UDP broadcast of the handshake ("hello") frame on port 54321
- mDNS (``_miio._udp.local.``)
"""

import logging
import socket
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

from .core.config import MIIO_PORT
from .core.exceptions import MalformedPacket
from .core.utils import format_mac, get_broadcast_addresses
from .devices.models import DiscoveryResult, MiioDeviceInfo
from .protocol import packet

if TYPE_CHECKING:
    from zeroconf import ServiceInfo, Zeroconf

logger = logging.getLogger(__name__)

MIIO_SERVICE = "_miio._udp.local."


def discover_miio_broadcast(
    timeout: float = 5.0,
    addresses: list[str] | None = None,
    port: int = MIIO_PORT,
) -> list[MiioDeviceInfo]:
    """Discover miIO devices using UDP broadcast.

    Sends the handshake frame to each broadcast address and collects the
    replies. Devices that still advertise their token report it here.

    Args:
        timeout: Discovery timeout in seconds.
        addresses: Broadcast addresses; defaults to those of all interfaces.
        port: miIO port.

    Returns:
        List of discovered miIO devices.
    """
    devices: list[MiioDeviceInfo] = []
    seen_ips: set[str] = set()
    hello = packet.encode_handshake()

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
    sock.settimeout(timeout)

    try:
        for address in addresses or get_broadcast_addresses():
            logger.debug("-> Hello to %s", address)
            sock.sendto(hello, (address, port))

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            sock.settimeout(remaining)
            try:
                data, addr = sock.recvfrom(1024)
            except TimeoutError:
                break

            ip = addr[0]
            if ip in seen_ips:
                continue

            device = _parse_miio_response(ip, data)
            if device:
                seen_ips.add(ip)
                devices.append(device)
    finally:
        sock.close()

    return devices


def _parse_miio_response(ip: str, data: bytes) -> MiioDeviceInfo | None:
    """Parse a handshake reply into device info, or None if it is not one."""
    try:
        reply = packet.decode_handshake_reply(data)
    except MalformedPacket as e:
        logger.debug("<- Ignoring packet from %s: %s", ip, e)
        return None

    return MiioDeviceInfo(
        ip=ip,
        device_id=str(reply.device_id),
        token=reply.token.hex() if reply.token else None,
    )


def discover_miio_mdns(timeout: float = 5.0) -> list[MiioDeviceInfo]:
    """Discover miIO devices using mDNS service discovery.

    Uses zeroconf to find devices announcing the ``_miio._udp.local.`` service.

    Args:
        timeout: Discovery timeout in seconds.

    Returns:
        List of discovered miIO devices.
    """
    from zeroconf import ServiceBrowser, ServiceListener, Zeroconf

    devices: list[MiioDeviceInfo] = []
    seen_ids: set[str] = set()

    class MiioListener(ServiceListener):
        def add_service(self, zc: "Zeroconf", type_: str, name: str) -> None:
            info = zc.get_service_info(type_, name)
            if info and info.parsed_addresses():
                device = _parse_mdns_service(name, info)
                if device and device.device_id not in seen_ids:
                    seen_ids.add(device.device_id)
                    devices.append(device)

        def remove_service(self, zc: "Zeroconf", type_: str, name: str) -> None:
            pass

        def update_service(self, zc: "Zeroconf", type_: str, name: str) -> None:
            pass

    zc = Zeroconf()
    try:
        ServiceBrowser(zc, MIIO_SERVICE, MiioListener())
        time.sleep(timeout)
    finally:
        zc.close()

    return devices


def _parse_mdns_service(name: str, info: "ServiceInfo") -> MiioDeviceInfo | None:
    """Parse miIO mDNS service info.

    Service name format: ``model_miio<deviceid>._miio._udp.local.`` with the
    dots of the model replaced by dashes, e.g.
    ``yeelink-light-bslamp2_miio123456789._miio._udp.local.``
    """
    addresses = info.parsed_addresses()
    if not addresses:
        return None

    parts = name.replace("." + MIIO_SERVICE, "").rsplit("_", 1)

    model = None
    device_id = None
    if len(parts) == 2:
        model = parts[0].replace("-", ".")
        device_id = parts[1].removeprefix("miio")
    elif len(parts) == 1:
        device_id = parts[0]

    props = {}
    for key, value in info.properties.items():
        if isinstance(key, bytes):
            key = key.decode("utf-8", errors="ignore")
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="ignore")
        props[key] = value

    mac = props.get("mac")
    return MiioDeviceInfo(
        ip=addresses[0],
        device_id=device_id or "",
        token=None,  # mDNS doesn't expose tokens
        model=model or props.get("model"),
        firmware=props.get("fw_ver"),
        mac=format_mac(mac) if mac else None,
        raw_info=props or None,
    )


def discover_all(timeout: float = 5.0, methods: list[str] | None = None) -> DiscoveryResult:
    """Run several discovery methods in parallel and merge the results.

    Args:
        timeout: Discovery timeout per method in seconds.
        methods: Methods to use: "miio", "mdns". Defaults to both.

    Returns:
        Devices found by any method, deduplicated by IP.
    """
    if methods is None:
        methods = ["miio", "mdns"]

    method_funcs = {
        "miio": discover_miio_broadcast,
        "mdns": discover_miio_mdns,
    }

    result = DiscoveryResult()
    with ThreadPoolExecutor(max_workers=len(method_funcs)) as executor:
        futures = {
            executor.submit(method_funcs[m], timeout): m for m in methods if m in method_funcs
        }

        for future in as_completed(futures):
            method = futures[future]
            try:
                devices = future.result()
            except (OSError, ImportError) as e:
                logger.warning("Discovery method %s failed: %s", method, e)
                continue

            logger.debug("Method %s found %d devices", method, len(devices))
            for device in devices:
                result.add(device)

    return result
