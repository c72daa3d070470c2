"""Base device classes on top of a network session."""

import logging
from typing import TYPE_CHECKING, Any, ClassVar

from ..core.exceptions import ConnectionFailure, MalformedPacket
from ..session import DeviceSession

if TYPE_CHECKING:
    from ..network import MiioNetwork

logger = logging.getLogger(__name__)


class MiioDevice:
    """A device reached through a MiioNetwork, with a local property cache.

    Subclasses list the property keys they poll in ``PROPERTY_KEYS``.
    """

    kind: ClassVar[str] = "generic"
    PROPERTY_KEYS: ClassVar[tuple[str, ...]] = ()

    def __init__(self, network: "MiioNetwork", name: str | None = None):
        self.network = network
        self.name = name
        self.session: DeviceSession | None = None
        self.properties: dict[str, Any] = dict.fromkeys(self.PROPERTY_KEYS)

    def __repr__(self) -> str:
        address = self.session.address if self.session else None
        return f"{type(self).__name__}(name={self.name!r}, address={address!r})"

    @property
    def connected(self) -> bool:
        return self.session is not None

    @property
    def model(self) -> str | None:
        return self.session.model if self.session else None

    async def connect(self, address: str, token: str | bytes | None = None) -> None:
        """Connect to the device and load its properties.

        Raises:
            MissingToken: If no token is known for the device.
            ConnectionFailure: If the device did not answer with the token in use.
        """
        self.session = await self.network.connect(address, token)
        await self.get_properties()

    async def call(self, method: str, params: Any = None) -> Any:
        """Call a method on the connected device."""
        if self.session is None:
            raise ConnectionFailure("Device is not connected", self.name)
        return await self.session.call(method, params)

    async def get_properties(self, keys: list[str] | None = None) -> dict[str, Any]:
        """Refresh properties with ``get_prop``.

        Args:
            keys: Property keys to read; defaults to all known keys.

        Returns:
            The updated property cache.
        """
        keys = list(self.properties) if keys is None else keys
        if not keys:
            return self.properties

        values = await self.call("get_prop", keys)
        if not isinstance(values, list) or len(values) != len(keys):
            raise MalformedPacket("Unexpected get_prop reply", repr(values))

        self.properties.update(zip(keys, values))
        return self.properties

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "kind": self.kind,
            "address": self.session.address if self.session else None,
            "device_id": self.session.device_id if self.session else None,
            "model": self.model,
            "properties": dict(self.properties),
        }


class MiotDevice(MiioDevice):
    """Device using the MIoT ``get_properties``/``set_properties`` methods.

    ``MIOT_PROPERTIES`` maps each property name to its (siid, piid) pair.
    """

    MIOT_PROPERTIES: ClassVar[dict[str, tuple[int, int]]] = {}

    def __init__(self, network: "MiioNetwork", name: str | None = None):
        super().__init__(network, name)
        self.properties = dict.fromkeys(self.MIOT_PROPERTIES)

    def _property_ref(self, key: str) -> dict[str, Any]:
        siid, piid = self.MIOT_PROPERTIES[key]
        return {"did": key, "siid": siid, "piid": piid}

    async def get_properties(self, keys: list[str] | None = None) -> dict[str, Any]:
        keys = list(self.MIOT_PROPERTIES) if keys is None else keys
        if not keys:
            return self.properties

        results = await self.call("get_properties", [self._property_ref(key) for key in keys])
        if not isinstance(results, list):
            raise MalformedPacket("Unexpected get_properties reply", repr(results))

        for item in results:
            if not isinstance(item, dict) or item.get("did") not in self.properties:
                continue
            if item.get("code", 0) != 0:
                logger.debug("Property %s not readable: code %s", item.get("did"), item.get("code"))
                continue
            self.properties[item["did"]] = item.get("value")
        return self.properties

    async def set_property(self, key: str, value: Any) -> Any:
        """Write one property with ``set_properties``."""
        self.properties[key] = value
        return await self.call("set_properties", [{**self._property_ref(key), "value": value}])

    async def action(self, did: str, siid: int, aiid: int) -> Any:
        return await self.call("action", {"did": did, "siid": siid, "aiid": aiid})
