"""Device kinds and the factory that builds them by name."""

from typing import TYPE_CHECKING

from ..core.exceptions import ValidationError
from .appliances import AirPurifier, RobotVacuum, VacuumState
from .base import MiioDevice, MiotDevice
from .capabilities import Brightness, Capability, ColorTemperature, HueSaturation, PowerControl
from .lights import ColorLight, CtMoonLight, LightDevice, PowerMode
from .models import DeviceType, DiscoveryResult, MiioDeviceInfo

if TYPE_CHECKING:
    from ..network import MiioNetwork

DEVICE_KINDS: dict[str, type[MiioDevice]] = {
    cls.kind: cls for cls in (LightDevice, CtMoonLight, ColorLight, AirPurifier, RobotVacuum)
}


def create_device(kind: str, network: "MiioNetwork", name: str | None = None) -> MiioDevice:
    """Create a device of the given kind.

    Raises:
        ValidationError: If the kind is unknown.
    """
    try:
        cls = DEVICE_KINDS[kind]
    except KeyError:
        raise ValidationError(
            f"Unknown device type: {kind}", f"expected one of {', '.join(sorted(DEVICE_KINDS))}"
        ) from None
    return cls(network, name)


__all__ = [
    "AirPurifier",
    "Brightness",
    "Capability",
    "ColorLight",
    "ColorTemperature",
    "CtMoonLight",
    "DEVICE_KINDS",
    "DeviceType",
    "DiscoveryResult",
    "HueSaturation",
    "LightDevice",
    "MiioDevice",
    "MiioDeviceInfo",
    "MiotDevice",
    "PowerControl",
    "PowerMode",
    "RobotVacuum",
    "VacuumState",
    "create_device",
]
