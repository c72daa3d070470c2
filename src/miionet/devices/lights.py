"""Yeelight-style lights built from capabilities."""

import asyncio
import logging
from enum import IntEnum
from typing import TYPE_CHECKING, ClassVar

from .base import MiioDevice
from .capabilities import Brightness, Capability, ColorTemperature, HueSaturation, PowerControl

if TYPE_CHECKING:
    from ..network import MiioNetwork

logger = logging.getLogger(__name__)


class PowerMode(IntEnum):
    """Mode a light switches to when turned on (last ``set_power`` argument)."""

    NORMAL = 0
    CT = 1
    RGB = 2
    HSV = 3
    COLOR_FLOW = 4
    MOON = 5


class LightDevice(MiioDevice):
    """A light whose behaviour is the sum of its capabilities."""

    kind = "light"
    CAPABILITIES: ClassVar[tuple[type[Capability], ...]] = (PowerControl, Brightness, ColorTemperature)
    EXTRA_KEYS: ClassVar[tuple[str, ...]] = ()
    DEFAULT_POWER_MODE: ClassVar[PowerMode] = PowerMode.NORMAL

    settle_delay = 0.1
    """Seconds to wait after switching on before sending pending values."""

    def __init__(self, network: "MiioNetwork", name: str | None = None):
        super().__init__(network, name)
        self.power_mode = self.DEFAULT_POWER_MODE
        self.capabilities: dict[str, Capability] = {}
        keys: list[str] = []
        for cls in self.CAPABILITIES:
            capability = cls(self)
            self.capabilities[capability.name] = capability
            keys.extend(key for key in cls.KEYS if key not in keys)
        keys.extend(key for key in self.EXTRA_KEYS if key not in keys)
        self.properties = dict.fromkeys(keys)

    @property
    def moon_mode(self) -> bool:
        return self.power_mode is PowerMode.MOON

    def has(self, name: str) -> bool:
        return name in self.capabilities

    def capability(self, name: str) -> Capability:
        try:
            return self.capabilities[name]
        except KeyError:
            raise AttributeError(f"{self.kind} has no {name} capability") from None

    async def get_properties(self, keys: list[str] | None = None) -> dict:
        properties = await super().get_properties(keys)
        if self.has("brightness"):
            self.capability("brightness").refresh()
        return properties

    async def set_power(self, on: bool) -> None:
        """Switch the light and then send values held while it was off."""
        await self.capability("power").set_power(on)
        if not on:
            return
        await asyncio.sleep(self.settle_delay)
        for capability in self.capabilities.values():
            await capability.apply_pending()

    def get_power(self) -> bool:
        return self.capability("power").get_power()

    async def set_brightness(self, value: int) -> None:
        await self.capability("brightness").set_brightness(value)

    def get_brightness(self) -> int:
        return self.capability("brightness").get_brightness()

    async def set_color_temperature(self, value: int) -> None:
        await self.capability("color_temperature").set_color_temperature(value)

    def get_color_temperature(self) -> int | None:
        return self.capability("color_temperature").get_color_temperature()

    async def set_hue(self, value: int) -> None:
        await self.capability("hue_saturation").set_hue(value)

    async def set_saturation(self, value: int) -> None:
        await self.capability("hue_saturation").set_saturation(value)


class CtMoonLight(LightDevice):
    """White ceiling light with a moon (night light) mode."""

    kind = "ct_moon_light"
    CAPABILITIES = (PowerControl, Brightness, ColorTemperature)
    EXTRA_KEYS = ("nl_br",)
    DEFAULT_POWER_MODE = PowerMode.CT

    async def set_moon_mode(self, enabled: bool) -> None:
        """Switch between moon and daylight mode.

        The current brightness is kept and re-sent after the switch, which
        happens by turning the light on again in the new power mode.
        """
        mode = PowerMode.MOON if enabled else PowerMode.CT
        if mode is self.power_mode:
            return

        self.power_mode = mode
        self.capability("brightness").hold()
        logger.debug("%s moon mode %s", self.name or self.kind, "on" if enabled else "off")

        if self.get_power():
            await self.set_power(True)


class ColorLight(LightDevice):
    """RGB bulb or strip."""

    kind = "color_light"
    CAPABILITIES = (PowerControl, Brightness, ColorTemperature, HueSaturation)
    EXTRA_KEYS = ()
