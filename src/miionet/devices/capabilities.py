"""Light capabilities.

Each capability maps one setter onto one miIO method and reads plain
property keys from the owning light's property cache. Values set while the
light cannot take them are held as pending and applied on the next power on.
"""

from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from .lights import LightDevice

EFFECT = "sudden"
DURATION = 0


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class Capability:
    """Base class for a light capability."""

    name: ClassVar[str] = ""
    KEYS: ClassVar[tuple[str, ...]] = ()

    def __init__(self, light: "LightDevice"):
        self.light = light

    @property
    def is_on(self) -> bool:
        return self.light.properties.get("power") == "on"

    async def apply_pending(self) -> None:
        """Apply a value that was set while it could not be sent."""


class PowerControl(Capability):
    name = "power"
    KEYS = ("power",)

    async def set_power(self, on: bool) -> None:
        power = "on" if on else "off"
        self.light.properties["power"] = power
        await self.light.call("set_power", [power, EFFECT, DURATION, int(self.light.power_mode)])

    def get_power(self) -> bool:
        return self.is_on


class Brightness(Capability):
    name = "brightness"
    KEYS = ("bright",)

    def __init__(self, light: "LightDevice"):
        super().__init__(light)
        self.current = 0
        self.pending: int | None = None

    def refresh(self) -> None:
        if not self.is_on:
            return
        key = "nl_br" if self.light.moon_mode else "bright"
        value = _as_int(self.light.properties.get(key))
        if value is not None:
            self.current = value

    async def set_brightness(self, value: int) -> None:
        self.current = value
        if not self.is_on:
            self.pending = value
            return
        self.pending = None
        await self.light.call("set_bright", [value, EFFECT, DURATION])

    def get_brightness(self) -> int:
        return self.pending if self.pending else self.current

    def hold(self) -> None:
        """Keep the current level so it is restored after a mode switch."""
        self.pending = self.current

    async def apply_pending(self) -> None:
        if self.pending:
            await self.set_brightness(self.pending)


class ColorTemperature(Capability):
    name = "color_temperature"
    KEYS = ("ct",)

    def __init__(self, light: "LightDevice"):
        super().__init__(light)
        self.pending: int | None = None

    async def set_color_temperature(self, value: int) -> None:
        if self.light.moon_mode or not self.is_on:
            self.pending = value
            return
        self.pending = None
        self.light.properties["ct"] = value
        await self.light.call("set_ct_abx", [value, EFFECT, DURATION])

    def get_color_temperature(self) -> int | None:
        return self.pending if self.pending else _as_int(self.light.properties.get("ct"))

    async def apply_pending(self) -> None:
        if self.pending:
            await self.set_color_temperature(self.pending)


class HueSaturation(Capability):
    name = "hue_saturation"
    KEYS = ("hue", "sat")

    async def set_hue(self, value: int) -> None:
        if not self.is_on:
            return
        self.light.properties["hue"] = value
        await self.light.call("set_hsv", [value, self.get_saturation() or 0, EFFECT, DURATION])

    async def set_saturation(self, value: int) -> None:
        if not self.is_on:
            return
        self.light.properties["sat"] = value
        await self.light.call("set_hsv", [self.get_hue() or 0, value, EFFECT, DURATION])

    def get_hue(self) -> int | None:
        return _as_int(self.light.properties.get("hue"))

    def get_saturation(self) -> int | None:
        return _as_int(self.light.properties.get("sat"))
