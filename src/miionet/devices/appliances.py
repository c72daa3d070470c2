"""Air purifier and robot vacuum."""

from enum import IntEnum
from typing import Any

from .base import MiioDevice, MiotDevice

FAVORITE_LEVEL_MAX = 16


def _percent_to_step(percent: int) -> int:
    return max(0, (percent - 25) // 25)


class AirPurifier(MiioDevice):
    """Air purifier speaking plain ``get_prop``."""

    kind = "air_purifier"
    PROPERTY_KEYS = ("mode", "favorite_level", "temp_dec", "humidity", "aqi", "filter1_life")

    MODE_AUTO = "auto"
    MODE_SILENT = "silent"
    MODE_IDLE = "idle"
    MODE_FAVORITE = "favorite"

    def __init__(self, network, name: str | None = None):
        super().__init__(network, name)
        self.last_mode = self.MODE_AUTO
        self.night_mode = False

    @property
    def mode(self) -> str | None:
        return self.properties.get("mode")

    async def set_mode(self, mode: str) -> None:
        if mode != self.MODE_IDLE:
            self.last_mode = mode
        self.properties["mode"] = mode
        await self.call("set_mode", [mode])

    @property
    def favorite_level(self) -> int:
        """Favorite fan level as a percentage."""
        level = self.properties.get("favorite_level") or 0
        return round(level / FAVORITE_LEVEL_MAX * 100)

    async def set_favorite_level(self, percent: int) -> None:
        level = round(percent / 100 * FAVORITE_LEVEL_MAX)
        self.properties["favorite_level"] = level
        await self.call("set_level_favorite", [level])

    @property
    def temperature(self) -> float | None:
        value = self.properties.get("temp_dec")
        return None if value is None else value / 10

    @property
    def humidity(self) -> Any:
        return self.properties.get("humidity")

    @property
    def aqi(self) -> Any:
        return self.properties.get("aqi")

    @property
    def filter_life(self) -> Any:
        return self.properties.get("filter1_life")

    async def set_night_mode(self, enabled: bool) -> None:
        """Night mode: silent fan instead of auto, and the LED dimmed."""
        if self.night_mode == enabled:
            return
        self.night_mode = enabled

        if enabled and self.mode == self.MODE_AUTO:
            await self.set_mode(self.MODE_SILENT)
        elif not enabled and self.mode == self.MODE_SILENT:
            await self.set_mode(self.MODE_AUTO)
        await self.call("set_led_b", [1 if enabled else 0])


class VacuumState(IntEnum):
    IDLE = 1
    CLEANING = 2
    PAUSE = 3
    ERROR = 4
    CHARGING = 5
    GO_CHARGING = 6


VACUUM_ERRORS = {
    0: "No error",
    1: "Left Wheel stuck",
    2: "Right Wheel stuck",
    3: "Cliff error",
    4: "Low battery",
    5: "Bump error",
    6: "Main Brush Error",
    7: "Side Brush Error",
    8: "Fan Motor Error",
    9: "Dustbin Error",
    10: "Charging Error",
    11: "No Water Error",
    12: "Pick Up Error",
}


class RobotVacuum(MiotDevice):
    """MIoT robot vacuum."""

    kind = "vacuum_cleaner"
    MIOT_PROPERTIES = {
        "state": (2, 1),
        "error_code": (2, 2),
        "battery": (3, 1),
        "fan_speed": (2, 6),
        "water_level": (2, 5),
    }

    @property
    def state(self) -> Any:
        return self.properties.get("state")

    @property
    def battery(self) -> Any:
        return self.properties.get("battery")

    @property
    def is_battery_low(self) -> bool:
        return self.properties.get("error_code") == 4

    @property
    def error(self) -> str | None:
        code = self.properties.get("error_code")
        return VACUUM_ERRORS.get(code) if code is not None else None

    async def set_cleaning(self, enabled: bool) -> None:
        """Start cleaning, or send the vacuum home."""
        self.properties["state"] = VacuumState.CLEANING if enabled else VacuumState.GO_CHARGING
        if enabled:
            await self.action("start", 2, 1)
        else:
            await self.action("home", 2, 3)

    @property
    def fan_speed(self) -> int:
        """Fan speed as a percentage (25 per step)."""
        return (self.properties.get("fan_speed") or 0) * 25 + 25

    async def set_fan_speed(self, percent: int) -> None:
        await self.set_property("fan_speed", _percent_to_step(percent))

    @property
    def water_level(self) -> int:
        return (self.properties.get("water_level") or 0) * 25 + 25

    async def set_water_level(self, percent: int) -> None:
        await self.set_property("water_level", _percent_to_step(percent))
