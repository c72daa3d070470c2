"""Device data models and result types."""

from dataclasses import dataclass, field
from enum import Enum


class DeviceType(Enum):
    """Device families speaking miIO."""

    XIAOMI = "xiaomi"
    YEELIGHT = "yeelight"
    AQARA = "aqara"
    ROBOROCK = "roborock"
    UNKNOWN = "unknown"

    @classmethod
    def from_model(cls, model: str | None) -> "DeviceType":
        """Guess the family from a model string such as ``yeelink.light.ceiling1``."""
        if not model:
            return cls.UNKNOWN

        model_lower = model.lower()
        if "yeelight" in model_lower or "yeelink" in model_lower:
            return cls.YEELIGHT
        if "lumi" in model_lower or "aqara" in model_lower:
            return cls.AQARA
        if "roborock" in model_lower or "rockrobo" in model_lower:
            return cls.ROBOROCK
        return cls.XIAOMI


@dataclass
class MiioDeviceInfo:
    """Device info from the miIO protocol."""

    ip: str
    device_id: str
    token: str | None
    model: str | None = None
    firmware: str | None = None
    hardware: str | None = None
    mac: str | None = None
    raw_info: dict | None = None

    @property
    def device_type(self) -> DeviceType:
        return DeviceType.from_model(self.model)

    @property
    def is_token_available(self) -> bool:
        return self.token is not None and self.token not in ("0" * 32, "f" * 32)

    @classmethod
    def from_info(cls, ip: str, device_id: int | str, token: str | None, info: dict) -> "MiioDeviceInfo":
        """Build from a ``miIO.info`` reply."""
        ap = info.get("ap") if isinstance(info.get("ap"), dict) else {}
        return cls(
            ip=ip,
            device_id=str(device_id),
            token=token,
            model=info.get("model"),
            firmware=info.get("fw_ver"),
            hardware=info.get("hw_ver"),
            mac=info.get("mac") or ap.get("bssid"),
            raw_info=info,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "ip": self.ip,
            "device_id": self.device_id,
            "device_type": self.device_type.value,
            "token": self.token if self.is_token_available else None,
            "model": self.model,
            "firmware": self.firmware,
            "hardware": self.hardware,
            "mac": self.mac,
            "raw_info": self.raw_info,
        }


@dataclass
class DiscoveryResult:
    """Result of device discovery."""

    devices: list[MiioDeviceInfo] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.devices)

    def add(self, device: MiioDeviceInfo) -> bool:
        """Add a device unless its IP was already seen; fills in missing fields."""
        for existing in self.devices:
            if existing.ip == device.ip:
                existing.model = existing.model or device.model
                existing.mac = existing.mac or device.mac
                existing.firmware = existing.firmware or device.firmware
                existing.token = existing.token or device.token
                if existing.device_id in ("", "0"):
                    existing.device_id = device.device_id
                return False
        self.devices.append(device)
        return True

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "total_count": self.total_count,
            "devices": [d.to_dict() for d in self.devices],
        }
