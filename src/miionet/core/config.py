"""Configuration management for miionet."""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

MIIO_PORT = 54321


@dataclass
class SessionConfig:
    """Per-device session timing and retry configuration."""

    handshake_timeout: float = 2.0
    call_timeout: float = 2.0
    retries: int = 5
    retry_id_jump: int = 100
    handshake_refresh: float = 120.0  # seconds before the stamp goes stale


@dataclass
class NetworkConfig:
    """UDP endpoint configuration."""

    port: int = MIIO_PORT
    local_port: int = 0
    discovery_timeout: float = 5.0


@dataclass
class TokenStoreConfig:
    """Token storage configuration."""

    path: Path = field(default_factory=lambda: Path.home() / ".miionet" / "tokens.json")
    freshness: float = 1.0
    max_stale: float = 120.0

    def __post_init__(self) -> None:
        if isinstance(self.path, str):
            self.path = Path(self.path).expanduser()


@dataclass
class DeviceEntry:
    """A device listed in the configuration file."""

    name: str
    address: str
    token: str | None = None
    type: str = "light"


@dataclass
class Config:
    """Main configuration for miionet."""

    session: SessionConfig = field(default_factory=SessionConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    tokens: TokenStoreConfig = field(default_factory=TokenStoreConfig)
    devices: list[DeviceEntry] = field(default_factory=list)
    verbose: bool = False

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Load configuration from JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()
        if "verbose" in data:
            config.verbose = data["verbose"]

        if "session" in data:
            for key, value in data["session"].items():
                if hasattr(config.session, key):
                    setattr(config.session, key, value)

        if "network" in data:
            for key, value in data["network"].items():
                if hasattr(config.network, key):
                    setattr(config.network, key, value)

        if "tokens" in data:
            for key, value in data["tokens"].items():
                if key == "path":
                    value = Path(value).expanduser()
                if hasattr(config.tokens, key):
                    setattr(config.tokens, key, value)

        for entry in data.get("devices", []):
            config.devices.append(
                DeviceEntry(
                    name=entry.get("name") or entry["address"],
                    address=entry["address"],
                    token=entry.get("token"),
                    type=entry.get("type", "light"),
                )
            )

        return config

    def save(self, path: Path) -> None:
        """Save configuration to JSON file."""
        data = {
            "verbose": self.verbose,
            "session": asdict(self.session),
            "network": asdict(self.network),
            "tokens": {
                "path": str(self.tokens.path),
                "freshness": self.tokens.freshness,
                "max_stale": self.tokens.max_stale,
            },
            "devices": [asdict(d) for d in self.devices],
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)


_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        config_path = Path(os.environ.get("MIIONET_CONFIG", ".miionet.json"))
        _config = Config.from_file(config_path)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
