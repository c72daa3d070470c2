"""Durable storage for device tokens.

Keeps a JSON file mapping device identifiers to hex tokens in sync with an
in-memory map. Loads are single-flight and saves are coalesced, so a burst
of updates costs at most two writes and the file always ends up with the
last value written.
"""

import asyncio
import json
import logging
import time
from pathlib import Path

from .core.config import TokenStoreConfig
from .core.exceptions import TokenStoreError

logger = logging.getLogger(__name__)


class TokenStore:
    """Shared token storage keyed by device identifier.

    One instance is created at startup and handed to every session that
    needs to resolve tokens.
    """

    def __init__(self, path: Path, freshness: float = 1.0, max_stale: float = 120.0):
        """Initialize the store.

        Args:
            path: JSON file holding the tokens.
            freshness: Seconds during which the in-memory map is served without
                checking the file.
            max_stale: Seconds after which the file is re-read even if its
                modification time did not change.
        """
        self.path = Path(path)
        self.freshness = freshness
        self.max_stale = max_stale

        self._data: dict[str, str] = {}
        self._last_sync = 0.0
        self._loading: asyncio.Task | None = None
        self._saving: asyncio.Task | None = None
        self._dirty = False

    @classmethod
    def from_config(cls, config: TokenStoreConfig) -> "TokenStore":
        """Create a store from the token section of the configuration."""
        return cls(config.path, freshness=config.freshness, max_stale=config.max_stale)

    async def get(self, device_id: int | str) -> str | None:
        """Return the hex token for a device, or None if unknown."""
        if time.time() - self._last_sync > self.freshness:
            try:
                await self._load()
            except TokenStoreError as e:
                logger.warning("Could not load tokens from %s: %s", self.path, e)
                return None

        return self._data.get(str(device_id))

    async def update(self, device_id: int | str, token: str) -> None:
        """Store a token and persist the map.

        Returns once a save that includes this token has completed.
        """
        await self._load()
        self._data[str(device_id)] = token.lower()

        if self._saving is not None:
            logger.debug("Save in progress, marking token storage dirty")
            self._dirty = True
        else:
            self._saving = asyncio.ensure_future(self._save())

        await asyncio.shield(self._saving)

    async def all(self) -> dict[str, str]:
        """Snapshot of every stored token."""
        await self._load()
        return dict(self._data)

    async def _load(self) -> None:
        if self._saving is not None:
            # in-memory map holds updates not yet on disk
            return

        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load_file())
        await asyncio.shield(self._loading)

    async def _load_file(self) -> None:
        try:
            logger.debug("Loading token storage from %s", self.path)
            data = await asyncio.to_thread(self._read_if_changed)
            if data is not None:
                self._data = data
            self._last_sync = time.time()
        finally:
            self._loading = None

    def _read_if_changed(self) -> dict[str, str] | None:
        if not self.path.exists():
            logger.debug("Token storage does not exist")
            return None
        if not self.path.is_file():
            raise TokenStoreError(f"{self.path} exists but is not a file")

        mtime = self.path.stat().st_mtime
        if time.time() - self._last_sync <= self.max_stale and mtime <= self._last_sync:
            return None

        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise TokenStoreError(f"Could not read {self.path}", str(e)) from e
        if not isinstance(data, dict):
            raise TokenStoreError(f"{self.path} does not contain a JSON object")

        logger.debug("Loaded %d tokens", len(data))
        return {str(key): str(value) for key, value in data.items()}

    async def _save(self) -> None:
        try:
            while True:
                self._dirty = False
                snapshot = json.dumps(self._data, indent=2)
                logger.debug("About to save tokens")
                await asyncio.to_thread(self._write, snapshot)
                if not self._dirty:
                    break
                logger.debug("Redoing save due to multiple updates")
        finally:
            self._saving = None

    def _write(self, content: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                f.write(content)
            self._last_sync = max(time.time(), self.path.stat().st_mtime)
        except OSError as e:
            raise TokenStoreError(f"Could not write {self.path}", str(e)) from e
