"""Device Identity Resolver - a stable pseudo-identifier for this installation.

The id is a heuristic fingerprint with a stored random fallback. It attributes
ownership of word sets; it is spoofable and must not be treated as a credential.
"""

import asyncio
import hashlib
import logging
import platform
import socket
import uuid
from collections.abc import Callable

from redis.exceptions import RedisError

from taboo.config import settings

logger = logging.getLogger(__name__)


def host_fingerprint() -> str:
    """Hash stable host signals into a device id.

    Raises RuntimeError when the hardware address is not real, since
    uuid.getnode() then returns a random value that changes per process.
    """
    node = uuid.getnode()
    if (node >> 40) & 1:
        raise RuntimeError("no stable hardware address available")

    signals = [
        socket.gethostname(),
        platform.system(),
        platform.machine(),
        f"{node:012x}",
    ]
    digest = hashlib.sha256("|".join(signals).encode("utf-8")).hexdigest()
    return f"fp_{digest[:32]}"


class DeviceIdentityResolver:
    def __init__(
        self,
        store,
        key: str = settings.DEVICE_ID_KEY,
        fingerprint: Callable[[], str] = host_fingerprint,
        timeout: float = settings.DEVICE_FINGERPRINT_TIMEOUT,
    ):
        self.store = store
        self.key = key
        self.fingerprint = fingerprint
        self.timeout = timeout
        self._device_id: str | None = None
        self._lock = asyncio.Lock()

    async def resolve(self) -> str:
        """Return the device id, computing it once per resolver."""
        async with self._lock:
            if self._device_id is None:
                self._device_id = await self._fingerprint_or_stored()
            return self._device_id

    async def _fingerprint_or_stored(self) -> str:
        try:
            device_id = await asyncio.wait_for(
                asyncio.to_thread(self.fingerprint), timeout=self.timeout
            )
            if device_id:
                return device_id
            logger.warning("Device fingerprint came back empty, using stored id")
        except Exception as exc:
            logger.warning("Device fingerprint unavailable, using stored id: %s", exc)
        return await self._stored_or_new()

    async def _stored_or_new(self) -> str:
        try:
            stored = await self.store.get(self.key)
        except (RedisError, OSError) as exc:
            logger.warning("Could not read stored device id: %s", exc)
            return f"device_{uuid.uuid4()}"
        if stored:
            return stored

        device_id = f"device_{uuid.uuid4()}"
        try:
            await self.store.set(self.key, device_id)
        except (RedisError, OSError) as exc:
            logger.warning("Could not persist new device id: %s", exc)
        return device_id
