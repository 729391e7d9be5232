"""Inter-process lock serializing every change to the switch.

Hook invocations for several VMs can start at the same moment, each in its
own process. They all take the same named lock before touching mirror state:

    lock = SwitchLock("/run/lock/ovs-mirror.lock", timeout=60)
    async with lock.acquire():
        ...  # create/remove mirrors

The lock is an flock(2) on the lock file, so it is released by the kernel
even if the holder dies.
"""
import asyncio
import fcntl
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Union

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_delay,
    wait_fixed,
)

from ..errors import LockTimeout

logger = logging.getLogger(__name__)

DEFAULT_LOCK_FILE = "/run/lock/ovs-mirror.lock"
DEFAULT_LOCK_TIMEOUT = 360.0
DEFAULT_POLL_INTERVAL = 0.2


class SwitchLock:
    """Named mutual-exclusion lock with bounded acquisition time."""

    def __init__(
        self,
        path: Union[str, Path] = DEFAULT_LOCK_FILE,
        timeout: float = DEFAULT_LOCK_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.path = Path(path)
        self.timeout = timeout
        self.poll_interval = poll_interval

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[None]:
        """Hold the lock for the duration of the block.

        Raises:
            LockTimeout: If another holder keeps the lock past the timeout
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            await self._lock(fd)
            logger.debug(f"Acquired lock {self.path}")
            try:
                os.ftruncate(fd, 0)
                os.write(fd, f"{os.getpid()}\n".encode())
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                logger.debug(f"Released lock {self.path}")
        finally:
            os.close(fd)

    async def _lock(self, fd: int) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(self.timeout),
                wait=wait_fixed(self.poll_interval),
                retry=retry_if_exception_type(BlockingIOError),
                reraise=True,
                sleep=asyncio.sleep,
            ):
                with attempt:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            holder = self._read_holder()
            logger.error(
                f"Lock {self.path} still held after {self.timeout:g}s"
                + (f" by pid {holder}" if holder else "")
            )
            raise LockTimeout(str(self.path), self.timeout)

    def _read_holder(self) -> str:
        try:
            return self.path.read_text().strip()
        except OSError:
            return ""
