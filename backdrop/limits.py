import asyncio
from contextlib import asynccontextmanager

from .errors import CapacityError, PayloadTooLargeError


class AdmissionPool:
    """Bounds concurrent pipeline runs, with a fixed-length wait queue in front."""

    def __init__(self, max_concurrent: int, max_queued: int):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.max_queued = max_queued
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._admitted = 0

    @property
    def admitted(self):
        return self._admitted

    @property
    def waiting(self):
        return max(0, self._admitted - self.max_concurrent)

    @asynccontextmanager
    async def slot(self):
        if self._admitted >= self.max_concurrent + self.max_queued:
            raise CapacityError("Server busy, try again later")
        self._admitted += 1
        try:
            async with self._semaphore:
                yield
        finally:
            self._admitted -= 1


def check_upload_size(size: int, limit: int):
    if size > limit:
        raise PayloadTooLargeError(f"File too large ({size} bytes, limit {limit})")
