import asyncio
import time
from typing import Awaitable, Callable

MIN_REQUEST_INTERVAL_MS = 1500


class RateLimiter:
  """Spaces outbound generation calls at least `min_interval_ms` apart."""

  def __init__(
    self,
    min_interval_ms: int = MIN_REQUEST_INTERVAL_MS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ) -> None:
    self.min_interval = min_interval_ms / 1000.0
    self.clock = clock
    self.sleep = sleep
    self._last_call: float | None = None
    self._lock = asyncio.Lock()

  async def wait(self) -> None:
    async with self._lock:
      if self._last_call is not None:
        since_last = self.clock() - self._last_call
        if since_last < self.min_interval:
          await self.sleep(self.min_interval - since_last)
      self._last_call = self.clock()
