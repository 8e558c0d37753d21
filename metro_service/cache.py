import logging
import time
from typing import Any, Callable, Optional

from metro_service.storage import MemoryStore, StorageError

logger = logging.getLogger("metro_service")

CACHE_KEY_PREFIX = "imc_cache_v7_"
CACHE_DURATION_MS = 1000 * 60 * 60 * 24


def _now_ms() -> int:
  return int(time.time() * 1000)


class TimedCache:
  """Time-boxed key -> JSON blob cache kept in the key-value store.

  Entries are stored as {"timestamp": ms, "data": ...} and expire on read.
  There is no eviction beyond that; `purge_expired` sweeps stale entries.
  """

  def __init__(
    self,
    store: MemoryStore,
    duration_ms: int = CACHE_DURATION_MS,
    prefix: str = CACHE_KEY_PREFIX,
    clock: Callable[[], int] = _now_ms,
  ) -> None:
    self.store = store
    self.duration_ms = duration_ms
    self.prefix = prefix
    self.clock = clock

  def get(self, key: str) -> Optional[Any]:
    full_key = self.prefix + key
    entry = self.store.get(full_key)
    if not isinstance(entry, dict) or "timestamp" not in entry:
      return None
    try:
      age = self.clock() - int(entry["timestamp"])
    except (TypeError, ValueError):
      return None
    if age < self.duration_ms:
      return entry.get("data")
    try:
      self.store.remove(full_key)
    except StorageError as exc:
      logger.warning("Could not drop expired cache entry %s: %s", key, exc)
    return None

  def set(self, key: str, data: Any) -> None:
    try:
      self.store.set(self.prefix + key, {"timestamp": self.clock(), "data": data})
    except (StorageError, TypeError, ValueError) as exc:
      logger.warning("Cache unavailable or full, skipping %s: %s", key, exc)

  def purge_expired(self) -> int:
    removed = 0
    now = self.clock()
    for full_key in self.store.keys(self.prefix):
      entry = self.store.get(full_key)
      timestamp = entry.get("timestamp") if isinstance(entry, dict) else None
      if isinstance(timestamp, (int, float)) and now - timestamp < self.duration_ms:
        continue
      try:
        self.store.remove(full_key)
      except StorageError as exc:
        logger.warning("Could not purge %s: %s", full_key, exc)
        continue
      removed += 1
    if removed:
      logger.info("Purged %s expired cache entries", removed)
    return removed
