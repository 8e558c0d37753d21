"""Key-value persistence shared by the cache and the account service.

Every value is a JSON document stored under a string key, the same shape the
browser client kept in localStorage. `JsonFileStore` keeps the whole map in a
single JSON file; `MemoryStore` is the ephemeral variant used by tests and by
`METRO_DATA_PATH=:memory:`.
"""

import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List

logger = logging.getLogger("metro_service")

DEFAULT_DATA_PATH = "metro_data.json"


class StorageError(RuntimeError):
  pass


class MemoryStore:
  def __init__(self) -> None:
    self._data: Dict[str, str] = {}
    self._lock = threading.RLock()

  def _read_raw(self, key: str) -> str | None:
    return self._data.get(key)

  def _write_all(self) -> None:
    return None

  def get(self, key: str, fallback: Any = None) -> Any:
    """Return the decoded value, or `fallback` if missing or unreadable."""
    with self._lock:
      raw = self._read_raw(key)
    if raw is None:
      return fallback
    try:
      return json.loads(raw)
    except ValueError as exc:
      logger.warning("Error parsing %s from store, using fallback: %s", key, exc)
      return fallback

  def set(self, key: str, value: Any) -> None:
    encoded = json.dumps(value, ensure_ascii=False)
    with self._lock:
      previous = self._data.get(key)
      self._data[key] = encoded
      try:
        self._write_all()
      except OSError as exc:
        if previous is None:
          self._data.pop(key, None)
        else:
          self._data[key] = previous
        raise StorageError(f"Could not persist {key}: {exc}") from exc

  def remove(self, key: str) -> None:
    with self._lock:
      previous = self._data.pop(key, None)
      if previous is None:
        return
      try:
        self._write_all()
      except OSError as exc:
        self._data[key] = previous
        raise StorageError(f"Could not remove {key}: {exc}") from exc

  def keys(self, prefix: str = "") -> List[str]:
    with self._lock:
      return [key for key in self._data if key.startswith(prefix)]


class JsonFileStore(MemoryStore):
  """MemoryStore mirrored to disk after every write."""

  def __init__(self, path: str = DEFAULT_DATA_PATH) -> None:
    super().__init__()
    self.path = path
    self._load()

  def _load(self) -> None:
    if not os.path.exists(self.path):
      return
    try:
      with open(self.path, "r", encoding="utf-8") as f:
        data = json.load(f)
    except (OSError, ValueError) as exc:
      logger.warning("Store file %s unreadable, starting empty: %s", self.path, exc)
      return
    if not isinstance(data, dict):
      logger.warning("Store file %s is not a JSON object, starting empty", self.path)
      return
    # values stay encoded so a single bad entry only affects its own key
    self._data = {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}

  def _write_all(self) -> None:
    directory = os.path.dirname(os.path.abspath(self.path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".metro-", suffix=".json", dir=directory)
    try:
      with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(self._data, f, ensure_ascii=False)
      os.replace(tmp_path, self.path)
    except OSError:
      if os.path.exists(tmp_path):
        os.remove(tmp_path)
      raise


def build_store() -> MemoryStore:
  """Create the store configured by METRO_DATA_PATH."""
  path = os.getenv("METRO_DATA_PATH", DEFAULT_DATA_PATH)
  if path == ":memory:":
    logger.info("METRO_DATA_PATH=:memory:; data will not survive restarts.")
    return MemoryStore()
  logger.info("Using JSON store at %s", path)
  return JsonFileStore(path)
