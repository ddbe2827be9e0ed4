"""
Key-Value Stores backing the cache

Two implementations of the same small contract:
1. MemoryKeyValueStore - process-local dict, used in tests and headless runs
2. JsonFileKeyValueStore - one JSON file on disk that survives restarts

Stores deal in strings only; serialization of cache entries happens in the
cache. Stores are allowed to raise on I/O failure; the cache treats any such
failure as a miss.
"""

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from logger import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """Persistent string store: get/set/remove/list-by-prefix"""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass

    @abstractmethod
    def list_keys(self, prefix: str = "") -> List[str]:
        pass


class MemoryKeyValueStore(KeyValueStore):
    """In-memory store. Nothing survives the process."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._items if key.startswith(prefix)]


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store that keeps every item in one JSON object on disk.

    Features:
    - Loads the file once on startup
    - Writes through on every change (temp file + atomic rename)
    - A corrupt or missing file starts an empty store
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._items: Dict[str, str] = {}
        self._lock = threading.RLock()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.load()

    def load(self) -> int:
        """Load items from disk, returning how many were read"""
        if not self.path.exists():
            logger.debug(f"No store file at {self.path}, starting empty")
            return 0

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read store file {self.path}: {e}")
            return 0

        if not isinstance(data, dict):
            logger.warning(f"Ignoring store file {self.path}: expected a JSON object")
            return 0

        with self._lock:
            self._items = {str(k): str(v) for k, v in data.items()}
            return len(self._items)

    def _save(self, items: Dict[str, str]):
        temp_file = self.path.with_suffix('.tmp')
        with open(temp_file, 'w', encoding='utf-8') as f:
            json.dump(items, f, indent=2)
        temp_file.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = dict(self._items)
            items[key] = value
            self._save(items)
            self._items = items

    def remove_item(self, key: str) -> None:
        with self._lock:
            if key not in self._items:
                return
            items = dict(self._items)
            del items[key]
            self._save(items)
            self._items = items

    def list_keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [key for key in self._items if key.startswith(prefix)]
