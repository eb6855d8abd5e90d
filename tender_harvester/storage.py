"""
Local job storage.

Mirrors the on-disk layout job platforms use for local runs:

    <base_dir>/datasets/<name>/000000001.json, 000000002.json, ...
    <base_dir>/key_value_stores/<name>/<KEY>.json
"""

import json
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .config import StorageConfig
from .utils.logging import get_logger

logger = get_logger(__name__)

RECORD_FILE_PATTERN = re.compile(r"^(\d{9})\.json$")
KEY_PATTERN = re.compile(r"^[A-Za-z0-9!\-_.'()]{1,256}$")


class LocalDataset:
    """Append-only dataset with one JSON file per record."""

    def __init__(self, base_dir: Union[str, Path], name: str = "default"):
        self.path = Path(base_dir) / "datasets" / name
        self.path.mkdir(parents=True, exist_ok=True)
        self._next_index = self._last_index() + 1

    def _last_index(self) -> int:
        indexes = [
            int(match.group(1))
            for match in (RECORD_FILE_PATTERN.match(p.name) for p in self.path.iterdir())
            if match
        ]
        return max(indexes, default=0)

    def push_data(self, items: Union[Dict[str, Any], Iterable[Dict[str, Any]]]) -> int:
        """
        Append records to the dataset.

        Args:
            items: A record or an iterable of records

        Returns:
            Number of records written
        """
        if isinstance(items, dict):
            items = [items]

        count = 0
        for item in items:
            record_path = self.path / f"{self._next_index:09d}.json"
            with open(record_path, "w", encoding="utf-8") as f:
                json.dump(item, f, ensure_ascii=False, indent=2)
            self._next_index += 1
            count += 1

        logger.debug("Pushed records to dataset", dataset=self.path.name, count=count)
        return count

    def get_items(self) -> List[Dict[str, Any]]:
        """All records in insertion order."""
        records = sorted(p for p in self.path.iterdir() if RECORD_FILE_PATTERN.match(p.name))
        items = []
        for record_path in records:
            with open(record_path, "r", encoding="utf-8") as f:
                items.append(json.load(f))
        return items


class LocalKeyValueStore:
    """JSON values stored as ``<KEY>.json`` files."""

    def __init__(self, base_dir: Union[str, Path], name: str = "default"):
        self.path = Path(base_dir) / "key_value_stores" / name
        self.path.mkdir(parents=True, exist_ok=True)

    def _record_path(self, key: str) -> Path:
        if not KEY_PATTERN.match(key):
            raise ValueError(f"Invalid key-value store key: {key!r}")
        return self.path / f"{key}.json"

    def get_value(self, key: str, default: Any = None) -> Any:
        record_path = self._record_path(key)
        if not record_path.exists():
            return default
        with open(record_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def set_value(self, key: str, value: Any) -> None:
        record_path = self._record_path(key)
        with open(record_path, "w", encoding="utf-8") as f:
            json.dump(value, f, ensure_ascii=False, indent=2)
        logger.debug("Stored value", store=self.path.name, key=key)


def open_storage(config: StorageConfig, base_dir: Optional[str] = None):
    """Open the configured dataset and key-value store."""
    root = base_dir or config.base_dir
    return (
        LocalDataset(root, config.dataset),
        LocalKeyValueStore(root, config.key_value_store),
    )
