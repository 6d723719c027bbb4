"""Key/value store persisted to a YAML file."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from .base import KeyValueStore


class YamlKeyValueStore(KeyValueStore):
    """Namespaced values stored as a YAML mapping of mappings.

    The file is re-read on every access so edits made while a run is in
    progress are picked up.
    """

    def __init__(self, path: str | Path):
        self.path = str(path)
        self._lock = asyncio.Lock()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return data

    def _save(self, data: Dict[str, Dict[str, Any]]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=True)

    async def get(self, namespace: str, key: str, default: Any = None) -> Any:
        data = await asyncio.to_thread(self._load)
        return (data.get(namespace) or {}).get(key, default)

    async def put(self, namespace: str, key: str, value: Any) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            data.setdefault(namespace, {})[key] = value
            await asyncio.to_thread(self._save, data)
