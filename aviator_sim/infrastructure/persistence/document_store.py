# aviator_sim/infrastructure/persistence/document_store.py
import copy
import json
import logging
import os
import re
from typing import Dict, Any, Optional, Protocol

from .errors import StoreUnavailableError


class DocumentStore(Protocol):
    """Key → JSON document storage used for balances, stats and leaderboards."""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def put(self, key: str, document: Dict[str, Any]) -> None:
        ...


class MemoryDocumentStore:
    """Process-local store, the default when nothing is configured."""
    def __init__(self):
        self._documents: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        document = self._documents.get(key)
        return copy.deepcopy(document) if document is not None else None

    def put(self, key: str, document: Dict[str, Any]) -> None:
        self._documents[key] = copy.deepcopy(document)

    def keys(self):
        return sorted(self._documents)


class JsonFileDocumentStore:
    """
    One JSON file per key under ``base_dir``.

    Keys may contain ``/`` to form sub directories, e.g.
    ``balances/player_1`` → ``<base_dir>/balances/player_1.json``.
    """
    _UNSAFE = re.compile(r"[^A-Za-z0-9_.\-]")

    def __init__(self, base_dir: str = "data", indent: int = 2):
        self.logger = logging.getLogger("infrastructure.persistence.json")
        self.base_dir = base_dir
        self.indent = indent
        os.makedirs(base_dir, exist_ok=True)

    def _path_for(self, key: str) -> str:
        parts = [self._UNSAFE.sub("_", part) for part in key.split("/") if part and part != ".."]
        if not parts:
            raise ValueError(f"Invalid document key: {key!r}")
        return os.path.join(self.base_dir, *parts[:-1], f"{parts[-1]}.json")

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path_for(key)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to read document {key} from {path}: {e}")
            raise StoreUnavailableError("json-file", key, e) from e

    def put(self, key: str, document: Dict[str, Any]) -> None:
        path = self._path_for(key)
        tmp_path = f"{path}.tmp"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            # 先写临时文件再替换，避免写一半的文件
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=self.indent, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError) as e:
            self.logger.error(f"Failed to write document {key} to {path}: {e}")
            raise StoreUnavailableError("json-file", key, e) from e
        self.logger.debug(f"Saved document {key} to {path}")
