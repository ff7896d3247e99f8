"""
Write-once persistence for finalized content.

Drafts are keyed by (date, platform, content variant). A key is written
exactly once; the file lands via a temp file plus ``os.replace`` so readers
never observe a partial artifact.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional

from contentgate.core.logging import get_logger

logger = get_logger(__name__)


class ContentKey(NamedTuple):
    """Storage key of one generated artifact."""
    date: str
    platform: str
    variant: str = "standard"

    @property
    def file_base(self) -> str:
        if self.variant == "note-viral" and self.platform == "note":
            return f"{self.date}-note-viral"
        return f"{self.date}-{self.platform}"

    @property
    def filename(self) -> str:
        return f"{self.file_base}.json"


class ContentAlreadyExistsError(Exception):
    """Raised when a key has already been written."""
    pass


def _to_payload(draft: Any) -> Dict[str, Any]:
    if hasattr(draft, "dict"):
        return draft.dict()
    return dict(draft)


class ContentStore(ABC):
    """Abstract write-once content store."""

    @abstractmethod
    def write(self, key: ContentKey, draft: Any) -> None:
        """Persist ``draft`` under ``key``; raises if the key exists."""
        pass

    @abstractmethod
    def read(self, key: ContentKey) -> Optional[Dict[str, Any]]:
        """Return the stored payload or None."""
        pass

    def exists(self, key: ContentKey) -> bool:
        return self.read(key) is not None


class FileContentStore(ContentStore):
    """JSON files under a content directory."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)

    def _path(self, key: ContentKey) -> Path:
        return self.base_dir / key.filename

    def write(self, key: ContentKey, draft: Any) -> None:
        path = self._path(key)
        if path.exists():
            raise ContentAlreadyExistsError(f"Content already persisted: {key.filename}")

        self.base_dir.mkdir(parents=True, exist_ok=True)
        payload = _to_payload(draft)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.base_dir), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, ensure_ascii=False, indent=2, default=str)
            os.replace(tmp_path, path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.info(f"Persisted content {key.filename}")

    def read(self, key: ContentKey) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)


class InMemoryContentStore(ContentStore):
    """Dictionary-backed store for tests and dry runs."""

    def __init__(self):
        self._items: Dict[str, Dict[str, Any]] = {}

    def write(self, key: ContentKey, draft: Any) -> None:
        if key.file_base in self._items:
            raise ContentAlreadyExistsError(f"Content already persisted: {key.filename}")
        self._items[key.file_base] = json.loads(json.dumps(_to_payload(draft), default=str))

    def read(self, key: ContentKey) -> Optional[Dict[str, Any]]:
        item = self._items.get(key.file_base)
        return json.loads(json.dumps(item)) if item is not None else None
