"""
Persistence backends for the client work queue.

A store holds one list of plain records under one named key. The queue
manager rewrites the whole list on every mutation, so a store only needs
load, save and delete.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_QUEUE_KEY = "enhance-queue"
DEFAULT_QUEUE_DIR = Path(os.environ.get("PHOTOLEDGER_QUEUE_DIR", "~/.photoledger")).expanduser()

Record = Dict[str, Any]


class QueueStore:
    """Interface for queue persistence."""

    def load(self) -> List[Record]:
        raise NotImplementedError

    def save(self, records: List[Record]) -> None:
        raise NotImplementedError

    def delete(self) -> None:
        raise NotImplementedError


class JsonFileQueueStore(QueueStore):
    """
    Queue stored as ``<directory>/<key>.json``.

    Writes go to a temporary file in the same directory and are moved into
    place, so a crash mid-write leaves the previous list intact.
    """

    def __init__(self, directory: Union[str, Path] = DEFAULT_QUEUE_DIR, key: str = DEFAULT_QUEUE_KEY):
        self.directory = Path(directory)
        self.key = key

    @property
    def path(self) -> Path:
        return self.directory / f"{self.key}.json"

    def load(self) -> List[Record]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding unreadable queue file {self.path}: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Discarding queue file {self.path}: expected a list")
            return []
        return data

    def save(self, records: List[Record]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{self.key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class MemoryQueueStore(QueueStore):
    """In-process store; keeps a deep copy of what was last saved."""

    def __init__(self, records: Optional[List[Record]] = None):
        self.records: Optional[List[Record]] = json.loads(json.dumps(records)) if records is not None else None
        self.save_count = 0

    def load(self) -> List[Record]:
        return json.loads(json.dumps(self.records)) if self.records is not None else []

    def save(self, records: List[Record]) -> None:
        self.records = json.loads(json.dumps(records))
        self.save_count += 1

    def delete(self) -> None:
        self.records = None
