"""
Client-side durable work queue.

The queue is the client's record of images waiting to be processed. Every
mutation is written through to a ``QueueStore`` so a crash or restart loses
nothing, and items interrupted mid-submission are retried after ``load()``.

Processing is strictly sequential: one submission in flight at a time, in
the order items were added. A ``QUOTA_EXCEEDED`` refusal stops the batch
and leaves the item pending so it can be retried after purchase; every other
refusal or failure marks just that item as errored.

Example usage:
    manager = ClientQueueManager(JsonFileQueueStore(), SubmissionClient(url, token))
    manager.load()
    manager.add([QueueFile.from_path("house.jpg")])
    summary = await manager.process(ProcessOptions(mode="hdr"))
"""

import base64
import mimetypes
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from client.store import QueueStore
from client.submit import Failed, Refused, Succeeded
from core.errors import QueueLimitError
from core.logging import get_logger

logger = get_logger(__name__)

MAX_QUEUE_ITEMS = 20
STORAGE_WARN_BYTES = int(os.environ.get("PHOTOLEDGER_QUEUE_WARN_BYTES", str(50 * 1024 * 1024)))


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class QueueNotice(str, Enum):
    """User-facing notices emitted by the queue."""
    SESSION_RESTORED = "SESSION_RESTORED"
    PAYWALL = "PAYWALL"
    STORAGE_PRESSURE = "STORAGE_PRESSURE"


@dataclass(frozen=True)
class QueueFile:
    """A file offered to ``add``."""
    filename: str
    payload: bytes
    content_type: str

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "QueueFile":
        path = Path(path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(filename=path.name, payload=path.read_bytes(), content_type=content_type)


@dataclass
class QueueItem:
    id: str
    filename: str
    payload: bytes
    content_type: str
    preview_uri: str
    status: QueueStatus = QueueStatus.PENDING
    result_ref: Optional[str] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "payload": base64.b64encode(self.payload).decode("ascii"),
            "contentType": self.content_type,
            "preview": self.preview_uri,
            "status": self.status.value,
            "result": self.result_ref,
            "error": self.error,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "QueueItem":
        return cls(
            id=record["id"],
            filename=record.get("filename", ""),
            payload=base64.b64decode(record.get("payload", "")),
            content_type=record.get("contentType", "application/octet-stream"),
            preview_uri=record.get("preview", ""),
            status=QueueStatus(record.get("status", QueueStatus.PENDING.value)),
            result_ref=record.get("result"),
            error=record.get("error"),
            created_at=record.get("createdAt") or datetime.now(timezone.utc).isoformat(),
        )


@dataclass(frozen=True)
class ProcessOptions:
    """Which transformation to apply to every pending item."""
    action: str = "enhance"
    mode: str = "full"
    object_to_remove: Optional[str] = None


@dataclass
class ProcessSummary:
    completed: int = 0
    failed: int = 0
    halted_on_paywall: bool = False


def preview_uri(payload: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(payload).decode('ascii')}"


class ClientQueueManager:
    """
    Ordered, persisted list of queue items.

    Args:
        store: Where the list is persisted
        submitter: Object with ``async submit(payload, content_type, options)``
            returning a ``SubmissionOutcome``
        max_items: Hard cap on queued items
        storage_warn_bytes: Payload total above which ``STORAGE_PRESSURE`` is emitted
        on_notice: Optional callback receiving each emitted notice
    """

    def __init__(
        self,
        store: QueueStore,
        submitter=None,
        max_items: int = MAX_QUEUE_ITEMS,
        storage_warn_bytes: int = STORAGE_WARN_BYTES,
        on_notice: Optional[Callable[[QueueNotice], None]] = None
    ):
        self.store = store
        self.submitter = submitter
        self.max_items = max_items
        self.storage_warn_bytes = storage_warn_bytes
        self.on_notice = on_notice
        self.items: List[QueueItem] = []
        self.notices: List[QueueNotice] = []
        self._processing = False

    @property
    def has_unsaved_work(self) -> bool:
        """True while anything is pending or a batch is running."""
        return self._processing or any(item.status == QueueStatus.PENDING for item in self.items)

    @property
    def stored_bytes(self) -> int:
        return sum(len(item.payload) for item in self.items)

    def get(self, item_id: str) -> Optional[QueueItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def load(self) -> List[QueueItem]:
        """
        Restore the persisted queue.

        Items left ``processing`` by an interrupted session go back to
        ``pending``; if any were found the list is re-persisted and
        ``SESSION_RESTORED`` is emitted. Records that cannot be decoded are
        dropped and the remaining list is re-persisted.
        """
        records = self.store.load()
        self.items = []
        for record in records:
            try:
                self.items.append(QueueItem.from_record(record))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Dropping unreadable queue record: {e!r}")
        dropped = len(records) - len(self.items)

        restored = 0
        for item in self.items:
            if item.status == QueueStatus.PROCESSING:
                item.status = QueueStatus.PENDING
                restored += 1

        if restored or dropped:
            self._persist()
        if restored:
            logger.info(f"Restored {restored} interrupted queue item(s)")
            self._notify(QueueNotice.SESSION_RESTORED)
        return list(self.items)

    def add(self, files: List[QueueFile]) -> List[QueueItem]:
        """
        Append ``files`` as pending items.

        Raises:
            QueueLimitError: If the batch would push the queue past
                ``max_items``; nothing is added in that case
        """
        if len(self.items) + len(files) > self.max_items:
            raise QueueLimitError(len(self.items), len(files), self.max_items)

        added = [
            QueueItem(
                id=uuid.uuid4().hex,
                filename=f.filename,
                payload=f.payload,
                content_type=f.content_type,
                preview_uri=preview_uri(f.payload, f.content_type),
            )
            for f in files
        ]
        self.items.extend(added)
        self._persist()

        if self.stored_bytes > self.storage_warn_bytes:
            logger.warning(f"Queue payload at {self.stored_bytes} bytes exceeds {self.storage_warn_bytes}")
            self._notify(QueueNotice.STORAGE_PRESSURE)
        return added

    def remove(self, item_id: str) -> bool:
        before = len(self.items)
        self.items = [item for item in self.items if item.id != item_id]
        if len(self.items) == before:
            return False
        self._persist()
        return True

    def clear(self) -> None:
        self.items = []
        self.store.delete()

    async def process(self, options: Optional[ProcessOptions] = None) -> ProcessSummary:
        """
        Submit every item pending at call time, one at a time.

        Returns:
            ProcessSummary with completed and failed counts and whether the
            batch stopped at the paywall
        """
        if self.submitter is None:
            raise RuntimeError("ClientQueueManager has no submitter")
        if self._processing:
            raise RuntimeError("Queue is already processing")

        options = options or ProcessOptions()
        summary = ProcessSummary()
        pending_ids = [item.id for item in self.items if item.status == QueueStatus.PENDING]

        self._processing = True
        try:
            for item_id in pending_ids:
                item = self.get(item_id)
                if item is None or item.status != QueueStatus.PENDING:
                    continue

                item.status = QueueStatus.PROCESSING
                item.error = None
                self._persist()

                try:
                    outcome = await self.submitter.submit(item.payload, item.content_type, options)
                except Exception as e:
                    logger.warning(f"Submission of queue item {item.id} raised: {e}")
                    outcome = Failed(str(e) or type(e).__name__)

                if isinstance(outcome, Succeeded):
                    item.status = QueueStatus.COMPLETED
                    item.result_ref = outcome.result_ref
                    summary.completed += 1
                elif isinstance(outcome, Refused) and outcome.is_paywall:
                    item.status = QueueStatus.PENDING
                    self._persist()
                    summary.halted_on_paywall = True
                    logger.info("Quota exhausted; stopping batch")
                    self._notify(QueueNotice.PAYWALL)
                    break
                else:
                    item.status = QueueStatus.ERROR
                    item.error = outcome.message if isinstance(outcome, (Refused, Failed)) else "Unknown error"
                    summary.failed += 1
                    logger.info(f"Queue item {item.id} failed: {item.error}")
                self._persist()
        finally:
            self._processing = False

        return summary

    def _persist(self) -> None:
        self.store.save([item.to_record() for item in self.items])

    def _notify(self, notice: QueueNotice) -> None:
        self.notices.append(notice)
        if self.on_notice is not None:
            self.on_notice(notice)
