"""
photoledger client SDK.

Durable local work queue plus the HTTP submission client the queue drives.
"""

from client.queue import ClientQueueManager, ProcessOptions, ProcessSummary, QueueFile, QueueItem, QueueNotice, QueueStatus
from client.store import JsonFileQueueStore, MemoryQueueStore, QueueStore
from client.submit import Failed, Refused, SubmissionClient, SubmissionOutcome, Succeeded

__all__ = [
    "ClientQueueManager",
    "ProcessOptions",
    "ProcessSummary",
    "QueueFile",
    "QueueItem",
    "QueueNotice",
    "QueueStatus",
    "QueueStore",
    "JsonFileQueueStore",
    "MemoryQueueStore",
    "SubmissionClient",
    "SubmissionOutcome",
    "Succeeded",
    "Refused",
    "Failed",
]
