"""Ragie webhook payload schemas.

Every payload carries the envelope ``nonce`` (merged in during unwrapping);
use it as the idempotency key.  See https://docs.ragie.ai/docs/webhooks
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class RagieEvent(BaseModel):
    nonce: str


class DocumentStatusUpdatedEvent(RagieEvent):
    """A document entered the indexed, keyword_indexed, ready or failed state."""

    document_id: str
    external_id: str | None = None
    status: Literal["indexed", "keyword_indexed", "ready", "failed"]
    sync_id: str | None = None
    partition: str | None = None


class DocumentDeletedEvent(RagieEvent):
    document_id: str
    external_id: str | None = None
    partition: str | None = None


class EntityExtractedEvent(RagieEvent):
    document_id: str
    external_id: str | None = None
    partition: str | None = None


class ConnectionSyncEvent(RagieEvent):
    connection_id: str
    sync_id: str
    partition: str
    connection_metadata: dict[str, Any] | None = None


class ConnectionSyncStartedEvent(ConnectionSyncEvent):
    pass


class ConnectionSyncCounts(ConnectionSyncEvent):
    total_creates_count: int
    created_count: int
    total_contents_updates_count: int
    contents_updated_count: int
    total_metadata_updates_count: int
    metadata_updated_count: int
    total_deletes_count: int
    deleted_count: int


class ConnectionSyncProgressEvent(ConnectionSyncCounts):
    """Periodic progress report during a sync."""


class ConnectionSyncFinishedEvent(ConnectionSyncCounts):
    pass


class ConnectionLimitExceededEvent(ConnectionSyncEvent):
    pass


class PartitionLimitExceededEvent(RagieEvent):
    partition: str


RAGIE_SCHEMAS = {
    "document_status_updated": DocumentStatusUpdatedEvent,
    "document_deleted": DocumentDeletedEvent,
    "entity_extracted": EntityExtractedEvent,
    "connection_sync_started": ConnectionSyncStartedEvent,
    "connection_sync_progress": ConnectionSyncProgressEvent,
    "connection_sync_finished": ConnectionSyncFinishedEvent,
    "connection_limit_exceeded": ConnectionLimitExceededEvent,
    "partition_limit_exceeded": PartitionLimitExceededEvent,
}
