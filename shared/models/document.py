"""Pydantic models for service-level document results."""

from pydantic import BaseModel

from shared.clients.rag.models.VectorPoint import SourceType


class IngestResult(BaseModel):
    """Outcome of an ingestion request."""

    document_id: str
    is_duplicate: bool = False
    chunk_count: int = 0


class DocumentSummary(BaseModel):
    """Listing entry for one document's metadata record."""

    document_id: str
    original_name: str
    source_type: SourceType | None = None
    uploaded_at: str | None = None
    last_accessed_at: str | None = None


class SweepResult(BaseModel):
    """Outcome of a lifecycle sweep."""

    evicted_count: int = 0
    evicted_ids: list[str] = []
    failed_ids: list[str] = []
    scanned_count: int = 0


class OrphanSweepResult(BaseModel):
    """Outcome of an orphan chunk sweep."""

    removed_ids: list[str] = []
    failed_ids: list[str] = []
