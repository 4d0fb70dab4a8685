"""Payload models stored alongside points in the chunk and metadata collections."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel


class SourceType(str, Enum):
    """Supported document sources."""

    PDF = "pdf"
    URL = "url"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string, the timestamp format stored in payloads."""
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 payload timestamp. Naive values are taken as UTC.

    Raises:
        ValueError: If the value is not a valid ISO-8601 timestamp.
    """
    # fromisoformat() only accepts a trailing "Z" from Python 3.11 on
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ChunkPayload(BaseModel):
    """Payload stored alongside each chunk vector.

    Attributes:
        document_id:    Owning document. All identity lookups filter on this field.
        chunk_index:    Zero-based position of this chunk within the document.
        chunk_key:      Authoritative string identity "{document_id}_{chunk_index}".
                        The numeric point key is a truncated hash of it.
        text:           Raw text content of this chunk.
        original_name:  Filename or URL of the source document.
        source_type:    "pdf" or "url".
        created_at:     ISO-8601 UTC time the chunk was written.
    """

    document_id: str
    chunk_index: int
    chunk_key: str
    text: str
    original_name: str
    source_type: SourceType
    created_at: str


class DocumentMetadataPayload(BaseModel):
    """Payload of the single metadata record kept per ingested document.

    The metadata record is the publication point of a document: chunks whose
    document_id has no metadata record are invisible to callers.

    Attributes:
        document_id:       Opaque unique document id (uuid4).
        owner_key_hash:    sha256 hex of the caller's credential.
        original_name:     Filename or URL of the source document.
        source_type:       "pdf" or "url".
        uploaded_at:       ISO-8601 UTC ingestion time.
        last_accessed_at:  ISO-8601 UTC time of the last retrieval or re-upload.
    """

    document_id: str
    owner_key_hash: str
    original_name: str
    source_type: SourceType
    uploaded_at: str
    last_accessed_at: str


class SearchHit(BaseModel):
    """A scored point returned by a similarity search."""

    id: int | str
    score: float
    payload: dict = {}
