"""Identity helpers for documents, chunks and owners.

Qdrant point keys must be unsigned integers or UUIDs. Chunk and metadata
points use a 32-bit integer key cut from an md5 digest, so keys can collide.
The string identity is therefore always stored in the payload and every
lookup goes through the payload field; the numeric key is only used to
address a point directly for upsert and delete.
"""

import hashlib
import uuid

# hex digits kept from the md5 digest (8 hex digits = 32 bits)
POINT_ID_HEX_DIGITS = 8


def new_document_id() -> str:
    """Return a new random document identifier (uuid4 string)."""
    return str(uuid.uuid4())


def make_chunk_key(document_id: str, chunk_index: int) -> str:
    """Return the authoritative string identity of a chunk.

    Args:
        document_id (str): Owning document id.
        chunk_index (int): Zero-based chunk position.

    Returns:
        str: "{document_id}_{chunk_index}"
    """
    return f"{document_id}_{chunk_index}"


def _truncated_md5(value: str) -> int:
    digest = hashlib.md5(value.encode("utf-8")).hexdigest()
    return int(digest[:POINT_ID_HEX_DIGITS], 16)


def derive_point_id(document_id: str, chunk_index: int) -> int:
    """Derive the numeric point key of a chunk.

    Pure and stable across processes: the same (document_id, chunk_index)
    always maps to the same key, so re-ingesting overwrites instead of duplicating.

    Args:
        document_id (str): Owning document id.
        chunk_index (int): Zero-based chunk position.

    Returns:
        int: A key in [0, 2**32).
    """
    return _truncated_md5(make_chunk_key(document_id, chunk_index))


def derive_metadata_id(document_id: str) -> int:
    """Derive the numeric point key of a document's metadata record."""
    return _truncated_md5(document_id)


def hash_owner_key(credential: str) -> str:
    """One-way hash of a caller credential (sha256 hex).

    Used to scope listing and duplicate detection without storing the credential.
    """
    return hashlib.sha256((credential or "").encode("utf-8")).hexdigest()
