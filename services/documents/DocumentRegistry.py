"""Document registry: read and write surface of the metadata collection.

Every lookup goes through the payload ``document_id`` field. The numeric
metadata key is only used to write a record and to delete a record that was
found through its payload.
"""

from pydantic import ValidationError as PayloadValidationError

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import DocumentMetadataPayload, utc_now_iso
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperIdentity import derive_metadata_id
from shared.models.document import DocumentSummary


class DocumentRegistry:
    """Owns the metadata collection and the document → chunks ownership rule."""

    def __init__(self, helper_config: HelperConfig, rag_client: RAGClientInterface, vector_size: int, distance: str) -> None:
        self.logging = helper_config.get_logger()
        self._rag = rag_client
        self._chunk_vector_size = vector_size
        self._chunk_distance = distance
        self._metadata_vector_size = int(helper_config.get_number_val("RAG_METADATA_VECTOR_SIZE", default=1))

    ##########################################
    ################ GETTER ##################
    ##########################################

    @property
    def chunk_collection(self) -> str:
        return self._rag.get_chunk_collection()

    @property
    def metadata_collection(self) -> str:
        return self._rag.get_metadata_collection()

    def document_filter(self, document_id: str) -> dict:
        """Store filter selecting every point of one document."""
        return self._rag.get_match_filter({"document_id": document_id})

    def owner_filter(self, owner_key_hash: str) -> dict:
        """Store filter selecting every metadata record of one owner."""
        return self._rag.get_match_filter({"owner_key_hash": owner_key_hash})

    ##########################################
    ############### BOOTSTRAP ################
    ##########################################

    async def ensure_collections(self) -> None:
        """Make sure the chunk and metadata collections exist."""
        await self._rag.ensure_collection(
            self.chunk_collection,
            vector_size=self._chunk_vector_size,
            distance=self._chunk_distance,
            indexes=["document_id"],
        )
        # metadata records are never searched by similarity, the vector is a placeholder
        await self._rag.ensure_collection(
            self.metadata_collection,
            vector_size=self._metadata_vector_size,
            distance="Dot",
            indexes=["document_id", "owner_key_hash"],
        )

    ##########################################
    ################ READER ##################
    ##########################################

    async def do_find_metadata_points(self, document_id: str) -> list[dict]:
        """Return the metadata points whose payload document_id matches."""
        await self.ensure_collections()
        page = await self._rag.do_scroll(self.metadata_collection, filter=self.document_filter(document_id), limit=10)
        return [
            point for point in page.result
            if (point.get("payload") or {}).get("document_id") == document_id
        ]

    async def do_get_document(self, document_id: str) -> DocumentSummary | None:
        """Return the summary of one document, or None if it has no metadata record."""
        points = await self.do_find_metadata_points(document_id)
        if not points:
            return None
        return self._to_summary(points[0].get("payload") or {})

    async def do_scan_metadata(self, owner_key_hash: str | None = None) -> list[dict]:
        """Return one bounded page of metadata points (RAG_SCROLL_LIMIT).

        This is a snapshot: records beyond the first page are not returned.

        Args:
            owner_key_hash (str | None): Restrict the scan to one owner.
        """
        await self.ensure_collections()
        filter = self.owner_filter(owner_key_hash) if owner_key_hash else None
        page = await self._rag.do_scroll(self.metadata_collection, filter=filter)
        if page.next_page_offset is not None:
            self.logging.warning(
                "Metadata scan of '%s' returned a partial snapshot (%d records, more available).",
                self.metadata_collection, len(page.result),
            )
        return page.result

    async def do_list_documents(self, owner_key_hash: str | None = None) -> list[DocumentSummary]:
        """List document summaries, optionally for a single owner.

        Args:
            owner_key_hash (str | None): Owner to list for; None lists every owner.

        Returns:
            list[DocumentSummary]: Summaries from the bounded metadata snapshot.
        """
        summaries: list[DocumentSummary] = []
        for point in await self.do_scan_metadata(owner_key_hash):
            payload = point.get("payload") or {}
            # re-validate the owner on the payload, the scan filter is not trusted alone
            if owner_key_hash and payload.get("owner_key_hash") != owner_key_hash:
                continue
            if not payload.get("document_id"):
                continue
            summaries.append(self._to_summary(payload))
        return summaries

    ##########################################
    ################ WRITER ##################
    ##########################################

    async def do_commit_metadata(self, metadata: DocumentMetadataPayload) -> None:
        """Write the metadata record of a document, publishing it to callers."""
        await self.ensure_collections()
        await self._rag.do_upsert_points(
            self.metadata_collection,
            [{
                "id": derive_metadata_id(metadata.document_id),
                "vector": [0.0] * self._metadata_vector_size,
                "payload": metadata.model_dump(mode="json"),
            }],
        )

    async def do_record_access(self, document_id: str) -> None:
        """Set last_accessed_at of a document to now.

        The update is scoped by the payload document_id and never creates a
        record, so a concurrent eviction wins over it. Concurrent accesses are
        last-writer-wins.

        Raises:
            StoreError: If the update fails.
        """
        await self.ensure_collections()
        await self._rag.do_set_payload(
            self.metadata_collection,
            payload={"last_accessed_at": utc_now_iso()},
            filter=self.document_filter(document_id),
        )

    async def do_delete_chunks(self, document_id: str) -> None:
        """Delete every chunk of a document."""
        await self._rag.do_delete_points_by_filter(self.chunk_collection, self.document_filter(document_id))

    async def do_delete_document(self, document_id: str) -> bool:
        """Delete a document: its chunks first, then its metadata record.

        Args:
            document_id (str): The document to delete.

        Returns:
            bool: False if the document has no metadata record, True once deleted.

        Raises:
            StoreError: If a delete request fails.
        """
        points = await self.do_find_metadata_points(document_id)
        if not points:
            self.logging.info("Delete requested for unknown document %s.", document_id)
            return False
        await self.do_delete_chunks(document_id)
        await self._rag.do_delete_points_by_ids(self.metadata_collection, [point["id"] for point in points])
        self.logging.info("Deleted document %s.", document_id)
        return True

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _to_summary(self, payload: dict) -> DocumentSummary:
        try:
            metadata = DocumentMetadataPayload.model_validate(payload)
        except PayloadValidationError:
            # incomplete legacy record, expose what is there
            return DocumentSummary(
                document_id=str(payload.get("document_id")),
                original_name=payload.get("original_name") or f"Document {str(payload.get('document_id'))[:8]}",
                uploaded_at=payload.get("uploaded_at"),
                last_accessed_at=payload.get("last_accessed_at"),
            )
        return DocumentSummary(
            document_id=metadata.document_id,
            original_name=metadata.original_name,
            source_type=metadata.source_type,
            uploaded_at=metadata.uploaded_at,
            last_accessed_at=metadata.last_accessed_at,
        )
