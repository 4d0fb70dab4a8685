"""Ingestion service.

Validates an upload or URL request, skips documents the owner already
ingested, extracts the text, splits it into chunks, embeds and upserts the
chunks batch by batch and finally commits one metadata record.

The metadata commit is the publication point: a failure before it can leave
chunks from completed batches in the store, but they are invisible to callers
and are removed later by the orphan sweep.
"""

import os
import re
from enum import Enum
from urllib.parse import urlparse

from services.documents.DocumentRegistry import DocumentRegistry
from services.documents.DuplicateResolver import DuplicateResolver
from services.ingestion.EmbeddingGateway import EmbeddingGateway
from services.ingestion.TextChunker import CHUNK_OVERLAP, CHUNK_SIZE, split_text
from shared.clients.loader.ContentLoader import ContentLoader
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import ChunkPayload, DocumentMetadataPayload, SourceType, utc_now_iso
from shared.exceptions.errors import ExtractionError, PipelineError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperIdentity import derive_point_id, hash_owner_key, make_chunk_key, new_document_id
from shared.models.document import IngestResult

_URL_PATTERN = re.compile(r"^https?://.+", re.IGNORECASE)
_STAGED_PREFIX = re.compile(r"^\d+-")


class IngestionStage(str, Enum):
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class IngestionService:
    """Orchestrates validation, extraction, chunking, embedding and persistence."""

    def __init__(
        self,
        helper_config: HelperConfig,
        rag_client: RAGClientInterface,
        registry: DocumentRegistry,
        duplicate_resolver: DuplicateResolver,
        embedding_gateway: EmbeddingGateway,
        content_loader: ContentLoader,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._rag = rag_client
        self._registry = registry
        self._duplicates = duplicate_resolver
        self._embedding = embedding_gateway
        self._loader = content_loader
        self.chunk_size = int(helper_config.get_number_val("CHUNK_SIZE", default=CHUNK_SIZE))
        self.chunk_overlap = int(helper_config.get_number_val("CHUNK_OVERLAP", default=CHUNK_OVERLAP))

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_ingest(
        self,
        source: str,
        source_type: str,
        credential: str | None,
        original_name: str | None = None,
        staged: bool = False,
    ) -> IngestResult:
        """Ingest a PDF file or a web page, or return the owner's existing copy.

        Args:
            source (str): Local PDF path or http(s) URL.
            source_type (str): "pdf" or "url".
            credential (str | None): The caller's API key.
            original_name (str | None): Human-readable name. Defaults to the file
                name (without a staging timestamp prefix) or the URL.
            staged (bool): The PDF at `source` is a temporary copy owned by this
                call and is removed before returning or raising.

        Returns:
            IngestResult: The document id and whether it already existed.

        Raises:
            ValidationError: API_KEY_MISSING, UNSUPPORTED_TYPE, INVALID_URL, FILE_NOT_FOUND.
            ExtractionError: If the content cannot be loaded, EMPTY_CONTENT if it yields no chunks.
            EmbeddingError: If a batch fails to embed.
            StoreError: If the vector store fails.
        """
        stage = IngestionStage.VALIDATING
        try:
            kind = self._validate(source, source_type, credential)
            name = original_name or self._default_name(source, kind)
            owner_key_hash = hash_owner_key(credential)

            existing_id = await self._duplicates.find_existing(owner_key_hash, name)
            if existing_id:
                await self._record_access(existing_id)
                return IngestResult(document_id=existing_id, is_duplicate=True)

            stage = self._enter(IngestionStage.EXTRACTING, name)
            text = await self._extract(source, kind)

            stage = self._enter(IngestionStage.CHUNKING, name)
            chunks = split_text(text, self.chunk_size, self.chunk_overlap)
            if not chunks:
                raise ExtractionError("No content extracted from document", code="EMPTY_CONTENT")
            self.logging.info("Document '%s' split into %d chunks.", name, len(chunks))

            document_id = new_document_id()
            await self._registry.ensure_collections()

            stage = self._enter(IngestionStage.EMBEDDING, name)
            await self._embed_and_upsert(document_id, chunks, name, kind, credential)

            stage = self._enter(IngestionStage.PERSISTING, name)
            now = utc_now_iso()
            await self._registry.do_commit_metadata(
                DocumentMetadataPayload(
                    document_id=document_id,
                    owner_key_hash=owner_key_hash,
                    original_name=name,
                    source_type=kind,
                    uploaded_at=now,
                    last_accessed_at=now,
                )
            )
            self._enter(IngestionStage.DONE, name)
            self.logging.info("Ingested '%s' as document %s (%d chunks).", name, document_id, len(chunks), color="green")
            return IngestResult(document_id=document_id, chunk_count=len(chunks))
        except PipelineError as exc:
            self.logging.error(
                "Ingestion of '%s' %s → %s: [%s] %s",
                source, stage.value, IngestionStage.FAILED.value, exc.code, exc.message,
            )
            raise
        finally:
            if staged:
                self._release_staged_file(source)

    ##########################################
    ################ STAGES ##################
    ##########################################

    def _validate(self, source: str, source_type: str, credential: str | None) -> SourceType:
        if not credential:
            raise ValidationError("API key is not provided", code="API_KEY_MISSING")
        try:
            kind = SourceType((source_type or "").lower())
        except ValueError:
            raise ValidationError(f"Unsupported document type: '{source_type}'", code="UNSUPPORTED_TYPE")

        if kind == SourceType.URL:
            parsed = urlparse(source or "")
            if not _URL_PATTERN.match(source or "") or not parsed.netloc:
                raise ValidationError("Invalid URL format", code="INVALID_URL")
        elif not source or not os.path.isfile(source):
            raise ValidationError(f"PDF file not found at path: {source}", code="FILE_NOT_FOUND")
        return kind

    async def _extract(self, source: str, kind: SourceType) -> str:
        try:
            if kind == SourceType.PDF:
                return await self._loader.load_pdf(source)
            return await self._loader.load_url(source)
        except PipelineError:
            raise
        except Exception as exc:
            raise ExtractionError(f"Failed to load content: {exc}", cause=exc) from exc

    async def _embed_and_upsert(self, document_id: str, chunks: list[str], name: str, kind: SourceType, credential: str) -> None:
        batch_size = self._embedding.batch_size
        total_batches = (len(chunks) + batch_size - 1) // batch_size
        for batch_no, start in enumerate(range(0, len(chunks), batch_size), start=1):
            batch = chunks[start:start + batch_size]
            vectors = await self._embedding.embed_batch(batch, credential=credential)
            created_at = utc_now_iso()
            points = []
            for offset, (chunk, vector) in enumerate(zip(batch, vectors)):
                chunk_index = start + offset
                payload = ChunkPayload(
                    document_id=document_id,
                    chunk_index=chunk_index,
                    chunk_key=make_chunk_key(document_id, chunk_index),
                    text=chunk,
                    original_name=name,
                    source_type=kind,
                    created_at=created_at,
                )
                points.append({
                    "id": derive_point_id(document_id, chunk_index),
                    "vector": vector,
                    "payload": payload.model_dump(mode="json"),
                })
            await self._rag.do_upsert_points(self._registry.chunk_collection, points)
            self.logging.debug("Stored batch %d/%d for document %s.", batch_no, total_batches, document_id)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _enter(self, stage: IngestionStage, name: str) -> IngestionStage:
        self.logging.debug("Ingestion of '%s' → %s", name, stage.value)
        return stage

    async def _record_access(self, document_id: str) -> None:
        try:
            await self._registry.do_record_access(document_id)
        except PipelineError as exc:
            self.logging.warning("Could not record access for document %s: %s", document_id, exc.message)

    @staticmethod
    def _default_name(source: str, kind: SourceType) -> str:
        if kind == SourceType.URL:
            return source
        return _STAGED_PREFIX.sub("", os.path.basename(source))

    def _release_staged_file(self, path: str) -> None:
        try:
            if path and os.path.exists(path):
                os.remove(path)
                self.logging.debug("Deleted temporary file: %s", path)
        except OSError as exc:
            self.logging.error("Error deleting temporary file %s: %s", path, exc)
