"""Lifecycle sweeper.

Evicts documents whose last access is older than the retention window and
removes orphaned chunk sets left behind by failed ingestions.
"""

from datetime import datetime, timedelta, timezone

from services.documents.DocumentRegistry import DocumentRegistry
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import parse_iso
from shared.exceptions.errors import PipelineError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import OrphanSweepResult, SweepResult


class SweeperService:
    def __init__(self, helper_config: HelperConfig, rag_client: RAGClientInterface, registry: DocumentRegistry) -> None:
        self.logging = helper_config.get_logger()
        self._rag = rag_client
        self._registry = registry
        self.retention_seconds = int(helper_config.get_number_val("LIFECYCLE_RETENTION_SECONDS", default=86400))
        self.orphan_grace_seconds = int(helper_config.get_number_val("LIFECYCLE_ORPHAN_GRACE_SECONDS", default=3600))

    ##########################################
    ############### EVICTION #################
    ##########################################

    async def do_sweep(self, retention_seconds: int | None = None) -> SweepResult:
        """Evict every document not accessed within the retention window.

        Works on one bounded metadata snapshot. Records beyond the snapshot are
        picked up by a later sweep. For each expired document the chunks are
        deleted before the metadata record, so an interrupted eviction leaves an
        orphan chunk set at worst, never a record without chunks that still looks
        alive. A failure on one document is recorded and the sweep continues.

        Args:
            retention_seconds (int | None): Override of LIFECYCLE_RETENTION_SECONDS.

        Returns:
            SweepResult: Evicted and failed document ids.

        Raises:
            StoreError: If the metadata scan itself fails.
        """
        retention = self.retention_seconds if retention_seconds is None else retention_seconds
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=retention)
        points = await self._registry.do_scan_metadata()
        result = SweepResult(scanned_count=len(points))
        self.logging.info("Starting lifecycle sweep over %d metadata record(s), retention %ds.", len(points), retention)

        for point in points:
            payload = point.get("payload") or {}
            document_id = payload.get("document_id")
            if not document_id:
                self.logging.warning("Skipping metadata point %s without document_id.", point.get("id"))
                continue

            try:
                last_accessed = parse_iso(str(payload.get("last_accessed_at") or payload.get("uploaded_at") or ""))
            except ValueError:
                self.logging.error("Document %s has an unparsable access timestamp, skipping.", document_id)
                result.failed_ids.append(document_id)
                continue
            if last_accessed >= cutoff:
                continue

            try:
                await self._registry.do_delete_chunks(document_id)
                await self._rag.do_delete_points_by_ids(self._registry.metadata_collection, [point["id"]])
            except PipelineError as exc:
                self.logging.error("Failed to evict document %s: %s", document_id, exc.message)
                result.failed_ids.append(document_id)
                continue
            result.evicted_ids.append(document_id)
            self.logging.info("Evicted document %s (last accessed %s).", document_id, last_accessed.isoformat(), color="yellow")

        result.evicted_count = len(result.evicted_ids)
        self.logging.info(
            "Lifecycle sweep finished: %d evicted, %d failed.",
            result.evicted_count, len(result.failed_ids), color="green",
        )
        return result

    ##########################################
    ################ ORPHANS #################
    ##########################################

    async def do_sweep_orphans(self) -> OrphanSweepResult:
        """Delete chunk sets whose document has no metadata record.

        Only chunk sets whose newest chunk is older than
        LIFECYCLE_ORPHAN_GRACE_SECONDS are removed, so an ingestion that is still
        writing batches is never touched. Both collections are scanned
        exhaustively.

        Returns:
            OrphanSweepResult: Removed and failed document ids.

        Raises:
            StoreError: If a scan fails.
        """
        await self._registry.ensure_collections()
        metadata = await self._rag.do_scroll_all(self._registry.metadata_collection, with_payload=["document_id"])
        known_ids = {(point.get("payload") or {}).get("document_id") for point in metadata.result}

        chunks = await self._rag.do_scroll_all(
            self._registry.chunk_collection,
            with_payload=["document_id", "created_at"],
        )
        newest_by_document: dict[str, datetime | None] = {}
        for point in chunks.result:
            payload = point.get("payload") or {}
            document_id = payload.get("document_id")
            if not document_id or document_id in known_ids:
                continue
            try:
                created_at = parse_iso(str(payload.get("created_at") or ""))
            except ValueError:
                created_at = None
            previous = newest_by_document.get(document_id)
            if document_id not in newest_by_document or (created_at and (previous is None or created_at > previous)):
                newest_by_document[document_id] = created_at

        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.orphan_grace_seconds)
        result = OrphanSweepResult()
        for document_id, newest in newest_by_document.items():
            # a chunk set without any readable timestamp is treated as old
            if newest is not None and newest >= cutoff:
                continue
            try:
                await self._registry.do_delete_chunks(document_id)
            except PipelineError as exc:
                self.logging.error("Failed to remove orphan chunks of %s: %s", document_id, exc.message)
                result.failed_ids.append(document_id)
                continue
            result.removed_ids.append(document_id)
            self.logging.info("Removed orphan chunks of document %s.", document_id, color="yellow")

        if result.removed_ids or result.failed_ids:
            self.logging.info("Orphan sweep finished: %d removed, %d failed.", len(result.removed_ids), len(result.failed_ids))
        return result
