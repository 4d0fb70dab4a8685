"""Duplicate resolver: finds an already ingested copy of a document."""

from services.documents.DocumentRegistry import DocumentRegistry
from shared.exceptions.errors import StoreError
from shared.helper.HelperConfig import HelperConfig


class DuplicateResolver:
    """Best-effort duplicate detection by (owner_key_hash, original_name).

    Scans one bounded page of the owner's metadata records; documents beyond
    that page are not detected. This is not a uniqueness constraint.
    """

    def __init__(self, helper_config: HelperConfig, registry: DocumentRegistry) -> None:
        self.logging = helper_config.get_logger()
        self._registry = registry

    async def find_existing(self, owner_key_hash: str, original_name: str) -> str | None:
        """Return the document_id of the first matching record, or None.

        A store failure is logged and reported as "no duplicate" so that the
        upload proceeds as a fresh ingestion.
        """
        try:
            points = await self._registry.do_scan_metadata(owner_key_hash)
        except StoreError as exc:
            self.logging.error("Duplicate check failed for '%s': %s", original_name, exc.cause or exc)
            return None

        for point in points:
            payload = point.get("payload") or {}
            if payload.get("owner_key_hash") == owner_key_hash and payload.get("original_name") == original_name:
                document_id = payload.get("document_id")
                if document_id:
                    self.logging.info("Found existing document %s for '%s'.", document_id, original_name)
                    return document_id
        return None
