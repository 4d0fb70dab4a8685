"""Cleanup router: admin access to the lifecycle sweeper and the full document list."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from server.api.ServiceContainer import ServiceContainer
from server.dependencies.auth import get_container, verify_admin
from server.models.responses import CleanupRunResponse, FileItem, FileListResponse, MessageResponse
from shared.exceptions.errors import NotFoundError

cleanup_router = APIRouter(prefix="/api/cleanup", tags=["Cleanup"], dependencies=[Depends(verify_admin)])


@cleanup_router.post("/run")
async def run_cleanup(container: ServiceContainer = Depends(get_container)) -> JSONResponse:
    """Run one lifecycle sweep and one orphan sweep now."""
    sweep = await container.sweeper_service.do_sweep()
    orphans = await container.sweeper_service.do_sweep_orphans()
    response = CleanupRunResponse(
        message=f"Cleanup completed. Deleted {sweep.evicted_count} documents.",
        deleted_count=sweep.evicted_count,
        deleted_docs=sweep.evicted_ids,
        failed_docs=sweep.failed_ids,
        orphans_removed=orphans.removed_ids,
    )
    return JSONResponse(content=response.model_dump(by_alias=True))


@cleanup_router.get("/list")
async def list_all_documents(container: ServiceContainer = Depends(get_container)) -> JSONResponse:
    """List the documents of every owner."""
    summaries = await container.registry.do_list_documents()
    response = FileListResponse(files=[FileItem.from_summary(summary) for summary in summaries])
    return JSONResponse(content=response.model_dump(by_alias=True))


@cleanup_router.delete("/{document_id}")
async def delete_any_document(document_id: str, container: ServiceContainer = Depends(get_container)) -> JSONResponse:
    """Delete any document regardless of its owner."""
    if not await container.registry.do_delete_document(document_id):
        raise NotFoundError("Document not found", code="DOCUMENT_NOT_FOUND")
    return JSONResponse(content=MessageResponse(message=f"Document {document_id} deleted successfully").model_dump(by_alias=True))
