"""Document router: PDF upload, URL ingestion, listing and deletion."""

import os
import re
import tempfile
import time

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from server.api.ServiceContainer import ServiceContainer
from server.dependencies.auth import get_container, require_api_key
from server.models.requests import ProcessUrlRequest
from server.models.responses import FileItem, FileListResponse, IngestResponse, MessageResponse
from shared.exceptions.errors import NotFoundError, ValidationError
from shared.helper.HelperIdentity import hash_owner_key

document_router = APIRouter(prefix="/api/documents", tags=["Documents"])

_ALLOWED_CONTENT_TYPES = ("application/pdf",)
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_URL_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def _stage_upload(filename: str, content: bytes) -> str:
    """Write an upload to the temp upload dir as "{millis}-{sanitised name}"."""
    upload_dir = os.path.join(tempfile.gettempdir(), "uploads")
    os.makedirs(upload_dir, exist_ok=True)
    path = os.path.join(upload_dir, f"{int(time.time() * 1000)}-{_UNSAFE_FILENAME_CHARS.sub('_', filename)}")
    with open(path, "wb") as f:
        f.write(content)
    return path


@document_router.post("/upload-pdf")
async def upload_pdf(
    pdf: UploadFile | None = File(default=None),
    api_key: str = Depends(require_api_key),
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Ingest an uploaded PDF, or return the caller's existing copy of it.

    Raises:
        ValidationError: No file, not a PDF, or larger than UPLOAD_MAX_BYTES (10 MB).
    """
    if pdf is None or not pdf.filename:
        raise ValidationError("No file uploaded", code="FILE_MISSING")
    if pdf.content_type not in _ALLOWED_CONTENT_TYPES:
        raise ValidationError("Invalid file type. Only PDF files are allowed.", code="INVALID_FILE_TYPE")

    max_bytes = int(container.helper_config.get_number_val("UPLOAD_MAX_BYTES", default=10 * 1024 * 1024))
    content = await pdf.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise ValidationError(
            f"File size too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
            code="FILE_TOO_LARGE",
        )

    staged_path = _stage_upload(pdf.filename, content)
    result = await container.ingestion_service.do_ingest(
        source=staged_path,
        source_type="pdf",
        credential=api_key,
        original_name=pdf.filename,
        staged=True,
    )
    response = IngestResponse(
        document_id=result.document_id,
        is_duplicate=result.is_duplicate,
        message="File already exists" if result.is_duplicate else "PDF processed successfully",
    )
    return JSONResponse(content=response.model_dump(by_alias=True))


@document_router.post("/process-url")
async def process_url(
    body: ProcessUrlRequest,
    api_key: str = Depends(require_api_key),
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Ingest a web page. A URL without scheme is fetched over http://."""
    url = body.url.strip()
    if not url:
        raise ValidationError("URL is required", code="URL_MISSING")
    if not _URL_SCHEME.match(url):
        url = f"http://{url}"

    result = await container.ingestion_service.do_ingest(source=url, source_type="url", credential=api_key)
    response = IngestResponse(
        document_id=result.document_id,
        is_duplicate=result.is_duplicate,
        message="URL already exists" if result.is_duplicate else "URL processed successfully",
    )
    return JSONResponse(content=response.model_dump(by_alias=True))


@document_router.get("/list")
async def list_documents(
    api_key: str = Depends(require_api_key),
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """List the documents uploaded with the caller's API key."""
    summaries = await container.registry.do_list_documents(owner_key_hash=hash_owner_key(api_key))
    response = FileListResponse(files=[FileItem.from_summary(summary) for summary in summaries])
    return JSONResponse(content=response.model_dump(by_alias=True))


@document_router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    api_key: str = Depends(require_api_key),
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Delete a document and all of its chunks.

    Raises:
        NotFoundError: DOCUMENT_NOT_FOUND if the document has no metadata record.
    """
    if not await container.registry.do_delete_document(document_id):
        raise NotFoundError(f"Document {document_id} not found", code="DOCUMENT_NOT_FOUND")
    return JSONResponse(content=MessageResponse(message="Document deleted successfully").model_dump(by_alias=True))
