from pydantic import BaseModel, ConfigDict, Field

from shared.models.document import DocumentSummary


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class IngestResponse(_CamelModel):
    success: bool = True
    document_id: str = Field(alias="documentId")
    is_duplicate: bool = Field(default=False, alias="isDuplicate")
    message: str


class FileItem(_CamelModel):
    document_id: str = Field(alias="documentId")
    original_filename: str = Field(alias="originalFilename")
    uploaded_at: str | None = Field(default=None, alias="uploadedAt")
    last_accessed: str | None = Field(default=None, alias="lastAccessed")

    @classmethod
    def from_summary(cls, summary: DocumentSummary) -> "FileItem":
        return cls(
            document_id=summary.document_id,
            original_filename=summary.original_name,
            uploaded_at=summary.uploaded_at,
            last_accessed=summary.last_accessed_at,
        )


class FileListResponse(_CamelModel):
    success: bool = True
    files: list[FileItem]


class MessageResponse(_CamelModel):
    success: bool = True
    message: str


class ChatQueryResponse(_CamelModel):
    success: bool = True
    response: str


class KeyVerifyResponse(_CamelModel):
    success: bool = True
    valid: bool
    message: str


class CleanupRunResponse(_CamelModel):
    success: bool = True
    message: str
    deleted_count: int = Field(alias="deletedCount")
    deleted_docs: list[str] = Field(default=[], alias="deletedDocs")
    failed_docs: list[str] = Field(default=[], alias="failedDocs")
    orphans_removed: list[str] = Field(default=[], alias="orphansRemoved")
