"""Chat router: answer a question from one document's chunks."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from server.api.ServiceContainer import ServiceContainer
from server.dependencies.auth import get_container, require_api_key
from server.models.requests import ChatQueryRequest
from server.models.responses import ChatQueryResponse

chat_router = APIRouter(prefix="/api/chat", tags=["Chat"])


@chat_router.post("/query")
async def handle_query(
    body: ChatQueryRequest,
    api_key: str = Depends(require_api_key),
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Answer `query` about `documentId` with the caller's provider key.

    Args:
        body (ChatQueryRequest): The question and the document to answer from.

    Returns:
        JSONResponse: {"success": true, "response": "..."}
    """
    container.logging.info("Query received for document %s: %r", body.document_id, body.query[:80])
    answer = await container.retrieval_service.do_answer(body.query, body.document_id, credential=api_key)
    return JSONResponse(content=ChatQueryResponse(response=answer).model_dump(by_alias=True))
