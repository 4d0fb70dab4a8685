from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from server.api.ServiceContainer import ServiceContainer
from server.dependencies.auth import get_container
from server.models.requests import KeyVerifyRequest
from server.models.responses import KeyVerifyResponse

key_router = APIRouter(prefix="/api/key", tags=["Key"])


@key_router.post("/verify")
async def verify_key(body: KeyVerifyRequest, container: ServiceContainer = Depends(get_container)) -> JSONResponse:
    """Check whether a provider API key is accepted. A rejected key is still a 200 with valid=false."""
    valid, message = await container.key_service.do_verify(body.api_key)
    return JSONResponse(content=KeyVerifyResponse(valid=valid, message=message).model_dump(by_alias=True))
