from fastapi import Header, Request

from server.api.ServiceContainer import ServiceContainer
from shared.exceptions.errors import AuthorizationError, ValidationError

_LOCAL_HOSTS = ("127.0.0.1", "::1", "::ffff:127.0.0.1", "localhost")


def get_container(request: Request) -> ServiceContainer:
    """Return the service container attached to the running app."""
    return request.app.state.container


async def require_api_key(x_api_key: str | None = Header(default=None)) -> str:
    """Return the caller's X-API-Key header.

    The key is the caller's own provider key: it is forwarded to the embedding
    and generation providers and its hash scopes the caller's documents.

    Raises:
        ValidationError: API_KEY_MISSING (401) if the header is missing or empty.
    """
    if not x_api_key:
        raise ValidationError("API key is required", code="API_KEY_MISSING")
    return x_api_key


async def verify_admin(request: Request, x_admin_key: str | None = Header(default=None)) -> None:
    """Allow admin routes from localhost, in development mode, or with the X-Admin-Key header.

    Args:
        request (Request): The FastAPI request object (provides app.state).
        x_admin_key (str | None): The value of the X-Admin-Key header.

    Raises:
        AuthorizationError: 403 if none of the conditions hold.
    """
    helper_config = request.app.state.container.helper_config
    client_host = request.client.host if request.client else ""
    if client_host in _LOCAL_HOSTS or helper_config.is_development():
        return
    expected_key = helper_config.get_string_val("ADMIN_KEY", default="")
    if expected_key and x_admin_key == expected_key:
        return
    raise AuthorizationError("Unauthorized access")
