"""FastAPI application entry point for the document chat API."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import os
from server.api.ServiceContainer import ServiceContainer
from server.api.routers.ChatRouter import chat_router
from server.api.routers.CleanupRouter import cleanup_router
from server.api.routers.DocumentRouter import document_router
from server.api.routers.KeyRouter import key_router
from shared.exceptions.errors import PipelineError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "1.0.0")


def create_app(
    container: ServiceContainer | None = None,
    transports: dict[str, httpx.AsyncBaseTransport] | None = None,
) -> FastAPI:
    """Build the API application.

    Args:
        container (ServiceContainer | None): Prebuilt container, e.g. from tests.
            A container is built from the environment when None.
        transports (dict[str, httpx.AsyncBaseTransport] | None): Client transports
            passed to ServiceContainer.boot().
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application startup and shutdown."""
        app.state.logging = logging
        app.state.container = container or ServiceContainer(helper_config=HelperConfig(logger=logging))
        await app.state.container.boot(transports=transports)
        app.state.container.sweep_scheduler.start()
        app.state.logging.info("Document chat API ready.")
        yield

        # Shutdown
        await app.state.container.close()
        app.state.logging.info("Document chat API shut down.")

    app = FastAPI(
        title="Document Chat API",
        description="Upload PDFs or web pages and chat with them through retrieval-augmented generation.",
        version=app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key", "X-Admin-Key"],
    )

    @app.exception_handler(PipelineError)
    async def handle_pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
        include_details = request.app.state.container.helper_config.is_development()
        if exc.status_code >= 500:
            logging.error("%s %s failed: [%s] %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(include_details=include_details))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logging.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = {"error": "Something went wrong!", "code": "INTERNAL_ERROR"}
        if request.app.state.container.helper_config.is_development():
            body["details"] = str(exc)
        return JSONResponse(status_code=500, content=body)

    @app.get("/", tags=["Health"])
    async def health() -> dict:
        return {"status": "ok", "message": "RAG Chat API is running", "version": app_version}

    app.include_router(document_router)
    app.include_router(chat_router)
    app.include_router(key_router)
    app.include_router(cleanup_router)
    return app


app = create_app()


# Server Start
if __name__ == "__main__":
    # start server
    import uvicorn
    port = int(os.getenv("PORT", "3000"))
    logging.info(f"Starting document chat API v{app_version} from root dir: {os.getenv('ROOT_DIR', os.getcwd())} on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port)
