import secrets
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from doccraft import __version__
from doccraft.config import ServiceConfig
from doccraft.generation import (
    Artifact,
    ErrorKind,
    GenerationError,
    GenerationService,
    SourceNotFoundError,
    build_service,
)
from doccraft.logging_setup import configure_logging


logger = structlog.get_logger(__name__)

_ERROR_SUMMARIES = {
    ErrorKind.VALIDATION: "Invalid input",
    ErrorKind.ENGINE_UNAVAILABLE: "PDF generation failed",
    ErrorKind.CONVERSION: "PDF generation failed",
    ErrorKind.IO: "PDF generation failed",
}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}

_STREAM_CHUNK = 64 * 1024


def _new_request_token() -> str:
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def _iter_artifact(artifact: Artifact):
    handle = artifact.handle
    while True:
        chunk = handle.read(_STREAM_CHUNK)
        if not chunk:
            break
        yield chunk


def status_for(error: GenerationError) -> int:
    if error.kind is ErrorKind.VALIDATION:
        return 400
    if isinstance(error, SourceNotFoundError):
        return 404
    return 500


def _error_body(summary: str, message: str, exc: BaseException, debug: bool) -> dict[str, object]:
    body: dict[str, object] = {"error": summary, "message": message}
    if debug:
        body["details"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def create_app(
    config: ServiceConfig | None = None,
    service: GenerationService | None = None,
) -> FastAPI:
    """Build the HTTP front end.

    The service is wired in the lifespan hook rather than at import time so
    that a missing or unwritable output directory fails startup loudly.
    """
    cfg = config or ServiceConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.service = service or build_service(cfg)
        available = await app.state.service.engine_available()
        logger.info(
            "DocCraft PDF microservice started",
            docs_dir=str(cfg.docs_dir),
            output_dir=str(cfg.output_dir),
            pandoc_available=available,
        )
        if not available:
            logger.warning("Pandoc not available, PDF generation will fail")
        yield

    app = FastAPI(
        title="DocCraft PDF",
        version=__version__,
        description="Renders sets of Markdown documents into branded PDFs with pandoc.",
        lifespan=lifespan,
    )
    app.state.config = cfg

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client = request.client.host if request.client else "-"
        logger.info("HTTP request", method=request.method, path=request.url.path, ip=client)
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.cors_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-DocCraft-Cache"],
    )

    @app.exception_handler(GenerationError)
    async def handle_generation_error(request: Request, exc: GenerationError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("Error generating PDF", kind=exc.kind.value, detail=exc.detail)
        return JSONResponse(
            status_code=status_code,
            content=_error_body(_ERROR_SUMMARIES[exc.kind], exc.detail, exc, cfg.debug),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            content = {"error": "Not found", "message": f"Route {request.method} {request.url.path} not found"}
        else:
            content = {"error": "Request failed", "message": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error")
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", str(exc), exc, cfg.debug),
        )

    @app.get("/health")
    async def health(request: Request) -> dict[str, object]:
        """Basic health check endpoint, including whether pandoc can be run."""
        svc: GenerationService = request.app.state.service
        return {
            "status": "ok",
            "service": "DocCraft PDF",
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "pandoc": await svc.engine_available(),
        }

    # GET /pdf?docs=01-intro.md,02-guide.md&title=DocCraft&subtitle=Branded%20PDF&author=Andrew&download=inline
    @app.get("/pdf", response_class=StreamingResponse)
    async def generate_pdf(
        request: Request,
        docs: str | None = Query(None, description="Comma-separated list of markdown files"),
        title: str | None = None,
        subtitle: str | None = None,
        author: str | None = None,
        date: str | None = None,
        download: str | None = Query(None, description='"inline" or "attachment"'),
    ) -> StreamingResponse:
        svc: GenerationService = request.app.state.service
        token = _new_request_token()
        logger.info("New PDF generation request", request_token=token, docs=docs, title=title)
        result = await svc.generate(
            docs,
            title=title,
            subtitle=subtitle,
            author=author,
            date=date,
            disposition=download,
            request_token=token,
            open_stream=True,
        )
        headers = {
            "Content-Length": str(result.size),
            "Content-Disposition": f'{result.request.disposition}; filename="{result.filename}"',
            "Cache-Control": "public, max-age=3600",
            "X-DocCraft-Cache": "hit" if result.cached else "miss",
        }
        logger.info("Sending PDF", request_token=token, filename=result.filename, size=result.size)
        return StreamingResponse(
            _iter_artifact(result.artifact),
            media_type="application/pdf",
            headers=headers,
            background=BackgroundTask(result.artifact.close),
        )

    @app.post("/maintenance/sweep")
    async def sweep(request: Request, max_age_hours: float = Query(24.0, ge=0)) -> dict[str, int]:
        svc: GenerationService = request.app.state.service
        removed = await svc.sweep_old_artifacts(max_age_hours * 3600)
        return {"removed": removed}

    return app


def run() -> None:
    """Run the API server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:3000). Set PORT env var to override.
    """
    import uvicorn

    config = ServiceConfig.from_env()
    configure_logging(config.log_level)
    uvicorn.run(
        "doccraft.webapi:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=config.reload,
        log_config=None,
    )


if __name__ == "__main__":
    run()
