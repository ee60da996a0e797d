from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from omegaconf import DictConfig
from starlette.concurrency import run_in_threadpool

from .audit_log import AuditLog
from .auth import require_token
from .configuration import configure_logging, load_settings
from .content_store import build_content_store
from .database import PublicationStore
from .exceptions import InvalidRequest, PublicationError, StorageError
from .lifecycle import PublicationLifecycle
from .middleware import AccessLogMiddleware, SecurityHeadersMiddleware, client_ip
from .models import LogEntry, Publication, Requester, UploadResponse
from .resolver import Gone, NotFound, PublicationResolver

logger = logging.getLogger(__name__)

NOT_RELEVANT_MESSAGE = "The printed form is not relevant"
NOT_FOUND_MESSAGE = "Printable form not found"

_ERROR_STATUS = {
    InvalidRequest: 400,
    StorageError: 500,
}

router = APIRouter()


def create_app(settings: Optional[DictConfig] = None) -> FastAPI:
    """
    Build the application and its collaborators.

    The store, content store, audit log, lifecycle engine and resolver are
    created once here and live on ``app.state`` for the life of the process.
    """
    settings = settings if settings is not None else load_settings()
    configure_logging(settings)

    store = PublicationStore(Path(settings.storage.database_path))
    audit = AuditLog(Path(settings.storage.database_path))
    content = build_content_store(settings)

    app = FastAPI(title="Publication API", version="0.1.0")
    app.state.settings = settings
    app.state.audit = audit
    app.state.lifecycle = PublicationLifecycle(
        store,
        content,
        audit,
        public_base_url=settings.links.public_base_url,
        default_mime_type=settings.upload.default_mime_type,
    )
    app.state.resolver = PublicationResolver(store, content, audit, locks=app.state.lifecycle.locks)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(AccessLogMiddleware)
    app.add_exception_handler(PublicationError, publication_error_handler)
    app.include_router(router)

    logger.info(f"Publications database: {store.db_path}; content backend: {settings.content.backend}")
    return app


async def publication_error_handler(request: Request, exc: PublicationError) -> JSONResponse:
    status_code = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content={"error": exc.code, "detail": exc.message})


def get_settings(request: Request) -> DictConfig:
    return request.app.state.settings


def get_lifecycle(request: Request) -> PublicationLifecycle:
    return request.app.state.lifecycle


def get_resolver(request: Request) -> PublicationResolver:
    return request.app.state.resolver


def get_audit_log(request: Request) -> AuditLog:
    return request.app.state.audit


def get_requester(request: Request) -> Requester:
    return Requester(ip=client_ip(request), user_agent=request.headers.get("user-agent", ""))


@router.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@router.post("/api/upload", response_model=UploadResponse, dependencies=[Depends(require_token)])
async def upload_publication(
    request: Request,
    file: Optional[UploadFile] = File(None),
    file_id: str = Form(""),
    document_id: str = Form(""),
    mime_type: str = Form(""),
    settings: DictConfig = Depends(get_settings),
    lifecycle: PublicationLifecycle = Depends(get_lifecycle),
    requester: Requester = Depends(get_requester),
) -> UploadResponse:
    if not file_id or not document_id:
        raise HTTPException(status_code=400, detail="file_id and document_id are required")
    if file is None:
        raise HTTPException(status_code=400, detail="file is required (multipart/form-data)")

    allowed_types: List[str] = list(settings.upload.allowed_content_types)
    if (file.content_type or "") not in allowed_types:
        raise HTTPException(status_code=415, detail="Only PDF files are allowed")

    max_size = int(settings.upload.max_file_size)
    data = await file.read(max_size + 1)
    await file.close()
    if len(data) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds the limit of {max_size / (1024 * 1024):.0f}MB",
        )

    # The lifecycle engine blocks on SQLite and file I/O
    result = await run_in_threadpool(
        lifecycle.apply,
        file_id,
        document_id,
        data,
        mime_type or None,
        requester,
        str(request.base_url),
    )
    return UploadResponse(
        message=result.message,
        outcome=result.outcome,
        file_id=result.file_id,
        link=result.link,
        status=result.publication.status,
        file_type=result.publication.file_type,
    )


@router.get("/publications/{file_id}")
def get_publication(
    file_id: str,
    background_tasks: BackgroundTasks,
    resolver: PublicationResolver = Depends(get_resolver),
    requester: Requester = Depends(get_requester),
) -> Response:
    try:
        resolution = resolver.resolve(file_id, requester=requester, record_view=False)
    except StorageError as exc:
        logger.error(f"Resolving {file_id} failed: {exc}")
        return PlainTextResponse("Server error", status_code=500)

    if isinstance(resolution, NotFound):
        return PlainTextResponse(NOT_FOUND_MESSAGE, status_code=404)
    if isinstance(resolution, Gone):
        return PlainTextResponse(NOT_RELEVANT_MESSAGE, status_code=410)
    background_tasks.add_task(resolver.record_view, file_id, requester)
    return Response(content=resolution.data, media_type=resolution.mime_type)


@router.get("/api/status/{file_id}", response_model=Publication, dependencies=[Depends(require_token)])
def publication_status(file_id: str, resolver: PublicationResolver = Depends(get_resolver)) -> Publication:
    publication = resolver.status(file_id)
    if publication is None:
        raise HTTPException(status_code=404, detail="not found")
    return publication


@router.get(
    "/api/documents/{document_id}",
    response_model=list[Publication],
    dependencies=[Depends(require_token)],
)
def document_history(document_id: str, resolver: PublicationResolver = Depends(get_resolver)) -> list[Publication]:
    publications = resolver.history(document_id)
    if not publications:
        raise HTTPException(status_code=404, detail="not found")
    return publications


@router.get("/api/logs", response_model=list[LogEntry], dependencies=[Depends(require_token)])
def list_logs(
    settings: DictConfig = Depends(get_settings),
    audit: AuditLog = Depends(get_audit_log),
) -> list[LogEntry]:
    return audit.list_entries(limit=int(settings.logs.list_limit))


def main() -> None:
    """Run the API server with uvicorn on the configured host and port."""
    import uvicorn

    settings = load_settings()
    app = create_app(settings)
    logger.info(f"Publication service starting on port {settings.server.port}")
    uvicorn.run(app, host=str(settings.server.host), port=int(settings.server.port))


if __name__ == "__main__":  # pragma: no cover
    main()
