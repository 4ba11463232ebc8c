"""FastAPI application entrypoint for docsync service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional, TypeVar

try:  # pragma: no cover - optional dependency
    from fastapi import Depends, FastAPI
    from fastapi.responses import JSONResponse
    from pydantic import BaseModel

    _FASTAPI_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - service mode optional
    FastAPI = None  # type: ignore[assignment]
    Depends = None  # type: ignore[assignment]
    JSONResponse = None  # type: ignore[assignment]
    BaseModel = object  # type: ignore[assignment]
    _FASTAPI_AVAILABLE = False

from ..errors import DocSyncError
from ..models import RunReport
from ..orchestrator import Orchestrator
from ..validator import ValidationIssue, ValidationReport

_T = TypeVar("_T")


class GenerateRequest(BaseModel):
    path: str
    force: bool = False


class SyncRequest(BaseModel):
    path: str
    dry_run: bool = False


class ValidateRequest(BaseModel):
    path: str
    strict: bool = False


class OutcomeModel(BaseModel):
    identity: str
    status: str
    change: Optional[str] = None
    orphaned: List[str] = []
    error: Optional[str] = None
    path: Optional[str] = None


class RunResponse(BaseModel):
    summary: str
    created: int
    updated: int
    skipped: int
    pending: int
    failed: int
    outcomes: List[OutcomeModel]


class IssueModel(BaseModel):
    path: str
    message: str
    line: Optional[int] = None


class ValidateResponse(BaseModel):
    ok: bool
    checked: int
    errors: List[IssueModel]
    warnings: List[IssueModel]


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


async def _run_blocking(func: Callable[[], _T]) -> _T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func)


def _run_response(report: RunReport) -> RunResponse:
    return RunResponse(
        summary=report.summary(),
        created=report.created,
        updated=report.updated,
        skipped=report.skipped,
        pending=report.pending,
        failed=report.failed,
        outcomes=[
            OutcomeModel(
                identity=outcome.identity,
                status=outcome.status,
                change=outcome.change.value if outcome.change is not None else None,
                orphaned=list(outcome.orphaned),
                error=outcome.error,
                path=outcome.path,
            )
            for outcome in report.outcomes
        ],
    )


def _issue(issue: ValidationIssue) -> IssueModel:
    return IssueModel(path=issue.path, message=issue.message, line=issue.line)


def _validate_response(report: ValidationReport) -> ValidateResponse:
    return ValidateResponse(
        ok=report.ok,
        checked=report.checked,
        errors=[_issue(issue) for issue in report.errors],
        warnings=[_issue(issue) for issue in report.warnings],
    )


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing docsync operations."""

    if not _FASTAPI_AVAILABLE:  # pragma: no cover - validated via unit tests
        raise RuntimeError(
            "FastAPI is required for service mode. Install it with `pip install docsync[service]`."
        )

    app = FastAPI(title="docsync service", version="1.0.0")

    async def get_orchestrator() -> Orchestrator:
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/generate", response_model=RunResponse)
    async def generate(
        payload: GenerateRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> RunResponse:
        report = await _run_blocking(
            lambda: orchestrator.run_generate(payload.path, force=payload.force)
        )
        return _run_response(report)

    @app.post("/sync", response_model=RunResponse)
    async def sync(
        payload: SyncRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> RunResponse:
        report = await _run_blocking(
            lambda: orchestrator.run_sync(payload.path, dry_run=payload.dry_run)
        )
        return _run_response(report)

    @app.post("/validate", response_model=ValidateResponse)
    async def validate(
        payload: ValidateRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> ValidateResponse:
        report = await _run_blocking(
            lambda: orchestrator.run_validate(payload.path, strict=payload.strict)
        )
        return _validate_response(report)

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(NotADirectoryError)
    async def not_a_directory_handler(_: Any, exc: NotADirectoryError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(DocSyncError)
    async def docsync_error_handler(_: Any, exc: DocSyncError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "127.0.0.1", port: int = 8000
) -> None:  # pragma: no cover - integration path
    if not _FASTAPI_AVAILABLE:
        raise RuntimeError(
            "FastAPI is required for service mode. Install it with `pip install docsync[service]`."
        )

    try:
        import uvicorn
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "uvicorn is required to run the service. Install it with `pip install uvicorn`."
        ) from exc

    uvicorn.run(create_app(), host=host, port=port)
