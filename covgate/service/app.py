"""FastAPI application entrypoint for covgate service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import ConfigError, CoverageReportError, HistoryUnavailable
from ..orchestrator import CheckOutcome, Orchestrator
from ..report import result_to_dict


class CheckRequest(BaseModel):
    path: str
    coverage_files: Optional[List[str]] = None
    coverage_format: Optional[str] = None
    min_threshold: Optional[int] = None
    base_branch: Optional[str] = None
    from_timestamp: Optional[str] = None
    to_timestamp: Optional[str] = None
    enforce_per_committer: Optional[bool] = None
    blame_source: Optional[str] = None


class CommitterResponse(BaseModel):
    identity: str
    name: Optional[str] = None
    total_lines: int
    covered_lines: int
    percentage: float


class CheckResponse(BaseModel):
    status: str
    passed: bool
    threshold: int
    enforce_per_committer: bool
    overall_percentage: float
    total_lines: int
    covered_lines: int
    per_committer: List[CommitterResponse]
    violating_committers: List[str]
    unattributed: Optional[CommitterResponse] = None
    rejected_fragments: List[str]
    degraded_files: List[str]


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing covgate checks."""

    app = FastAPI(title="covgate Service", version="1.0.0")

    async def get_orchestrator() -> Orchestrator:
        # Lazy-instantiate per request to keep state predictable.
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/check", response_model=CheckResponse)
    async def check(
        payload: CheckRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> CheckResponse:
        overrides: Dict[str, Any] = {
            key: value
            for key, value in payload.model_dump(exclude={"path"}).items()
            if value is not None
        }

        def _run_check() -> CheckOutcome:
            return orchestrator.run_check(payload.path, **overrides)

        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(None, _run_check)
        return CheckResponse(**result_to_dict(outcome.result))

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(
        _: Any, exc: FileNotFoundError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    @app.exception_handler(CoverageReportError)
    async def coverage_error_handler(_: Any, exc: CoverageReportError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    @app.exception_handler(HistoryUnavailable)
    async def history_error_handler(_: Any, exc: HistoryUnavailable) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    return app


def run_service(
    host: str = "127.0.0.1", port: int = 8000
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=host, port=port)
