"""FastAPI application entrypoint for gamepipe service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, TypeVar

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config import PipelineConfig
from ..logging import get_logger
from ..manifests import ManifestGraphResolver
from ..migrations import MigrationError
from ..models import FeatureManifest, GeneratedFile, ManifestError
from ..orchestrator import BuildRequest, PipelineError, PipelineOrchestrator

_T = TypeVar("_T")


class SourceFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str
    content: str
    module_id: Optional[str] = Field(default=None, alias="moduleId")


class BuildPayload(BaseModel):
    spec: Dict[str, Any]
    manifests: List[Dict[str, Any]] = []
    files: List[SourceFile] = []
    build_id: Optional[str] = None
    export: Optional[bool] = None


class BuildResponse(BaseModel):
    build_id: str
    status: str
    report: Dict[str, Any]


class ScanPayload(BaseModel):
    files: List[SourceFile]


class ViolationModel(BaseModel):
    file: str
    message: str
    line: int
    column: int


class ScanResponse(BaseModel):
    ok: bool
    violations: List[ViolationModel]
    unparsable: List[str]


class GraphPayload(BaseModel):
    manifests: List[Dict[str, Any]]
    allowlist_prefixes: Optional[List[str]] = None


class GraphResponse(BaseModel):
    ok: bool
    graph: Dict[str, Any]


class MigratePayload(BaseModel):
    spec: Dict[str, Any]
    template_id: str
    from_version: str
    to_version: str


class MigrateResponse(BaseModel):
    spec: Dict[str, Any]
    migration: Dict[str, Any]


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> PipelineOrchestrator:
    return PipelineOrchestrator()


def create_app(
    orchestrator_factory: Callable[[], PipelineOrchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing gamepipe operations."""

    app = FastAPI(title="gamepipe Service", version="1.0.0")
    logger = get_logger("service")

    async def get_orchestrator() -> PipelineOrchestrator:
        return orchestrator_factory()

    async def _in_executor(func: Callable[[], _T]) -> _T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/builds", response_model=BuildResponse)
    async def run_build(
        payload: BuildPayload,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    ) -> BuildResponse:
        request = BuildRequest(
            spec=payload.spec,
            manifests=list(payload.manifests),
            files=[_to_generated(item) for item in payload.files],
            build_id=payload.build_id,
            export=payload.export,
        )
        report = await _in_executor(lambda: orchestrator.run_build(request))
        return BuildResponse(build_id=report.build_id, status=report.status, report=report.to_dict())

    @app.post("/scan", response_model=ScanResponse)
    async def scan(
        payload: ScanPayload,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    ) -> ScanResponse:
        files = [_to_generated(item) for item in payload.files]
        outcome = await _in_executor(lambda: orchestrator.scanner.scan_with_status(files))
        return ScanResponse(
            ok=outcome.ok,
            violations=[ViolationModel(**violation.to_dict()) for violation in outcome.violations],
            unparsable=list(outcome.unparsable),
        )

    @app.post("/graph", response_model=GraphResponse)
    async def graph(
        payload: GraphPayload,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    ) -> GraphResponse:
        manifests = [FeatureManifest.from_dict(item) for item in payload.manifests]
        resolver = (
            ManifestGraphResolver(payload.allowlist_prefixes)
            if payload.allowlist_prefixes is not None
            else orchestrator.resolver
        )
        result = resolver.build(manifests)
        return GraphResponse(ok=result.ok, graph=result.to_dict())

    @app.post("/migrate", response_model=MigrateResponse)
    async def migrate(
        payload: MigratePayload,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    ) -> MigrateResponse:
        result = orchestrator.migrations.migrate(
            payload.spec, payload.template_id, payload.from_version, payload.to_version
        )
        return MigrateResponse(spec=dict(result.spec), migration=result.report.to_dict())

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(_: Any, exc: PipelineError) -> JSONResponse:
        logger.error("Pipeline error: %s", exc)
        return JSONResponse(
            status_code=500, content={"detail": str(exc), "error": "pipeline_error"}
        )

    @app.exception_handler(MigrationError)
    async def migration_error_handler(_: Any, exc: MigrationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ManifestError)
    async def manifest_error_handler(_: Any, exc: ManifestError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc), "errors": exc.errors})

    return app


def _to_generated(item: SourceFile) -> GeneratedFile:
    return GeneratedFile(path=item.path, content=item.content, module_id=item.module_id or None)


def run_service(
    host: str = "127.0.0.1", port: int = 8000, config: PipelineConfig | None = None
) -> None:  # pragma: no cover - integration path
    app = create_app(lambda: PipelineOrchestrator(config))
    uvicorn.run(app, host=host, port=port)
