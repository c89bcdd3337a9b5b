"""FastAPI application entrypoint for infraplan service mode."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..catalog import ModuleCatalog
from ..config import EngineConfig
from ..errors import InfraPlanError
from ..logging import get_logger
from ..models import FeatureSignal
from ..pipeline import Pipeline, PipelineResult, PipelineState

logger = get_logger("service")


class SignalModel(BaseModel):
    id: str
    present: bool
    evidence: Optional[str] = None


class PipelineRequest(BaseModel):
    signals: List[SignalModel]
    parameters: Dict[str, Any] = Field(default_factory=dict)
    modules: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class ClassifyResponse(BaseModel):
    pattern: str


class HealthResponse(BaseModel):
    status: str
    catalog_version: str


def create_app(catalog: ModuleCatalog, config: EngineConfig | None = None) -> FastAPI:
    """Create the FastAPI application exposing the engine stages."""

    base_config = config or EngineConfig(root=Path.cwd())
    app = FastAPI(title="infraplan", version="0.1.0")

    def _pipeline_for(payload: PipelineRequest) -> Pipeline:
        modules = {key: dict(value) for key, value in base_config.modules.items()}
        for module_id, overrides in payload.modules.items():
            modules.setdefault(module_id, {}).update(overrides)
        merged = replace(
            base_config,
            parameters={**base_config.parameters, **payload.parameters},
            modules=modules,
        )
        return Pipeline.from_config(catalog, merged)

    async def _run(payload: PipelineRequest, until: PipelineState) -> PipelineResult:
        signals = [
            FeatureSignal(id=item.id, present=item.present, evidence=item.evidence)
            for item in payload.signals
        ]

        def _execute() -> PipelineResult:
            # Fresh pipeline per request; nothing is shared between concurrent calls.
            return _pipeline_for(payload).run(signals, until=until)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _execute)

    def _failure_response(result: PipelineResult) -> JSONResponse:
        assert result.failure is not None
        return JSONResponse(status_code=422, content={"detail": result.failure.to_dict()})

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", catalog_version=catalog.version)

    @app.post("/classify", response_model=ClassifyResponse)
    async def classify(payload: PipelineRequest) -> Any:
        result = await _run(payload, PipelineState.CLASSIFIED)
        if result.failure is not None:
            return _failure_response(result)
        assert result.pattern is not None
        return ClassifyResponse(pattern=result.pattern.value)

    @app.post("/validate")
    async def validate(payload: PipelineRequest) -> Any:
        result = await _run(payload, PipelineState.VALIDATED)
        if result.failure is not None:
            return _failure_response(result)
        assert result.validation is not None
        return result.validation.to_dict()

    @app.post("/plan")
    async def plan(payload: PipelineRequest) -> Any:
        result = await _run(payload, PipelineState.PLAN_READY)
        if result.failure is not None:
            return _failure_response(result)
        assert result.plan is not None
        return result.plan.to_dict()

    @app.exception_handler(InfraPlanError)
    async def engine_error_handler(
        _: Any, exc: InfraPlanError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": {"kind": exc.kind, "message": str(exc)}})

    return app


def run_service(
    catalog: ModuleCatalog,
    config: EngineConfig | None = None,
    *,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app(catalog, config)
    logger.info("Serving catalog %s on %s:%d", catalog.version, host, port)
    uvicorn.run(app, host=host, port=port)
