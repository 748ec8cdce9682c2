"""FastAPI application exposing the projection engine as stateless JSON endpoints.

Every request carries the full assumption document; nothing is stored.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from bizcase.config.settings import get_settings
from bizcase.engine.calculator import CalculationEngine
from bizcase.engine.errors import EngineError
from bizcase.evidence import EvidenceContext, build_evidence_trail
from bizcase.sensitivity import DriverState, SensitivityEngine

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="bizcase API", version="0.1.0")

# CORS: allow the UI dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document: dict[str, Any]
    overrides: dict[str, float] = Field(default_factory=dict)

    def state(self) -> DriverState:
        state = DriverState.from_document(self.document)
        for key, value in self.overrides.items():
            state = state.set_override(key, value)
        return state

    def applied_document(self) -> dict[str, Any]:
        return self.state().apply(self.document)


class MetricsRequest(_Request):
    pass


class EvidenceRequest(_Request):
    metric_key: str = Field(alias="metricKey")
    month: Optional[int] = None
    active_driver_paths: Optional[list[str]] = Field(default=None, alias="activeDriverPaths")


class DriverApplyRequest(_Request):
    pass


class SweepRequest(_Request):
    driver_key: str = Field(alias="driverKey")
    include_monthly: bool = Field(default=False, alias="includeMonthly")


class TornadoRequest(_Request):
    metric: str = "npv"


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=422,
        content={"error": type(exc).__name__, "detail": str(exc), "path": exc.path},
    )


@app.post("/api/metrics")
async def metrics(body: MetricsRequest):
    """Monthly schedule and investment metrics for a document."""
    result = CalculationEngine(settings).calculate(body.applied_document())
    logger.info("Calculated %d periods", len(result.monthly_data))
    return result.to_dict()


@app.post("/api/evidence")
async def evidence(body: EvidenceRequest):
    """Provenance tree for one metric, optionally for one month."""
    document = body.applied_document()
    result = CalculationEngine(settings).calculate(document)
    paths = body.active_driver_paths
    context = EvidenceContext(
        metric_key=body.metric_key,
        month=body.month,
        active_driver_paths=frozenset(paths) if paths is not None else None,
    )
    trail = build_evidence_trail(document, result, context, settings)
    logger.info("Built evidence for %s (month=%s)", body.metric_key, body.month)
    return trail.to_dict()


@app.post("/api/drivers/apply")
async def apply_drivers(body: DriverApplyRequest):
    """The document with every override written into its driver path."""
    return {"document": body.applied_document()}


@app.post("/api/sensitivity/sweep")
async def sweep(body: SweepRequest):
    """Five recomputations, one per range point of a driver."""
    outcomes = SensitivityEngine(settings).sweep(body.document, body.state(), body.driver_key)
    logger.info("Swept driver %s", body.driver_key)
    return {
        "driverKey": body.driver_key,
        "outcomes": [o.to_dict(include_monthly=body.include_monthly) for o in outcomes],
    }


@app.post("/api/sensitivity/tornado")
async def tornado(body: TornadoRequest):
    """Drivers ranked by the swing they cause in one metric."""
    bars = SensitivityEngine(settings).tornado(body.document, body.state(), body.metric)
    logger.info("Ranked %d drivers by %s", len(bars), body.metric)
    return {"metric": body.metric, "bars": [b.to_dict() for b in bars]}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


def run() -> None:
    """Serve the API with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
