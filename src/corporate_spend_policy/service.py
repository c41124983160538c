"""HTTP service exposing the policy engine."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, FastAPI, Request
from fastapi.responses import JSONResponse

from .engine import SpendPolicyEngine
from .exceptions import InvalidRequestError
from .log import configure_logging
from .policy_api import evaluate_request

logger = logging.getLogger(__name__)

router = APIRouter()


def _engine(request: Request) -> SpendPolicyEngine:
    return request.app.state.engine


@router.post("/evaluate")
def evaluate(
    request: Request,
    payload: dict[str, Any] = Body(...),
    verify: bool = False,
) -> dict[str, Any]:
    return evaluate_request(payload, _engine(request), verify_alternatives=verify)


@router.get("/meta")
def get_policy_meta(request: Request) -> dict[str, str]:
    engine = _engine(request)
    return {
        "organizationId": engine.policy.organization_id,
        "version": engine.version.label,
        "snapshotId": engine.version.snapshot_id,
    }


def _invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
    logger.info("Rejected invalid request: %s", exc)
    return JSONResponse(status_code=422, content=exc.to_dict())


def create_app(engine: SpendPolicyEngine | None = None) -> FastAPI:
    """Create the FastAPI app; the default engine loads config/spend_policy.yaml."""

    configure_logging()
    app = FastAPI(title="Corporate Spend Policy")
    app.state.engine = engine if engine is not None else SpendPolicyEngine.from_file()
    app.add_exception_handler(InvalidRequestError, _invalid_request)
    app.include_router(router, prefix="/v1/policy", tags=["policy"])
    logger.info(
        "Policy loaded: %s (%s)",
        app.state.engine.policy.organization_id,
        app.state.engine.version.snapshot_id,
    )
    return app
