"""
Core API backend for toolplan.

It exposes the following endpoints:
- **GET /health**          - liveness probe for health checks.
- **GET /tools**           - registered tool schemas.
- **POST /plans/validate** - statically check a plan document without running it.
- **POST /agent**          - run one turn: plan, validate, execute, respond.
"""

import logging

from fastapi import (
    FastAPI,
    HTTPException,
)

from toolplan.agent.pipeline import run_turn
from toolplan.agent.planner_interface import load_planner
from toolplan.agent.tool_executor import LocalToolInvoker
from toolplan.api.models import (
    MessageRequest,
    MessageResponse,
    ToolListResponse,
    ValidatePlanRequest,
    ValidatePlanResponse,
)
from toolplan.common import (
    AnsiColors,
    colored_print,
)
from toolplan.config import settings
from toolplan.core.errors import (
    PlanParseError,
    PlannerError,
    PlanValidationError,
    ToolInvocationError,
)
from toolplan.core.schema import DirectResponse
from toolplan.core.validator import validate_plan
from toolplan.tools import get_tool_schemas

logger = logging.getLogger(__name__)

app = FastAPI(title="toolplan API", version="0.1.0", description="Plan validation and execution")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.get("/tools", response_model=ToolListResponse, summary="List registered tools")
async def list_tools() -> ToolListResponse:
    """Return every registered tool schema, sorted by name."""
    registry = get_tool_schemas()
    return ToolListResponse(tools=[registry[name] for name in registry.names()])


@app.post("/plans/validate", response_model=ValidatePlanResponse, summary="Validate a plan")
async def validate_endpoint(req: ValidatePlanRequest) -> ValidatePlanResponse:
    """Check template references of a plan against the current registry snapshot."""
    if isinstance(req.plan, DirectResponse):
        return ValidatePlanResponse(valid=True)
    try:
        validate_plan(req.plan, get_tool_schemas())
    except PlanValidationError as exc:
        return ValidatePlanResponse(valid=False, error=exc.to_dict())
    return ValidatePlanResponse(valid=True)


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
def agent_endpoint(req: MessageRequest) -> MessageResponse:
    """Process a user message through the plan/execute pipeline."""
    invoker = LocalToolInvoker(context_id=req.context_id, user_id=req.user_id)

    try:
        turn = run_turn(
            req.message,
            planner=load_planner(),
            invoker=invoker,
            registry=get_tool_schemas(),
            timeout=settings.TURN_TIMEOUT or None,
        )
    except PlanParseError as exc:
        logger.warning("Planner produced an invalid plan: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except PlannerError as exc:
        logger.error("Model call failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ToolInvocationError as exc:
        logger.error("Tool runtime unavailable: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return MessageResponse(
        reply=turn.reply,
        plan_type=turn.plan.type,
        validation_error=turn.validation_error,
        outcome=turn.outcome,
        steps=turn.steps,
    )


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Welcome to the toolplan API! Use /docs for API documentation."}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg‑import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting toolplan API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.model_dump(exclude={"OPENAI_API_KEY", "ANTHROPIC_API_KEY"}))

    colored_print(f"🔮 toolplan API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "toolplan.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m toolplan.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
