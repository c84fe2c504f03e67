from fastapi import APIRouter, HTTPException, Header
from typing import Optional
import os

from quiz_server.services.ai.orchestrator import get_orchestrator
from quiz_server.services.observability import telemetry


router = APIRouter(prefix="/internal", tags=["internal"])


def _require_admin_if_configured(x_admin_token: Optional[str]) -> None:
    expected = os.getenv("ADMIN_TOKEN")
    if expected and x_admin_token != expected:
        raise HTTPException(status_code=401, detail="unauthorized")


@router.get("/ai-stats", summary="AI provider statistics", description="Per-provider attempt/success/rate-limit/error counters, generation latency, fallbacks and recent failovers.")
def get_ai_stats(x_admin_token: Optional[str] = Header(None)):
    _require_admin_if_configured(x_admin_token)
    return {"ok": True, "active_provider": get_orchestrator().active_provider_name, **telemetry.snapshot()}


@router.post("/ai-stats/reset", summary="Reset AI statistics", description="Clears in-memory AI counters (admin-protected when ADMIN_TOKEN is set).")
def reset_ai_stats(x_admin_token: Optional[str] = Header(None)):
    _require_admin_if_configured(x_admin_token)
    telemetry.reset()
    return {"ok": True}
