from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from credmail.core.config import load_config

router = APIRouter()

# Global state for last run tracking
_last_run: Optional[Dict[str, Any]] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def update_last_run(
    kind: str,
    method: Optional[str],
    success: int,
    failed: int,
    error: Optional[str] = None
) -> None:
    """
    Update the last delivery run information.

    Args:
        kind: Credential kind delivered
        method: Delivery channel, None when the run failed before routing
        success: Delivered messages or opened drafts
        failed: Failed recipients
        error: Optional configuration error message
    """
    global _last_run

    _last_run = {
        "time": _now_iso(),
        "kind": kind,
        "method": method,
        "success": success,
        "failed": failed,
    }

    if error is not None:
        _last_run["error"] = error


def get_last_run() -> Optional[Dict[str, Any]]:
    """Get the last run information."""
    return _last_run


@router.get("/healthz")
async def health_check() -> JSONResponse:
    """Health check with last run metadata."""
    config = load_config()
    response = {
        "status": "ok",
        "timestamp": _now_iso(),
    }

    last_run = get_last_run()
    if last_run:
        response["last_run"] = last_run

    response["observability"] = {
        "enabled": config.obs_enabled,
        "sentry_configured": bool(config.sentry_dsn),
    }

    return JSONResponse(status_code=200, content=response)
