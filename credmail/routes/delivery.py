from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from credmail.core.config import load_config
from credmail.core.errors import ConfigurationError
from credmail.core.models import EmailSettings
from credmail.observability.logger import log_error, log_event
from credmail.routes.health import update_last_run
from credmail.schemas.delivery import CredentialPreviewResponse, CredentialSendRequest
from credmail.services.delivery import DeliveryOrchestrator, prepare_batch
from credmail.settings.store import load_email_settings


router = APIRouter()


def _require_api_key_if_configured(request: Request) -> None:
    cfg = load_config()
    if not cfg.api_key:
        return
    provided = request.headers.get("x-api-key")
    if provided != cfg.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def _resolve_settings(body: CredentialSendRequest) -> Optional[EmailSettings]:
    if body.settings is not None:
        return body.settings
    return load_email_settings()


def _get_orchestrator(request: Request) -> DeliveryOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = DeliveryOrchestrator()
        request.app.state.orchestrator = orchestrator
    return orchestrator


@router.post("/send")
async def send_credentials(request: Request, body: CredentialSendRequest):
    _require_api_key_if_configured(request)
    settings = _resolve_settings(body)
    orchestrator = _get_orchestrator(request)

    try:
        result = await orchestrator.deliver(body.requests, body.kind, settings)
    except ConfigurationError as exc:
        log_error(exc, {"kind": body.kind.value})
        update_last_run(kind=body.kind.value, method=None, success=0, failed=len(body.requests), error=exc.message)
        raise HTTPException(status_code=400, detail=exc.message)

    update_last_run(
        kind=body.kind.value,
        method=result.method.value,
        success=result.success,
        failed=result.failed,
    )
    return JSONResponse(status_code=200, content=result.model_dump(mode="json"))


@router.post("/preview")
async def preview_credentials(request: Request, body: CredentialSendRequest):
    _require_api_key_if_configured(request)
    settings = _resolve_settings(body)

    try:
        messages, errors = prepare_batch(body.requests, body.kind, settings)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)

    log_event(
        action="previewed",
        method=settings.method.value,
        kind=body.kind.value,
        recipients_count=len(body.requests),
        success=len(messages),
        failed=len(errors),
    )
    response = CredentialPreviewResponse(kind=body.kind, messages=messages, errors=errors)
    return JSONResponse(status_code=200, content=response.model_dump(mode="json"))
