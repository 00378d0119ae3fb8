"""
Credential delivery: turn a batch of PIN/OTP requests into sent mail or opened drafts.

Validation failures (missing address, missing credential, empty render) are
counted per recipient and never abort the batch. Only configuration problems
raise.
"""
import logging
from typing import List, Optional, Tuple, Union

import httpx

from credmail.core.config import AppConfig, load_config
from credmail.core.errors import ConfigurationError, RecipientError, RenderError
from credmail.core.models import (
    ContentType,
    CredentialKind,
    DeliveryRequest,
    DeliveryResult,
    EmailSettings,
    EmailTemplate,
    PreparedMessage,
    RenderContext,
)
from credmail.observability.logger import log_event, log_warning, timing
from credmail.rendering.plaintext import is_html
from credmail.rendering.template import render_template
from credmail.services.emailer import DraftOpener, Emailer, select_emailer
from credmail.services.graph_auth import TokenProvider

logger = logging.getLogger(__name__)


def _coalesce(override: Optional[str], stored: Optional[str]) -> str:
    # an explicit override wins even when empty
    if override is not None:
        return override
    return stored or ""


def build_context(request: DeliveryRequest, kind: CredentialKind) -> RenderContext:
    """
    Resolve the render context for one request.

    The credential value is the override when present, else the value stored on
    the directory user. There is no fallback to the other credential kind.

    Raises:
        RecipientError: No email address or no value for the requested kind
    """
    recipient = request.recipient
    email = (recipient.email or "").strip()
    if not email:
        raise RecipientError(f"{recipient.user_name}: user is missing an email address.")

    pin = _coalesce(request.pin_override, recipient.short_id)
    otp = _coalesce(request.otp_override, recipient.otp)
    value = pin if kind is CredentialKind.PIN else otp
    if not value:
        raise RecipientError(f"{recipient.user_name}: no {kind.value.upper()} value is available to send.")

    return RenderContext(
        user_name=recipient.user_name or "",
        full_name=recipient.full_name or "",
        email=email,
        pin=pin,
        otp=otp,
    )


def prepare_message(template: EmailTemplate, context: RenderContext) -> PreparedMessage:
    """
    Render one recipient's message and classify its body.

    Raises:
        RenderError: Subject or body is empty after substitution
    """
    subject, body = render_template(template, context)
    if not subject or not body:
        raise RenderError(f"{context.user_name}: template subject or body is empty after rendering.")

    content_type = ContentType.HTML if is_html(body) else ContentType.TEXT
    return PreparedMessage(to=context.email, subject=subject, body=body, content_type=content_type)


def _require_template(settings: Optional[EmailSettings], kind: CredentialKind) -> EmailTemplate:
    if settings is None:
        raise ConfigurationError(
            "Email settings are not configured. Save the email delivery section in Settings first."
        )
    template = settings.template_for(kind)
    if template is None:
        raise ConfigurationError(f"No {kind.value.upper()} email template is configured.")
    return template


def prepare_batch(
    requests: List[DeliveryRequest],
    kind: Union[CredentialKind, str],
    settings: Optional[EmailSettings],
) -> Tuple[List[PreparedMessage], List[str]]:
    """
    Render every request without dispatching.

    Returns:
        Prepared messages in input order and validation errors in input order

    Raises:
        ConfigurationError: Settings or the template for the kind are missing
    """
    kind = CredentialKind(kind)
    template = _require_template(settings, kind)

    prepared: List[PreparedMessage] = []
    errors: List[str] = []
    for request in requests:
        try:
            context = build_context(request, kind)
            prepared.append(prepare_message(template, context))
        except (RecipientError, RenderError) as exc:
            errors.append(exc.message)
            log_warning("Recipient skipped", {"reason": type(exc).__name__, "kind": kind.value})
    return prepared, errors


class DeliveryOrchestrator:
    """
    Entry point for sending a batch of credential notifications.

    The token provider is owned by the caller and reused across calls, so
    consecutive batches share one cached Graph token.
    """

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        draft_opener: Optional[DraftOpener] = None,
        stagger_seconds: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[AppConfig] = None,
    ):
        self.config = config or load_config()
        self.token_provider = token_provider or TokenProvider(
            identity_host=self.config.graph_identity_host,
            refresh_margin_seconds=self.config.token_refresh_margin_seconds,
        )
        self.draft_opener = draft_opener
        self.stagger_seconds = stagger_seconds
        self.http_client = http_client

    def _emailer_for(self, settings: EmailSettings) -> Emailer:
        return select_emailer(
            settings,
            token_provider=self.token_provider,
            config=self.config,
            draft_opener=self.draft_opener,
            stagger_seconds=self.stagger_seconds,
            http_client=self.http_client,
        )

    async def deliver(
        self,
        requests: List[DeliveryRequest],
        kind: Union[CredentialKind, str],
        settings: Optional[EmailSettings],
    ) -> DeliveryResult:
        """
        Render, route and dispatch a batch.

        Returns:
            DeliveryResult where success + failed equals len(requests)

        Raises:
            ConfigurationError: Missing settings, template or Graph credentials
        """
        kind = CredentialKind(kind)
        _require_template(settings, kind)
        emailer = self._emailer_for(settings)

        with timing("deliver") as timer:
            prepared, validation_errors = prepare_batch(requests, kind, settings)

            if prepared:
                summary = await emailer.send(prepared)
            else:
                summary = None

        result = DeliveryResult(
            method=settings.method,
            success=summary.success if summary else 0,
            failed=len(validation_errors) + (summary.failed if summary else 0),
            errors=validation_errors + (summary.errors if summary else []),
        )

        log_event(
            action="delivered",
            method=result.method.value,
            kind=kind.value,
            recipients_count=len(requests),
            success=result.success,
            failed=result.failed,
            duration_ms=timer.get_duration_ms(),
        )
        return result
