from __future__ import annotations

import asyncio
import logging
import re
import webbrowser
from typing import Awaitable, Callable, List, Optional
from urllib.parse import quote

import httpx

from credmail.core.config import AppConfig, USER_AGENT, load_config
from credmail.core.errors import (
    AuthError,
    ConfigurationError,
    DispatchError,
    DraftOpenError,
    PermissionDeniedError,
    RequestError,
    TransportError,
)
from credmail.core.models import ContentType, DeliveryMethod, DispatchSummary, EmailSettings, PreparedMessage
from credmail.observability.logger import log_warning, sanitize_subject
from credmail.rendering.plaintext import strip_html
from credmail.services.graph_auth import TokenProvider, truncate_for_log

logger = logging.getLogger(__name__)

DraftOpener = Callable[[str], Awaitable[bool]]

# Characters left unescaped by JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


class Emailer:
    driver: DeliveryMethod

    async def send(self, messages: List[PreparedMessage]) -> DispatchSummary:
        raise NotImplementedError


def build_mailto_url(to: str, subject: str, body: str) -> str:
    """Build a mailto: URI with percent-encoded subject and a CRLF-normalized body."""
    normalized_body = re.sub(r"\r?\n", "\r\n", body)
    encoded_subject = quote(subject, safe=_URI_COMPONENT_SAFE)
    encoded_body = quote(normalized_body, safe=_URI_COMPONENT_SAFE)
    return f"mailto:{to}?subject={encoded_subject}&body={encoded_body}"


async def open_with_system_handler(url: str) -> bool:
    """Hand the URL to the OS default handler (the local mail client for mailto:)."""
    return await asyncio.to_thread(webbrowser.open, url)


class DesktopDraftEmailer(Emailer):
    driver = DeliveryMethod.DESKTOP

    def __init__(self, opener: Optional[DraftOpener] = None, stagger_seconds: float = 0.15):
        self.opener = opener or open_with_system_handler
        self.stagger_seconds = stagger_seconds

    async def open_draft(self, to: str, subject: str, body: str, delay: float = 0.0) -> None:
        if delay > 0:
            await asyncio.sleep(delay)

        url = build_mailto_url(to, subject, body)
        try:
            opened = await self.opener(url)
        except Exception as exc:
            raise DraftOpenError(str(exc) or "Unable to open mail client")
        if opened is False:
            raise DraftOpenError("Unable to open mail client")

    async def send(self, messages: List[PreparedMessage]) -> DispatchSummary:
        """Open one draft per message, waiting index x stagger before each open."""
        summary = DispatchSummary()
        for index, message in enumerate(messages):
            # mailto: cannot carry formatted content
            body = strip_html(message.body) if message.content_type == ContentType.HTML else message.body
            try:
                await self.open_draft(message.to, message.subject, body, delay=index * self.stagger_seconds)
                summary.success += 1
            except DispatchError as exc:
                summary.failed += 1
                summary.errors.append(f"{message.to}: {exc.message}")
                log_warning("Mail draft could not be opened", {"error": exc.message})
        return summary


class GraphEmailer(Emailer):
    driver = DeliveryMethod.GRAPH

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        sender_address: str,
        token_provider: TokenProvider,
        base_url: str = "https://graph.microsoft.com/v1.0",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.sender_address = sender_address
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client

    @property
    def send_url(self) -> str:
        return f"{self.base_url}/users/{quote(self.sender_address, safe='')}/sendMail"

    def build_payload(self, message: PreparedMessage) -> dict:
        return {
            "message": {
                "subject": message.subject,
                "body": {
                    "contentType": message.content_type.graph_value,
                    "content": message.body,
                },
                "toRecipients": [
                    {"emailAddress": {"address": message.to}}
                ],
            },
            "saveToSentItems": False,
        }

    async def _get_token(self) -> str:
        return await self.token_provider.get_token(self.tenant_id, self.client_id, self.client_secret)

    async def _post(self, client: httpx.AsyncClient, message: PreparedMessage, token: str) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        try:
            return await client.post(self.send_url, headers=headers, json=self.build_payload(message))
        except httpx.HTTPError as exc:
            raise TransportError(f"failed to send email ({exc})")

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return

        status = response.status_code
        detail = f"Graph returned {status} {truncate_for_log(response.text)}".rstrip()
        if status == 401:
            raise AuthError(detail, status_code=status)
        if status == 403:
            raise PermissionDeniedError(detail, status_code=status)
        raise RequestError(detail, status_code=status)

    async def send_message(self, message: PreparedMessage, client: Optional[httpx.AsyncClient] = None) -> None:
        """
        Send one message through Graph sendMail.

        A 401 invalidates the cached token and retries this message once with a
        fresh token. 403, 400 and transport failures are not retried.

        Raises:
            DispatchError: The message was not accepted
        """
        if client is None:
            client = self._http_client
        if client is None:
            async with httpx.AsyncClient() as owned:
                return await self.send_message(message, owned)

        token = await self._get_token()
        response = await self._post(client, message, token)

        if response.status_code == 401:
            logger.info("Graph rejected the cached token, refreshing and retrying once")
            self.token_provider.invalidate()
            token = await self._get_token()
            response = await self._post(client, message, token)

        self._raise_for_status(response)

    async def send(self, messages: List[PreparedMessage]) -> DispatchSummary:
        """Send messages one at a time, in order. A failed message never stops the batch."""
        if self._http_client is not None:
            return await self._send_all(messages, self._http_client)
        async with httpx.AsyncClient() as client:
            return await self._send_all(messages, client)

    async def _send_all(self, messages: List[PreparedMessage], client: httpx.AsyncClient) -> DispatchSummary:
        summary = DispatchSummary()
        for index, message in enumerate(messages):
            try:
                await self._get_token()
            except DispatchError as exc:
                # token endpoint failed: the rest of the batch fails with the same error
                for remaining in messages[index:]:
                    self._record_failure(summary, remaining, exc)
                break

            try:
                await self.send_message(message, client)
                summary.success += 1
            except DispatchError as exc:
                self._record_failure(summary, message, exc)
        return summary

    @staticmethod
    def _record_failure(summary: DispatchSummary, message: PreparedMessage, exc: DispatchError) -> None:
        summary.failed += 1
        summary.errors.append(f"{message.to}: {exc.message}")
        log_warning("Graph send failed", {
            "error_type": type(exc).__name__,
            "status_code": exc.status_code,
            "subject": sanitize_subject(message.subject),
        })


def select_emailer(
    settings: EmailSettings,
    token_provider: Optional[TokenProvider] = None,
    config: Optional[AppConfig] = None,
    draft_opener: Optional[DraftOpener] = None,
    stagger_seconds: Optional[float] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Emailer:
    """
    Build the emailer for the configured delivery method.

    Raises:
        ConfigurationError: Graph delivery is selected but a required setting is missing
    """
    config = config or load_config()

    if settings.method == DeliveryMethod.DESKTOP:
        if stagger_seconds is None:
            stagger_seconds = config.draft_stagger_seconds
        return DesktopDraftEmailer(opener=draft_opener, stagger_seconds=stagger_seconds)

    if settings.method == DeliveryMethod.GRAPH:
        missing = settings.missing_graph_fields()
        if missing:
            raise ConfigurationError(
                "Email delivery via Microsoft Graph is missing the required setting: " + ", ".join(missing)
            )
        if token_provider is None:
            token_provider = TokenProvider(
                identity_host=config.graph_identity_host,
                refresh_margin_seconds=config.token_refresh_margin_seconds,
            )
        return GraphEmailer(
            tenant_id=settings.graph_tenant_id.strip(),
            client_id=settings.graph_client_id.strip(),
            client_secret=settings.graph_client_secret,
            sender_address=settings.graph_sender_address.strip(),
            token_provider=token_provider,
            base_url=config.graph_base_url,
            http_client=http_client,
        )

    raise ConfigurationError(f"Unsupported email delivery method: {settings.method}")
