import logging
import time
from typing import Callable, Optional, Tuple

import httpx

from credmail.core.config import DEFAULT_IDENTITY_HOST, GRAPH_SCOPE, USER_AGENT
from credmail.core.errors import AuthError, TransportError
from credmail.core.models import AccessToken

logger = logging.getLogger(__name__)

MAX_LOGGED_BODY = 180


def truncate_for_log(text: str, limit: int = MAX_LOGGED_BODY) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "…"


class TokenProvider:
    """
    Client-credentials token cache for Microsoft Graph.

    One instance is shared by every message in a batch, so a healthy batch
    costs a single token request. The cache holds one token at a time, keyed
    by tenant and client id.
    """

    def __init__(
        self,
        identity_host: str = DEFAULT_IDENTITY_HOST,
        refresh_margin_seconds: float = 60,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.identity_host = identity_host
        self.refresh_margin_seconds = refresh_margin_seconds
        self._http_client = http_client
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._cache_key: Optional[Tuple[str, str]] = None
        self.token_requests = 0

    def token_url(self, tenant_id: str) -> str:
        return f"https://{self.identity_host}/{tenant_id}/oauth2/v2.0/token"

    @property
    def cached_token(self) -> Optional[AccessToken]:
        return self._token

    def invalidate(self) -> None:
        """Drop the cached token so the next call requests a fresh one."""
        self._token = None
        self._cache_key = None

    async def get_token(self, tenant_id: str, client_id: str, client_secret: str) -> str:
        """
        Get or refresh an access token using the client credentials flow.

        Raises:
            AuthError: The token endpoint returned a non-success status or an unusable body
            TransportError: The token endpoint could not be reached
        """
        now = self._clock()
        key = (tenant_id, client_id)
        if self._token and self._cache_key == key and self._token.is_valid(now, self.refresh_margin_seconds):
            return self._token.value

        self.invalidate()
        token = await self._request_token(tenant_id, client_id, client_secret, now)
        self._token = token
        self._cache_key = key
        return token.value

    async def _request_token(self, tenant_id: str, client_id: str, client_secret: str, now: float) -> AccessToken:
        data = {
            "client_id": client_id,
            "client_secret": client_secret,
            "scope": GRAPH_SCOPE,
            "grant_type": "client_credentials",
        }
        headers = {"User-Agent": USER_AGENT}
        self.token_requests += 1

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.token_url(tenant_id), data=data, headers=headers)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self.token_url(tenant_id), data=data, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"Unable to request Microsoft Graph token: {exc}")

        if not response.is_success:
            raise AuthError(
                f"Microsoft Graph token endpoint returned {response.status_code}: {truncate_for_log(response.text)}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
            value = payload["access_token"]
            expires_in = float(payload.get("expires_in") or 3600)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise AuthError(f"Unable to parse Microsoft Graph token response: {exc}", status_code=response.status_code)

        logger.info("Acquired Microsoft Graph token for tenant %s (expires in %ss)", tenant_id, expires_in)
        return AccessToken(value=value, expires_at=now + expires_in)
