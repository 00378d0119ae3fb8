"""
Tests for Graph sendMail dispatch: payload shape, status mapping and the single 401 retry.
"""
import httpx
import pytest

from credmail.core.errors import AuthError, PermissionDeniedError, RequestError, TransportError
from credmail.core.models import ContentType, PreparedMessage
from credmail.services.emailer import GraphEmailer
from credmail.services.graph_auth import TokenProvider


def _emailer(fake_graph, sender="it@contoso.com"):
    client = fake_graph.client()
    return GraphEmailer(
        tenant_id="tenant-1",
        client_id="client-1",
        client_secret="s3cret",
        sender_address=sender,
        token_provider=TokenProvider(http_client=client),
        http_client=client,
    )


def _message(to="a@contoso.com", body="Your PIN is 1234", content_type=ContentType.TEXT):
    return PreparedMessage(to=to, subject="Your PIN", body=body, content_type=content_type)


class TestGraphPayload:

    def test_send_url_encodes_sender(self, fake_graph):
        emailer = _emailer(fake_graph)
        assert emailer.send_url == "https://graph.microsoft.com/v1.0/users/it%40contoso.com/sendMail"

    def test_payload_text(self, fake_graph):
        payload = _emailer(fake_graph).build_payload(_message())
        assert payload == {
            "message": {
                "subject": "Your PIN",
                "body": {"contentType": "Text", "content": "Your PIN is 1234"},
                "toRecipients": [{"emailAddress": {"address": "a@contoso.com"}}],
            },
            "saveToSentItems": False,
        }

    def test_payload_html_keeps_markup(self, fake_graph):
        payload = _emailer(fake_graph).build_payload(_message(body="<p>Hi</p>", content_type=ContentType.HTML))
        assert payload["message"]["body"] == {"contentType": "HTML", "content": "<p>Hi</p>"}


class TestGraphSend:

    @pytest.mark.asyncio
    async def test_success_uses_bearer_token(self, fake_graph):
        summary = await _emailer(fake_graph).send([_message()])

        assert summary.success == 1
        assert summary.failed == 0
        assert fake_graph.send_calls[0]["authorization"] == "Bearer token-1"

    @pytest.mark.asyncio
    async def test_one_token_for_whole_batch_in_order(self, fake_graph):
        messages = [_message(to=f"u{i}@contoso.com") for i in range(4)]

        summary = await _emailer(fake_graph).send(messages)

        assert summary.success == 4
        assert len(fake_graph.token_calls) == 1
        assert [call["to"] for call in fake_graph.send_calls] == [m.to for m in messages]

    @pytest.mark.asyncio
    async def test_401_refreshes_token_and_retries_once(self, fake_graph):
        def send(request, payload):
            if request.headers["Authorization"] == "Bearer token-1":
                return httpx.Response(401, text="InvalidAuthenticationToken")
            return httpx.Response(202)

        fake_graph.send_handler = send

        summary = await _emailer(fake_graph).send([_message(), _message(to="b@contoso.com")])

        assert summary.success == 2
        assert len(fake_graph.token_calls) == 2
        assert [call["authorization"] for call in fake_graph.send_calls] == [
            "Bearer token-1", "Bearer token-2", "Bearer token-2",
        ]

    @pytest.mark.asyncio
    async def test_second_401_is_a_failure(self, fake_graph):
        fake_graph.send_handler = lambda request, payload: httpx.Response(401, text="expired")

        emailer = _emailer(fake_graph)
        with pytest.raises(AuthError) as exc_info:
            await emailer.send_message(_message(), fake_graph.client())

        assert exc_info.value.status_code == 401
        assert len(fake_graph.send_calls) == 2

    @pytest.mark.asyncio
    async def test_403_not_retried(self, fake_graph):
        fake_graph.send_handler = lambda request, payload: httpx.Response(403, text="ErrorAccessDenied")

        emailer = _emailer(fake_graph)
        with pytest.raises(PermissionDeniedError):
            await emailer.send_message(_message(), fake_graph.client())

        summary = await emailer.send([_message(to="x@contoso.com")])
        assert summary.failed == 1
        assert summary.errors == ["x@contoso.com: Graph returned 403 ErrorAccessDenied"]
        assert len(fake_graph.send_calls) == 2

    @pytest.mark.asyncio
    async def test_400_not_retried(self, fake_graph):
        fake_graph.send_handler = lambda request, payload: httpx.Response(400, text="ErrorInvalidRecipients")

        with pytest.raises(RequestError) as exc_info:
            await _emailer(fake_graph).send_message(_message(), fake_graph.client())

        assert exc_info.value.status_code == 400
        assert len(fake_graph.send_calls) == 1

    @pytest.mark.asyncio
    async def test_transport_failure_does_not_stop_batch(self, fake_graph):
        def send(request, payload):
            if payload["message"]["toRecipients"][0]["emailAddress"]["address"] == "down@contoso.com":
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(202)

        fake_graph.send_handler = send
        messages = [_message(to="down@contoso.com"), _message(to="ok@contoso.com")]

        summary = await _emailer(fake_graph).send(messages)

        assert summary.success == 1
        assert summary.failed == 1
        assert summary.errors[0].startswith("down@contoso.com: failed to send email")

    @pytest.mark.asyncio
    async def test_transport_failure_raises_transport_error(self, fake_graph):
        def send(request, payload):
            raise httpx.ConnectError("unreachable", request=request)

        fake_graph.send_handler = send

        with pytest.raises(TransportError):
            await _emailer(fake_graph).send_message(_message(), fake_graph.client())

    @pytest.mark.asyncio
    async def test_token_failure_fails_rest_of_batch_without_more_requests(self, fake_graph):
        fake_graph.token_handler = lambda request: httpx.Response(401, text="invalid_client")
        messages = [_message(to=f"u{i}@contoso.com") for i in range(50)]

        summary = await _emailer(fake_graph).send(messages)

        assert summary.success == 0
        assert summary.failed == 50
        assert all("token endpoint returned 401" in error for error in summary.errors)
        assert summary.errors[49].startswith("u49@contoso.com: ")
        assert len(fake_graph.token_calls) == 1
        assert fake_graph.send_calls == []

    @pytest.mark.asyncio
    async def test_long_error_body_truncated(self, fake_graph):
        fake_graph.send_handler = lambda request, payload: httpx.Response(500, text="e" * 500)

        summary = await _emailer(fake_graph).send([_message()])

        assert summary.errors[0] == "a@contoso.com: Graph returned 500 " + "e" * 180 + "…"
