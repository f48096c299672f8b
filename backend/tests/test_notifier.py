"""通知分发器测试（mock SMTP 与 Webhook）。"""
from unittest.mock import AsyncMock, MagicMock, patch

import aiosmtplib
import httpx

from alertflow.services.notifier import ChatWebhookDispatcher, EmailDispatcher, build_dispatchers


def _mock_client(MockClient, status_code=200, side_effect=None):
    mock_client = AsyncMock()
    mock_resp = MagicMock()
    mock_resp.status_code = status_code
    mock_resp.text = "error body"
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = mock_resp
    MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    MockClient.return_value.__aexit__ = AsyncMock(return_value=False)
    return mock_client


class TestEmailDispatcher:
    def _dispatcher(self, **kwargs):
        kwargs.setdefault("hostname", "smtp.example.com")
        kwargs.setdefault("sender", "alerts@example.com")
        return EmailDispatcher(**kwargs)

    async def test_not_configured(self):
        dispatcher = EmailDispatcher(hostname="")
        assert await dispatcher.notify("email", ["ops@example.com"], "s", "b") is False

    async def test_no_recipients(self):
        assert await self._dispatcher().notify("email", [], "s", "b") is False

    async def test_send_success(self):
        with patch("aiosmtplib.send", new_callable=AsyncMock) as mock_send:
            ok = await self._dispatcher(use_ssl=True).notify(
                "email", ["a@example.com", "b@example.com"], "CPU high", "body", "critical",
            )
        assert ok is True
        msg = mock_send.call_args.args[0]
        assert msg["Subject"] == "[CRITICAL] CPU high"
        assert msg["To"] == "a@example.com, b@example.com"
        assert mock_send.call_args.kwargs["use_tls"] is True

    async def test_starttls_when_ssl_disabled(self):
        with patch("aiosmtplib.send", new_callable=AsyncMock) as mock_send:
            await self._dispatcher(use_ssl=False).notify("email", ["a@example.com"], "s", "b")
        assert mock_send.call_args.kwargs["start_tls"] is True

    async def test_smtp_error_returns_false(self):
        with patch("aiosmtplib.send", new_callable=AsyncMock, side_effect=aiosmtplib.SMTPException("refused")):
            assert await self._dispatcher().notify("email", ["a@example.com"], "s", "b") is False


class TestChatWebhookDispatcher:
    async def test_not_configured(self):
        assert await ChatWebhookDispatcher(url="").notify("teams", [], "s", "b") is False

    async def test_teams_message_card(self):
        with patch("alertflow.services.notifier.httpx.AsyncClient") as MockClient:
            client = _mock_client(MockClient)
            ok = await ChatWebhookDispatcher(url="http://hook").notify("teams", [], "Disk", "a\nb", "critical")
        assert ok is True
        payload = client.post.call_args.kwargs["json"]
        assert payload["@type"] == "MessageCard"
        assert payload["themeColor"] == "FF0000"
        assert payload["text"] == "a<br>b"

    async def test_generic_payload(self):
        payload = ChatWebhookDispatcher.build_payload("webhook", ["ops"], "Disk", "body", "low")
        assert payload == {"title": "Disk", "text": "body", "severity": "low", "recipients": ["ops"]}

    async def test_http_error_status(self):
        with patch("alertflow.services.notifier.httpx.AsyncClient") as MockClient:
            _mock_client(MockClient, status_code=500)
            assert await ChatWebhookDispatcher(url="http://hook").notify("teams", [], "s", "b") is False

    async def test_transport_error(self):
        with patch("alertflow.services.notifier.httpx.AsyncClient") as MockClient:
            _mock_client(MockClient, side_effect=httpx.ConnectError("refused"))
            assert await ChatWebhookDispatcher(url="http://hook").notify("webhook", [], "s", "b") is False


class TestBuildDispatchers:
    def test_channels(self):
        dispatchers = build_dispatchers()
        assert isinstance(dispatchers["email"], EmailDispatcher)
        assert dispatchers["teams"] is dispatchers["webhook"]
