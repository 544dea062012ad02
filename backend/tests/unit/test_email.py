"""Tests for the Resend mailer and URL builder.

Uses httpx.MockTransport; no network calls.
"""

import json

import httpx
import pytest

from account_service.core.config import settings
from account_service.core.email import ResendMailer, UrlBuilder
from account_service.core.errors import DeliveryError

_TOKEN = "ab" * 32


class _Recorder:
    def __init__(self, status_code: int = 200) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = status_code

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"id": "email-id"})


def _mailer(recorder: _Recorder) -> ResendMailer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return ResendMailer(UrlBuilder("https://accounts.test/"), client=client)


class TestUrlBuilder:
    def test_joins_path_and_query(self):
        url = UrlBuilder("https://accounts.test/").build("/confirmar-cuenta", token="abc")
        assert url == "https://accounts.test/confirmar-cuenta?token=abc"

    def test_defaults_to_public_url(self):
        assert UrlBuilder().build("/login") == f"{settings.public_url.rstrip('/')}/login"


class TestResendMailer:
    async def test_confirmation_email(self):
        recorder = _Recorder()
        await _mailer(recorder).send_confirmation("ana@x.com", _TOKEN, "Ana")

        (request,) = recorder.requests
        assert str(request.url) == "https://api.resend.com/emails"
        body = json.loads(request.content)
        assert body["to"] == "ana@x.com"
        assert body["from"] == settings.email_from
        assert f"https://accounts.test/confirmar-cuenta?token={_TOKEN}" in body["text"]
        assert "Hi Ana" in body["text"]

    async def test_password_reset_email(self):
        recorder = _Recorder()
        await _mailer(recorder).send_password_reset("ana@x.com", _TOKEN, "Ana")

        body = json.loads(recorder.requests[0].content)
        assert (
            f"https://accounts.test/restablecer-contrasena?token={_TOKEN}"
            in body["text"]
        )

    async def test_rejected_send_raises_delivery_error(self):
        with pytest.raises(DeliveryError):
            await _mailer(_Recorder(status_code=422)).send_confirmation(
                "ana@x.com", _TOKEN, "Ana"
            )

    async def test_unreachable_api_raises_delivery_error(self):
        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(fail))
        mailer = ResendMailer(UrlBuilder("https://accounts.test"), client=client)

        with pytest.raises(DeliveryError):
            await mailer.send_password_reset("ana@x.com", _TOKEN, "Ana")

    async def test_failure_log_omits_token(self, caplog):
        with pytest.raises(DeliveryError):
            await _mailer(_Recorder(status_code=500)).send_confirmation(
                "ana@x.com", _TOKEN, "Ana"
            )
        assert _TOKEN not in caplog.text
