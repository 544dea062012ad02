"""Tests for CsrfValidator.

Tokens are bound to a form context and to the browser's nonce cookie.
"""

import time

import jwt
from fastapi import Response
from starlette.requests import Request

from account_service.core import csrf
from account_service.core.config import settings
from account_service.core.csrf import CsrfValidator
from tests.conftest import TEST_AUTH_SECRET


def _request(cookies: dict[str, str] | None = None) -> Request:
    cookie_header = "; ".join(f"{k}={v}" for k, v in (cookies or {}).items())
    headers = [(b"cookie", cookie_header.encode())] if cookie_header else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def _issue(form: str) -> tuple[str, str]:
    """Issue a token on a fresh browser. Returns (token, nonce)."""
    response = Response()
    token = CsrfValidator(_request(), response).issue(form)
    set_cookie = response.headers["set-cookie"]
    nonce = set_cookie.split(";")[0].split("=", 1)[1]
    return token, nonce


def _validator(nonce: str | None) -> CsrfValidator:
    cookies = {settings.csrf_cookie_name: nonce} if nonce else {}
    return CsrfValidator(_request(cookies), Response())


class TestIssue:
    def test_sets_nonce_cookie_once(self):
        response = Response()
        validator = CsrfValidator(_request(), response)
        validator.issue(csrf.FORGOT_PASSWORD)
        validator.issue(csrf.RESET_PASSWORD)

        cookies = response.headers.getlist("set-cookie")
        assert len(cookies) == 1
        assert cookies[0].startswith(f"{settings.csrf_cookie_name}=")
        assert "httponly" in cookies[0].lower()

    def test_reuses_existing_nonce(self):
        response = Response()
        CsrfValidator(
            _request({settings.csrf_cookie_name: "existing"}), response
        ).issue(csrf.REGISTER)
        assert "set-cookie" not in response.headers


class TestCheck:
    def test_accepts_token_for_same_form_and_nonce(self):
        token, nonce = _issue(csrf.RESEND_CONFIRMATION)
        assert _validator(nonce).check(csrf.RESEND_CONFIRMATION, token)

    def test_rejects_other_form(self):
        token, nonce = _issue(csrf.FORGOT_PASSWORD)
        assert not _validator(nonce).check(csrf.RESET_PASSWORD, token)

    def test_rejects_other_browser(self):
        token, _ = _issue(csrf.FORGOT_PASSWORD)
        assert not _validator("someone-else").check(csrf.FORGOT_PASSWORD, token)

    def test_rejects_missing_cookie(self):
        token, _ = _issue(csrf.FORGOT_PASSWORD)
        assert not _validator(None).check(csrf.FORGOT_PASSWORD, token)

    def test_rejects_missing_token(self):
        _, nonce = _issue(csrf.FORGOT_PASSWORD)
        assert not _validator(nonce).check(csrf.FORGOT_PASSWORD, None)
        assert not _validator(nonce).check(csrf.FORGOT_PASSWORD, "")

    def test_rejects_forged_signature(self):
        _, nonce = _issue(csrf.FORGOT_PASSWORD)
        forged = jwt.encode(
            {"ctx": csrf.FORGOT_PASSWORD, "nonce": nonce, "exp": int(time.time()) + 60},
            "not-the-secret-but-long-enough-to-sign-with",
            algorithm="HS256",
        )
        assert not _validator(nonce).check(csrf.FORGOT_PASSWORD, forged)

    def test_rejects_expired_token(self):
        _, nonce = _issue(csrf.FORGOT_PASSWORD)
        expired = jwt.encode(
            {"ctx": csrf.FORGOT_PASSWORD, "nonce": nonce, "exp": int(time.time()) - 1},
            TEST_AUTH_SECRET,
            algorithm="HS256",
        )
        assert not _validator(nonce).check(csrf.FORGOT_PASSWORD, expired)
