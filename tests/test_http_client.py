"""Tests for vmcontrol.SSH.http_client (requests.Session is mocked)."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import requests

from vmcontrol.config.credentials import KeyCredential, RemoteTarget
from vmcontrol.errors import RemoteConnectionError
from vmcontrol.SSH.http_client import HttpClient, HttpStatusError, build_url
from vmcontrol.SSH.utils.types import HttpRequestSpec


def _response(status: int = 200, payload=None, reason: str = "OK") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.reason = reason
    resp.content = json.dumps(payload).encode() if payload is not None else b""
    resp.json.return_value = payload
    resp.text = json.dumps(payload) if payload is not None else ""
    resp.headers = {"Content-Type": "application/json"}
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


class TestBuildUrl:
    def test_http_by_default(self, target):
        assert build_url(target, HttpRequestSpec("/api/machines")) == "http://hv1.example.net:9090/api/machines"

    def test_https_on_443_and_relative_path(self, target):
        url = build_url(target, HttpRequestSpec("api/machines", port=443))
        assert url == "https://hv1.example.net:443/api/machines"


class TestHttpClient:
    def test_get_with_basic_auth(self, target, session):
        session.request.return_value = _response(200, [{"name": "web"}])
        resp = HttpClient(session=session).send(target, HttpRequestSpec("/api/machines"), timeout=3)

        assert resp.status == 200
        assert resp.data == [{"name": "web"}]
        args, kwargs = session.request.call_args
        assert args == ("GET", "http://hv1.example.net:9090/api/machines")
        assert kwargs["auth"] == ("admin", "s3cret")
        assert kwargs["timeout"] == 3
        assert kwargs["verify"] is False
        assert kwargs["data"] is None

    def test_json_body_and_no_auth_for_key_credential(self, session):
        target = RemoteTarget("hv2", KeyCredential("ops", "KEY"))
        session.request.return_value = _response(201, {"name": "ci"})
        HttpClient(session=session).send(
            target, HttpRequestSpec("/api/machines", method="post", body={"name": "ci"})
        )
        args, kwargs = session.request.call_args
        assert args[0] == "POST"
        assert json.loads(kwargs["data"]) == {"name": "ci"}
        assert kwargs["auth"] is None
        assert kwargs["headers"]["Content-Type"] == "application/json"

    def test_base_url_keeps_real_host_header(self, target, session):
        session.request.return_value = _response(204)
        resp = HttpClient(session=session).send(
            target, HttpRequestSpec("/api/machines/web", method="DELETE"), base_url="http://127.0.0.1:40123/"
        )
        args, kwargs = session.request.call_args
        assert args[1] == "http://127.0.0.1:40123/api/machines/web"
        assert kwargs["headers"]["Host"] == "hv1.example.net:9090"
        assert resp.data == {}

    def test_non_2xx_raises_status_error(self, target, session):
        session.request.return_value = _response(404, {"error": "no such machine"}, reason="Not Found")
        with pytest.raises(HttpStatusError) as exc_info:
            HttpClient(session=session).send(target, HttpRequestSpec("/api/machines/nope"))
        assert exc_info.value.status == 404
        assert exc_info.value.data == {"error": "no such machine"}

    @pytest.mark.parametrize(
        "exc", [requests.ConnectionError("refused"), requests.Timeout("slow"), requests.TooManyRedirects()]
    )
    def test_transport_failures(self, target, session, exc):
        session.request.side_effect = exc
        with pytest.raises(RemoteConnectionError):
            HttpClient(session=session).send(target, HttpRequestSpec("/api/machines"))

    def test_non_json_body_is_returned_as_text(self, target, session):
        resp = _response(200)
        resp.content = b"pong"
        resp.text = "pong"
        resp.json.side_effect = ValueError("not json")
        session.request.return_value = resp
        assert HttpClient(session=session).send(target, HttpRequestSpec("/ping")).data == "pong"
