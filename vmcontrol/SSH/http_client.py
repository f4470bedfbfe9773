"""Direct calls to a host's management HTTP API.

The same `send` is used for direct calls and, with a `base_url` pointing at
a local port forward, for calls tunneled through an SSH session, so both
paths produce identical responses.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import requests
import urllib3

from vmcontrol.config.credentials import PasswordCredential, RemoteTarget
from vmcontrol.errors import RemoteConnectionError, VMControlError, reason

from .utils.types import HttpRequestSpec, HttpResponse

log = logging.getLogger(__name__)

# Management endpoints on hypervisor hosts are served with self-signed certificates.
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

DEFAULT_HTTP_TIMEOUT = 30.0


class HttpStatusError(VMControlError):
    """The management API answered with a non-2xx status."""

    def __init__(self, status: int, message: str, data: Any = None):
        super().__init__(message)
        self.status = status
        self.data = data


def _decode_body(resp: requests.Response) -> Any:
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError:
        return resp.text


def build_url(target: RemoteTarget, request: HttpRequestSpec) -> str:
    path = request.path if request.path.startswith("/") else f"/{request.path}"
    return f"{request.resolved_scheme}://{target.host}:{request.port}{path}"


class HttpClient:
    """Thin `requests` wrapper that speaks the management API's JSON dialect."""

    def __init__(self, *, session: requests.Session | None = None, verify_tls: bool = False):
        self._session = session or requests.Session()
        self.verify_tls = verify_tls

    def send(
        self,
        target: RemoteTarget,
        request: HttpRequestSpec,
        *,
        timeout: float | None = None,
        base_url: str | None = None,
    ) -> HttpResponse:
        """Issue `request` against `target` (or `base_url` when forwarded).

        Raises:
            RemoteConnectionError: Connection refused, timed out, or the
                response was not valid HTTP.
            HttpStatusError: The endpoint answered with a non-2xx status.
        """
        if base_url:
            url = base_url.rstrip("/") + "/" + request.path.lstrip("/")
        else:
            url = build_url(target, request)

        headers = {
            "Content-Type": "application/json",
            # Forwarded calls still present the real endpoint as Host.
            "Host": f"{target.host}:{request.port}",
        }
        auth = None
        if isinstance(target.credential, PasswordCredential):
            auth = (target.credential.username, target.credential.password)

        data = json.dumps(request.body) if request.body is not None else None
        method = request.method.upper()
        log.debug("%s %s", method, url)
        try:
            resp = self._session.request(
                method,
                url,
                data=data,
                headers=headers,
                auth=auth,
                timeout=timeout or DEFAULT_HTTP_TIMEOUT,
                verify=self.verify_tls,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RemoteConnectionError(f"HTTP request to {url} failed: {reason(e)}") from e
        except requests.RequestException as e:
            raise RemoteConnectionError(f"HTTP exchange with {url} failed: {reason(e)}") from e

        payload = _decode_body(resp)
        if not 200 <= resp.status_code < 300:
            raise HttpStatusError(
                resp.status_code,
                f"HTTP request failed: {resp.status_code} {resp.reason}",
                payload,
            )
        return HttpResponse(status=resp.status_code, data=payload, headers=dict(resp.headers))
