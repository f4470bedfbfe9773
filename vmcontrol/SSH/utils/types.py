"""Shared result contracts for transports, the facade and MCP tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypedDict


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class HttpRequestSpec:
    """A management API call: `path + method + JSON body` on a given port."""

    path: str
    method: str = "GET"
    body: Any = None
    port: int = 9090
    scheme: str | None = None

    @property
    def resolved_scheme(self) -> str:
        if self.scheme:
            return self.scheme
        return "https" if self.port == 443 else "http"


@dataclass(frozen=True)
class HttpResponse:
    status: int
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)


class ErrorInfo(TypedDict):
    message: str


class Response(TypedDict, total=False):
    """Normalized envelope returned by every facade call."""

    success: bool
    status: int
    data: Any
    error: ErrorInfo


class ServerInfo(TypedDict):
    name: str
    host: str
    port: int
    user: str
    prefer_api: bool
    management_port: int


class ListServersResult(TypedDict):
    servers: list[ServerInfo]


class ServerUpResult(TypedDict):
    server: str
    host: str
    port: int
    reachable: bool
    latency_ms: float | None
    reason: str | None
