"""Interchangeable ways of reaching a host.

Command strategies run a shell command and return its `CommandResult`;
request strategies issue a management API call and return its
`HttpResponse`. Backends depend only on these two shapes, so the direct and
tunneled variants of each are drop-in replacements for one another.
"""

from __future__ import annotations

from typing import Protocol

from vmcontrol.config.credentials import RemoteTarget
from vmcontrol.SSH.http_client import HttpClient
from vmcontrol.SSH.remote_executor import SSHTransport
from vmcontrol.SSH.tunnel import SSHTunnelAdapter
from vmcontrol.SSH.utils.masking import mask_target
from vmcontrol.SSH.utils.types import CommandResult, HttpRequestSpec, HttpResponse


class CommandStrategy(Protocol):
    name: str
    target: RemoteTarget

    def run(self, command: str, *, timeout: float | None = None) -> CommandResult: ...


class RequestStrategy(Protocol):
    name: str
    target: RemoteTarget

    def send(self, request: HttpRequestSpec, *, timeout: float | None = None) -> HttpResponse: ...


class RawCommand:
    """Run commands over a direct SSH session to the target."""

    name = "raw"

    def __init__(self, transport: SSHTransport, target: RemoteTarget):
        self.transport = transport
        self.target = target

    def run(self, command: str, *, timeout: float | None = None) -> CommandResult:
        return self.transport.execute(self.target, command, timeout=timeout)

    def __repr__(self) -> str:
        return f"RawCommand({mask_target(self.target)})"


class TunneledCommand:
    """Run commands on the target through a session on `ssh_target`."""

    name = "tunneled-command"

    def __init__(self, tunnel: SSHTunnelAdapter, target: RemoteTarget, ssh_target: RemoteTarget):
        self.tunnel = tunnel
        self.target = target
        self.ssh_target = ssh_target

    def run(self, command: str, *, timeout: float | None = None) -> CommandResult:
        return self.tunnel.execute_via(self.target, self.ssh_target, command, timeout=timeout)

    def __repr__(self) -> str:
        return f"TunneledCommand({mask_target(self.target)} via {mask_target(self.ssh_target)})"


class DirectCall:
    """Call the target's management API directly."""

    name = "direct"

    def __init__(self, http: HttpClient, target: RemoteTarget):
        self.http = http
        self.target = target

    def send(self, request: HttpRequestSpec, *, timeout: float | None = None) -> HttpResponse:
        return self.http.send(self.target, request, timeout=timeout)

    def __repr__(self) -> str:
        return f"DirectCall({mask_target(self.target)})"


class TunneledCall:
    """Call the target's management API through an SSH port forward."""

    name = "tunneled"

    def __init__(self, tunnel: SSHTunnelAdapter, target: RemoteTarget, ssh_target: RemoteTarget):
        self.tunnel = tunnel
        self.target = target
        self.ssh_target = ssh_target

    def send(self, request: HttpRequestSpec, *, timeout: float | None = None) -> HttpResponse:
        return self.tunnel.forward(self.target, self.ssh_target, request, timeout=timeout)

    def __repr__(self) -> str:
        return f"TunneledCall({mask_target(self.target)} via {mask_target(self.ssh_target)})"
