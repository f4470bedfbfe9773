"""SSH tunneling for the fallback path.

When a direct call to a host's management endpoint fails, `SSHTunnelAdapter`
opens a session to an SSH host, starts a local forward server that relays
each accepted connection over a `direct-tcpip` channel to the endpoint, and
replays the same HTTP request against the local port. The forward server and
the session are torn down when the exchange completes or fails.

`execute_via` uses the same kind of channel to run a raw command on a host
that is only reachable through a jump host.
"""

from __future__ import annotations

import logging
import select
import socketserver
import threading
from types import TracebackType

import paramiko

from vmcontrol.config.credentials import RemoteTarget
from vmcontrol.errors import TransportError, TunnelError, reason

from .http_client import HttpClient
from .remote_executor import RemoteExecutor, SSHTransport
from .utils.masking import mask_target
from .utils.types import CommandResult, HttpRequestSpec, HttpResponse

log = logging.getLogger(__name__)

RELAY_BUFFER = 16384


class _ForwardServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True


def _make_forward_handler(tunnel: "SSHTunnel", remote_host: str, remote_port: int):
    class _ForwardHandler(socketserver.BaseRequestHandler):
        def handle(self) -> None:
            try:
                chan = tunnel.open_channel(remote_host, remote_port, src_addr=self.request.getpeername())
            except TunnelError as e:
                log.warning("forward to %s:%s refused: %s", remote_host, remote_port, e)
                tunnel.forward_errors.append(e)
                return
            try:
                while True:
                    rlist, _, _ = select.select([self.request, chan], [], [], 1.0)
                    if self.request in rlist:
                        data = self.request.recv(RELAY_BUFFER)
                        if not data:
                            break
                        chan.sendall(data)
                    if chan in rlist:
                        data = chan.recv(RELAY_BUFFER)
                        if not data:
                            break
                        self.request.sendall(data)
                    if chan.closed:
                        break
            except OSError as e:
                log.debug("relay to %s:%s ended: %s", remote_host, remote_port, e)
            finally:
                chan.close()

    return _ForwardHandler


class SSHTunnel:
    """An SSH session to a forwarding host, usable as a context manager."""

    def __init__(
        self,
        ssh_target: RemoteTarget,
        *,
        timeout: float | None = 15.0,
        known_hosts_policy: paramiko.MissingHostKeyPolicy | None = None,
    ):
        self.ssh_target = ssh_target
        self._executor = RemoteExecutor(
            ssh_target, timeout=timeout, known_hosts_policy=known_hosts_policy
        )
        self._server: _ForwardServer | None = None
        self._thread: threading.Thread | None = None
        self.forward_errors: list[TunnelError] = []

    def __enter__(self) -> "SSHTunnel":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def start(self) -> None:
        try:
            self._executor.connect()
        except TransportError as e:
            raise TunnelError(
                f"Failed to establish SSH session to {mask_target(self.ssh_target)}: {e}",
                stage="session",
            ) from e

    @property
    def transport(self) -> paramiko.Transport:
        transport = self._executor.client.get_transport()
        if transport is None or not transport.is_active():
            raise TunnelError("SSH transport is not active", stage="session")
        return transport

    def open_channel(
        self, remote_host: str, remote_port: int, src_addr: tuple[str, int] = ("127.0.0.1", 0)
    ) -> paramiko.Channel:
        """Open a `direct-tcpip` channel to `remote_host:remote_port`."""
        try:
            chan = self.transport.open_channel(
                kind="direct-tcpip",
                dest_addr=(remote_host, remote_port),
                src_addr=src_addr,
            )
        except (paramiko.SSHException, OSError) as e:
            raise TunnelError(
                f"Failed to open SSH channel to {remote_host}:{remote_port}: {reason(e)}",
                stage="forward",
            ) from e
        if chan is None:
            raise TunnelError("SSH channel creation returned None", stage="forward")
        return chan

    def local_forward(self, remote_host: str, remote_port: int) -> tuple[str, int]:
        """Start a local forward server and return its `(host, port)`."""
        handler = _make_forward_handler(self, remote_host, remote_port)
        try:
            self._server = _ForwardServer(("127.0.0.1", 0), handler)
        except OSError as e:
            raise TunnelError(
                f"Failed to create local forwarding server: {reason(e)}", stage="forward"
            ) from e
        local_port = int(self._server.server_address[1])
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="vmcontrol-ssh-forward", daemon=True
        )
        self._thread.start()
        log.info(
            "SSH tunnel %s -> %s:%s (local %s)",
            mask_target(self.ssh_target),
            remote_host,
            remote_port,
            local_port,
        )
        return "127.0.0.1", local_port

    def close(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        self._thread = None
        self._executor.close()


class SSHTunnelAdapter:
    """Fallback path: forward management API calls and commands through SSH."""

    def __init__(
        self,
        *,
        http: HttpClient | None = None,
        transport: SSHTransport | None = None,
        connect_timeout: float = 15.0,
    ):
        self.http = http or HttpClient()
        self.transport = transport or SSHTransport(connect_timeout=connect_timeout)
        self.connect_timeout = connect_timeout

    def _session_timeout(self, timeout: float | None) -> float:
        if timeout is None:
            return self.connect_timeout
        return max(0.1, min(self.connect_timeout, timeout))

    def forward(
        self,
        target: RemoteTarget,
        ssh_target: RemoteTarget,
        request: HttpRequestSpec,
        *,
        timeout: float | None = None,
    ) -> HttpResponse:
        """Issue `request` to `(target.host, request.port)` through `ssh_target`.

        Raises:
            TunnelError: The session or the forward failed.
            HttpStatusError: The endpoint answered, with a non-2xx status.
        """
        with SSHTunnel(ssh_target, timeout=self._session_timeout(timeout)) as tunnel:
            host, port = tunnel.local_forward(target.host, request.port)
            base_url = f"{request.resolved_scheme}://{host}:{port}"
            try:
                return self.http.send(target, request, timeout=timeout, base_url=base_url)
            except TransportError as e:
                cause = tunnel.forward_errors[0] if tunnel.forward_errors else e
                raise TunnelError(
                    f"Request through SSH tunnel to {target.host}:{request.port} failed: {cause}",
                    stage="forward",
                ) from e

    def execute_via(
        self,
        target: RemoteTarget,
        ssh_target: RemoteTarget,
        command: str,
        *,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run `command` on `target` over a session tunneled through `ssh_target`.

        Authentication and execution errors on `target` itself propagate as
        raised by the transport; only failures to reach it are `TunnelError`.
        """
        with SSHTunnel(ssh_target, timeout=self._session_timeout(timeout)) as tunnel:
            chan = tunnel.open_channel(target.host, target.port)
            return self.transport.execute(target, command, timeout=timeout, sock=chan)


def forward(
    target: RemoteTarget,
    ssh_target: RemoteTarget,
    request: HttpRequestSpec,
    *,
    timeout: float | None = None,
) -> HttpResponse:
    """Module-level shortcut for `SSHTunnelAdapter().forward`."""
    return SSHTunnelAdapter().forward(target, ssh_target, request, timeout=timeout)
