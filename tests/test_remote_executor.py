"""Tests for vmcontrol.SSH.remote_executor (paramiko is mocked)."""

from __future__ import annotations

import socket
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from vmcontrol.errors import AuthError, ExecutionError, RemoteConnectionError
from vmcontrol.SSH.remote_executor import (
    OPENSSH_BEGIN,
    OPENSSH_END,
    RemoteExecutor,
    SSHTransport,
    _normalize_openssh_key,
    parse_private_key,
)


class FakeChannel:
    """Channel whose streams are served in chunks.

    With `stderr_window` set, stdout data only becomes readable once at most
    that many stderr chunks remain unread, modelling a remote process
    blocked on a full stderr window.
    """

    def __init__(self, out=(), err=(), status=0, stderr_window=None):
        self.out = list(out)
        self.err = list(err)
        self.status = status
        self.stderr_window = stderr_window

    def recv_ready(self):
        if self.stderr_window is not None and len(self.err) > self.stderr_window:
            return False
        return bool(self.out)

    def recv(self, n):
        return self.out.pop(0)

    def recv_stderr_ready(self):
        return bool(self.err)

    def recv_stderr(self, n):
        return self.err.pop(0)

    def exit_status_ready(self):
        return not self.out and not self.err

    def recv_exit_status(self):
        return self.status


def _client(out: bytes = b"web\ndb\n", err: bytes = b"", status: int = 0, channel=None) -> MagicMock:
    client = MagicMock()
    stdout = MagicMock()
    stdout.channel = channel or FakeChannel([out] if out else [], [err] if err else [], status)
    client.exec_command.return_value = (MagicMock(), stdout, MagicMock())
    return client


class TestSSHTransport:
    def test_execute_returns_result_and_closes_session(self, target):
        client = _client()
        with patch("paramiko.SSHClient", return_value=client):
            result = SSHTransport().execute(target, "virsh list --all --name", timeout=5)

        assert result.exit_code == 0
        assert result.stdout == "web\ndb\n"
        assert result.ok
        kwargs = client.connect.call_args.kwargs
        assert kwargs["hostname"] == "hv1.example.net"
        assert kwargs["username"] == "admin"
        assert kwargs["password"] == "s3cret"
        assert kwargs["look_for_keys"] is False
        assert kwargs["allow_agent"] is False
        assert kwargs["timeout"] == 5
        client.exec_command.assert_called_once_with("virsh list --all --name", timeout=5)
        client.close.assert_called_once()

    def test_nonzero_exit_is_a_normal_result(self, target):
        client = _client(out=b"", err=b"error: Domain is already active\n", status=1)
        with patch("paramiko.SSHClient", return_value=client):
            result = SSHTransport().execute(target, "virsh start web")

        assert result.exit_code == 1
        assert not result.ok
        assert "already active" in result.stderr

    def test_connect_timeout_is_capped_by_remaining_deadline(self, target):
        client = _client()
        with patch("paramiko.SSHClient", return_value=client):
            SSHTransport(connect_timeout=15).execute(target, "true", timeout=2.5)
        assert client.connect.call_args.kwargs["timeout"] == 2.5

    def test_auth_rejected(self, target):
        client = _client()
        client.connect.side_effect = paramiko.AuthenticationException("denied")
        with patch("paramiko.SSHClient", return_value=client):
            with pytest.raises(AuthError):
                SSHTransport().execute(target, "true")
        client.close.assert_called()

    @pytest.mark.parametrize(
        "exc", [OSError("Connection refused"), socket.timeout("timed out"), paramiko.SSHException("banner")]
    )
    def test_unreachable(self, target, exc):
        client = _client()
        client.connect.side_effect = exc
        with patch("paramiko.SSHClient", return_value=client):
            with pytest.raises(RemoteConnectionError):
                SSHTransport().execute(target, "true")
        client.close.assert_called()

    def test_read_failure_is_execution_error_and_closes(self, target):
        channel = MagicMock()
        channel.recv_ready.return_value = True
        channel.recv.side_effect = socket.timeout("read timed out")
        client = _client(channel=channel)
        with patch("paramiko.SSHClient", return_value=client):
            with pytest.raises(ExecutionError):
                SSHTransport().execute(target, "sleep 100", timeout=1)
        client.close.assert_called_once()

    def test_stderr_heavy_command_does_not_stall(self, target):
        channel = FakeChannel(
            out=[b"done\n"],
            err=[b"warning %d\n" % i for i in range(5)],
            status=0,
            stderr_window=2,
        )
        client = _client(channel=channel)
        with patch("paramiko.SSHClient", return_value=client):
            result = SSHTransport().execute(target, "virt-install --name ci", timeout=5)
        assert result.stdout == "done\n"
        assert result.stderr.count("warning") == 5

    def test_command_without_exit_times_out(self, target):
        channel = MagicMock()
        channel.recv_ready.return_value = False
        channel.recv_stderr_ready.return_value = False
        channel.exit_status_ready.return_value = False
        client = _client(channel=channel)
        with patch("paramiko.SSHClient", return_value=client):
            with pytest.raises(ExecutionError, match="no exit status"):
                SSHTransport().execute(target, "virsh shutdown web", timeout=0.05)
        client.close.assert_called_once()

    def test_channel_open_failure(self, target):
        client = _client()
        client.exec_command.side_effect = paramiko.SSHException("channel closed")
        with patch("paramiko.SSHClient", return_value=client):
            with pytest.raises(RemoteConnectionError):
                SSHTransport().execute(target, "true")
        client.close.assert_called_once()


class TestRemoteExecutor:
    def test_key_credential_uses_parsed_key(self, jump_target):
        client = _client()
        pkey = MagicMock()
        with patch("paramiko.SSHClient", return_value=client), patch(
            "vmcontrol.SSH.remote_executor.parse_private_key", return_value=pkey
        ) as parse:
            with RemoteExecutor(jump_target) as rx:
                rx.run("uptime")

        parse.assert_called_once()
        kwargs = client.connect.call_args.kwargs
        assert kwargs["pkey"] is pkey
        assert kwargs["password"] is None
        assert kwargs["port"] == 2222

    def test_sock_is_passed_through(self, target):
        client = _client()
        chan = MagicMock()
        with patch("paramiko.SSHClient", return_value=client):
            with RemoteExecutor(target, sock=chan) as rx:
                rx.run("true")
        assert client.connect.call_args.kwargs["sock"] is chan


class TestPrivateKeys:
    def test_garbage_key_is_auth_error(self):
        with pytest.raises(AuthError):
            parse_private_key("definitely not a key")

    def test_single_line_openssh_key_is_rewrapped(self):
        body = "A" * 100
        wrapped = _normalize_openssh_key(f"{OPENSSH_BEGIN} {body} {OPENSSH_END}")
        lines = wrapped.splitlines()
        assert lines[0] == OPENSSH_BEGIN
        assert lines[-1] == OPENSSH_END
        assert lines[1] == "A" * 64
        assert lines[2] == "A" * 36

    def test_multiline_key_is_untouched(self):
        key = f"{OPENSSH_BEGIN}\nAAAA\n{OPENSSH_END}"
        assert _normalize_openssh_key(key) == key
