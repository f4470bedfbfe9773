"""Tests for vmcontrol.SSH.utils.network."""

from __future__ import annotations

import socket
from unittest.mock import MagicMock, patch

from vmcontrol.SSH.utils.network import probe_port


class TestProbePort:
    def test_reachable_reports_latency_and_closes(self):
        conn = MagicMock()
        with patch("vmcontrol.SSH.utils.network.socket.create_connection", return_value=conn) as create:
            result = probe_port("hv1", "10.0.0.5", 22, timeout=1.0)

        create.assert_called_once_with(("10.0.0.5", 22), timeout=1.0)
        conn.close.assert_called_once()
        assert result["reachable"] is True
        assert result["reason"] is None
        assert result["latency_ms"] >= 0
        assert (result["server"], result["host"], result["port"]) == ("hv1", "10.0.0.5", 22)

    def test_refused(self):
        err = ConnectionRefusedError(111, "Connection refused")
        with patch("vmcontrol.SSH.utils.network.socket.create_connection", side_effect=err):
            result = probe_port("hv1", "10.0.0.5", 9090)

        assert result["reachable"] is False
        assert result["latency_ms"] is None
        assert result["reason"] == "Connection refused"

    def test_timeout(self):
        with patch("vmcontrol.SSH.utils.network.socket.create_connection", side_effect=socket.timeout()):
            result = probe_port("hv1", "10.0.0.5", 22, timeout=0.5)

        assert result["reachable"] is False
        assert result["reason"] == "timed out after 0.5s"

    def test_name_resolution(self):
        err = socket.gaierror(-2, "Name or service not known")
        with patch("vmcontrol.SSH.utils.network.socket.create_connection", side_effect=err):
            result = probe_port("hv1", "nowhere.invalid", 22)

        assert result["reachable"] is False
        assert result["reason"].startswith("name resolution failed")
