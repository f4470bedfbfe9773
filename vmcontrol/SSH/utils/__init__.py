"""Utility helpers for the SSH transports and MCP tools.

This package groups small, focused helpers:
- masking: safe value masking for logs
- network: lightweight reachability checks
- types: shared result contracts (command results, HTTP specs, envelopes)
"""

from .masking import mask_target, mask_value
from .network import probe_port
from .types import (
    CommandResult,
    ErrorInfo,
    HttpRequestSpec,
    HttpResponse,
    ListServersResult,
    Response,
    ServerInfo,
    ServerUpResult,
)

__all__ = [
    "CommandResult",
    "ErrorInfo",
    "HttpRequestSpec",
    "HttpResponse",
    "ListServersResult",
    "Response",
    "ServerInfo",
    "ServerUpResult",
    "mask_target",
    "mask_value",
    "probe_port",
]
