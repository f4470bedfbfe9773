"""Masking helpers for safe logging/debugging.

Log lines about remote sessions mention hosts and accounts; these helpers
keep usernames and secrets out of plain view.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vmcontrol.config.credentials import RemoteTarget


def mask_value(value: str | None) -> str:
    """Mask a value by replacing every other character with "*".

    Returns an empty string if value is falsy.
    """
    if not value:
        return ""
    return "".join("*" if i % 2 else c for i, c in enumerate(value))


def mask_target(target: "RemoteTarget | None") -> str:
    """Render a target as `us*r@host:port` for log lines."""
    if target is None:
        return "<none>"
    return f"{mask_value(target.username)}@{target.host}:{target.port}"
