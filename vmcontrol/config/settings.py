"""Process-wide settings read from the environment (and a `.env` file)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {value!r})")


def _float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {value!r})")


@dataclass(frozen=True)
class Settings:
    config_path: str = "servers.yaml"
    timeout: float = 30.0
    max_workers: int = 8
    log_file: str | None = None
    log_level: str = "INFO"
    mcp_port: int = 3000
    weave_project: str | None = None
    qdrant_url: str | None = None
    qdrant_api_key: str | None = None
    mistral_api_key: str | None = None

    @property
    def audit_enabled(self) -> bool:
        return bool(self.qdrant_url and self.mistral_api_key)

    @classmethod
    def from_env(cls, *, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            config_path=os.getenv("CONFIG") or "servers.yaml",
            timeout=_float("VMCONTROL_TIMEOUT", 30.0),
            max_workers=_int("VMCONTROL_MAX_WORKERS", 8),
            log_file=os.getenv("VMCONTROL_LOG_FILE") or None,
            log_level=(os.getenv("VMCONTROL_LOG_LEVEL") or "INFO").upper(),
            mcp_port=_int("MCP_PORT", 3000),
            weave_project=os.getenv("WEAVE_PROJECT") or None,
            qdrant_url=os.getenv("QDRANT_URL") or None,
            qdrant_api_key=os.getenv("QDRANT_API_KEY") or None,
            mistral_api_key=os.getenv("MISTRAL_API_KEY") or None,
        )
