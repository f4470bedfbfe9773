"""MCP server bootstrap and global state.

Loads settings and server profiles, configures logging and optional Weave
tracing, builds the control facade (with the audit log when Qdrant and
Mistral are configured), and registers the tool modules. The global `mcp`,
`settings`, `config_manager` and `facade` objects are imported by
`main.py` and the tool modules.
"""

import logging

import weave
from mcp.server.fastmcp import FastMCP

from vmcontrol.config.manager import ConfigManager
from vmcontrol.config.settings import Settings
from vmcontrol.control.facade import VMControlFacade
from vmcontrol.log_setup import setup_logger
from vmcontrol.qdrant.log_manager import AuditLog

settings: Settings = Settings.from_env()
log: logging.Logger = setup_logger("vmcontrol", settings.log_file, settings.log_level)

if settings.weave_project:
    weave.init(settings.weave_project)

# Create the MCP server
mcp: FastMCP = FastMCP("vmcontrol", port=settings.mcp_port, stateless_http=True)

try:
    config_manager: ConfigManager = ConfigManager(settings.config_path)
except (OSError, ValueError) as e:
    # Startup fails with the config path in the message
    raise RuntimeError(f"Invalid configuration {settings.config_path}: {e}") from e

audit: AuditLog | None = None
if settings.audit_enabled:
    audit = AuditLog(settings.qdrant_url, settings.qdrant_api_key, settings.mistral_api_key)
else:
    log.info("Audit history disabled (QDRANT_URL or MISTRAL_API_KEY not set)")

facade: VMControlFacade = VMControlFacade(
    audit=audit,
    max_workers=settings.max_workers,
    default_timeout=settings.timeout,
)

# ruff: noqa: F401, E402
import vmcontrol.SSH.tools
import vmcontrol.qdrant.tools
