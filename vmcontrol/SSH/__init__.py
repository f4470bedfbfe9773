"""
SSH transports and MCP tools.

This package provides the Paramiko-based command transport, the management
API HTTP client, SSH tunneling for the fallback path, and the MCP tools that
expose VM inventory and control. The tools module is imported by
`vmcontrol.server` once the server and facade exist.
"""
