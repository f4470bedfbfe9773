"""Remote inventory and control of libvirt virtual machines.

Use `vmcontrol.control.VMControlFacade` as a library, or run `main.py` to
serve the same operations as MCP tools.
"""

__version__ = "0.1.0"
