"""MCP tools that expose VM inventory and control.

Every VM tool builds a `FacadeRequest` from a configured server profile and
returns the facade's response envelope unchanged:
`{ success, status, data }` on success or `{ success: false, status,
error: { message } }` on failure. Unknown server names raise ValueError.

Tools provided:
- `vm_list_servers()`: Configured hypervisor hosts.
- `vm_server_is_up(server)`: Quick reachability check (TCP connect).
- `vm_list(server)`: Every VM on a host, with details.
- `vm_get(server, vm_id)`: One VM.
- `vm_action(server, vm_id, action)`: Power actions.
- `vm_delete(server, vm_id)`: Power off, undefine and remove storage.
- `vm_create(server, spec)`: Define and start a new VM.
- `vm_update(server, vm_id, vcpus, memory_mib)`: Change persistent resources.
"""

# ruff: noqa: I001
from typing import Annotated, Any

import weave

from vmcontrol.control.request import POWER_ACTIONS, FacadeRequest
from vmcontrol.server import config_manager, facade, mcp

from .utils.network import probe_port
from .utils.types import ListServersResult, Response, ServerUpResult


def _request(server: str, action: str, **kwargs: Any) -> FacadeRequest:
    return config_manager.request_for(server, action, **kwargs)


@mcp.tool(
    name="vm_list_servers",
    description=(
        "List the hypervisor servers defined in the YAML configuration.\n\n"
        "Returns: { servers: [{ name, host, port, user, prefer_api, management_port }] }.\n\n"
        "Important: Clients MUST call this first to discover server names used by every other vm_* tool."
    ),
)
@weave.op()
def vm_list_servers() -> ListServersResult:
    return {"servers": [config_manager.server_info(name) for name in config_manager.list_servers()]}


@mcp.tool(
    name="vm_server_is_up",
    description=(
        "Check if a server's SSH port (or management API port) is reachable with a TCP connect, "
        "and measure approximate latency.\n\n"
        "Parameters:\n"
        "- server (string): Server name from vm_list_servers.\n"
        "- api (bool, optional): Check the management API port instead of SSH (default: false).\n"
        "Returns: { server, host, port, reachable, latency_ms, reason }."
    ),
)
@weave.op()
def vm_server_is_up(
    server: Annotated[str, "Server name from vm_list_servers"],
    api: Annotated[bool, "Check the management API port instead of SSH"] = False,
) -> ServerUpResult:
    """Return whether the server's port is reachable along with latency."""
    info = config_manager.server_info(server)
    port = info["management_port"] if api else info["port"]
    return probe_port(server, info["host"], port)


@mcp.tool(
    name="vm_list",
    description=(
        "List every VM defined on a server with state, vCPUs, memory (MiB), disks and interfaces.\n\n"
        "A VM whose details cannot be read is still listed, with state 'unknown' or default resources.\n\n"
        "Parameters:\n"
        "- server (string): Server name from vm_list_servers.\n"
        "- use_api (bool|None, optional): Force the management API (true) or virsh over SSH (false); "
        "defaults to the server's prefer_api setting.\n"
        "- deadline (float|None, optional): Seconds the whole operation may take.\n"
        "Returns: { success, status: 200, data: [VM] } or { success: false, status, error: { message } }."
    ),
)
@weave.op()
def vm_list(
    server: Annotated[str, "Server name from vm_list_servers"],
    use_api: Annotated[bool | None, "Use the management API instead of virsh"] = None,
    deadline: Annotated[float | None, "Deadline in seconds"] = None,
    requested_by: Annotated[str | None, "Caller identity recorded in the audit log"] = None,
) -> Response:
    return facade.handle(
        _request(server, "list", use_api=use_api, deadline=deadline, requested_by=requested_by)
    )


@mcp.tool(
    name="vm_get",
    description=(
        "Describe one VM.\n\n"
        "Parameters:\n"
        "- server (string): Server name from vm_list_servers.\n"
        "- vm_id (string): VM (domain) name.\n"
        "Returns: { success, status: 200, data: VM }; status 404 when the VM does not exist."
    ),
)
@weave.op()
def vm_get(
    server: Annotated[str, "Server name from vm_list_servers"],
    vm_id: Annotated[str, "VM name"],
    use_api: Annotated[bool | None, "Use the management API instead of virsh"] = None,
    deadline: Annotated[float | None, "Deadline in seconds"] = None,
    requested_by: Annotated[str | None, "Caller identity recorded in the audit log"] = None,
) -> Response:
    return facade.handle(
        _request(
            server, "get", vm_id=vm_id, use_api=use_api, deadline=deadline, requested_by=requested_by
        )
    )


@mcp.tool(
    name="vm_action",
    description=(
        "Run a power action on a VM.\n\n"
        "Parameters:\n"
        f"- action (string): one of {', '.join(POWER_ACTIONS)} "
        "(aliases: stop=shutdown, destroy=forceoff, suspend=pause).\n"
        "- server (string), vm_id (string).\n"
        "Returns: { success, status: 200, data: { id, action } }. A failed action reports the "
        "hypervisor's error text, e.g. when starting a VM that is already running."
    ),
)
@weave.op()
def vm_action(
    server: Annotated[str, "Server name from vm_list_servers"],
    vm_id: Annotated[str, "VM name"],
    action: Annotated[str, "start | shutdown | forceoff | reboot | pause | resume"],
    use_api: Annotated[bool | None, "Use the management API instead of virsh"] = None,
    deadline: Annotated[float | None, "Deadline in seconds"] = None,
    requested_by: Annotated[str | None, "Caller identity recorded in the audit log"] = None,
) -> Response:
    return facade.handle(
        _request(
            server, action, vm_id=vm_id, use_api=use_api, deadline=deadline, requested_by=requested_by
        )
    )


@mcp.tool(
    name="vm_delete",
    description=(
        "Force power-off a VM, then undefine it and remove all of its storage. Irreversible.\n\n"
        "Returns: { success, status: 204, data: null }."
    ),
)
@weave.op()
def vm_delete(
    server: Annotated[str, "Server name from vm_list_servers"],
    vm_id: Annotated[str, "VM name"],
    use_api: Annotated[bool | None, "Use the management API instead of virsh"] = None,
    deadline: Annotated[float | None, "Deadline in seconds"] = None,
    requested_by: Annotated[str | None, "Caller identity recorded in the audit log"] = None,
) -> Response:
    return facade.handle(
        _request(
            server, "delete", vm_id=vm_id, use_api=use_api, deadline=deadline, requested_by=requested_by
        )
    )


@mcp.tool(
    name="vm_create",
    description=(
        "Create a VM with virt-install (or POST /api/machines in API mode).\n\n"
        "Parameters:\n"
        "- spec (object): { name, vcpus, memory (MiB), disks?: [{ size (bytes) }], "
        "interfaces?: [{ mac }], os_variant?, bridge? }.\n"
        "Returns: { success, status: 201, data: VM }."
    ),
)
@weave.op()
def vm_create(
    server: Annotated[str, "Server name from vm_list_servers"],
    spec: Annotated[dict[str, Any], "VM resources: name, vcpus, memory, disks, interfaces"],
    use_api: Annotated[bool | None, "Use the management API instead of virsh"] = None,
    deadline: Annotated[float | None, "Deadline in seconds"] = None,
    requested_by: Annotated[str | None, "Caller identity recorded in the audit log"] = None,
) -> Response:
    return facade.handle(
        _request(
            server, "create", vm_spec=spec, use_api=use_api, deadline=deadline, requested_by=requested_by
        )
    )


@mcp.tool(
    name="vm_update",
    description=(
        "Change a VM's persistent vCPU count and/or memory. Changes apply on the next boot.\n\n"
        "Returns: { success, status: 200, data: VM }."
    ),
)
@weave.op()
def vm_update(
    server: Annotated[str, "Server name from vm_list_servers"],
    vm_id: Annotated[str, "VM name"],
    vcpus: Annotated[int | None, "New vCPU count"] = None,
    memory_mib: Annotated[int | None, "New memory size in MiB"] = None,
    use_api: Annotated[bool | None, "Use the management API instead of virsh"] = None,
    deadline: Annotated[float | None, "Deadline in seconds"] = None,
    requested_by: Annotated[str | None, "Caller identity recorded in the audit log"] = None,
) -> Response:
    spec = {"vcpus": vcpus, "memory_mib": memory_mib}
    return facade.handle(
        _request(
            server,
            "update",
            vm_id=vm_id,
            vm_spec=spec,
            use_api=use_api,
            deadline=deadline,
            requested_by=requested_by,
        )
    )
