"""Configuration loader for hypervisor server profiles.

Reads a YAML file containing a list of server entries and exposes helpers
to list them, build typed `RemoteTarget`s, and turn a profile plus an
action into a ready-to-run `FacadeRequest`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Union

import yaml

from vmcontrol.control.request import DEFAULT_API_PORT, FacadeRequest
from vmcontrol.SSH.utils.types import ServerInfo

from .credentials import Credential, KeyCredential, PasswordCredential, RemoteTarget
from .schema import validate_config_schema


class ConfigManager:
    """Manage access to server profiles defined in a YAML file.

    The YAML file is expected to contain a top-level "servers" key with a
    list of server objects. Each object must define at least: "name",
    "host", "user" and one of "password", "key" (private key material) or
    "key_path". Optional keys: "port" (default 22), "passphrase",
    "management_port" (default 9090), "prefer_api" (default false) and
    "jump" (name of another server used as SSH jump host).

    Args:
        config_path: Path to the YAML configuration file.
    """

    def __init__(self, config_path: Union[str, Path]):
        self.config_path = Path(config_path)
        self.raw = self._load_raw()
        validate_config_schema(self.raw)
        self._servers = {str(s["name"]).strip(): s for s in self.raw["servers"]}

    def _load_raw(self) -> dict[str, Any]:
        with open(self.config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if data is not None else {}

    def list_servers(self) -> list[str]:
        """Return the server names available in the configuration."""
        return list(self._servers.keys())

    def server(self, name: str) -> dict[str, Any]:
        """Return the raw profile for `name`.

        Raises:
            ValueError: If the server name cannot be found in the configuration.
        """
        if name not in self._servers:
            raise ValueError(f"Server '{name}' not found")
        return self._servers[name]

    def server_info(self, name: str) -> ServerInfo:
        srv = self.server(name)
        return {
            "name": name,
            "host": str(srv["host"]),
            "port": int(srv.get("port", 22)),
            "user": str(srv["user"]),
            "prefer_api": bool(srv.get("prefer_api", False)),
            "management_port": int(srv.get("management_port", DEFAULT_API_PORT)),
        }

    def _credential(self, srv: dict[str, Any]) -> Credential:
        user = str(srv["user"])
        if srv.get("password"):
            return PasswordCredential(user, srv["password"])
        if srv.get("key"):
            return KeyCredential(user, srv["key"], srv.get("passphrase"))
        base = self.config_path.parent
        key_path = Path(srv["key_path"]).expanduser()
        if not key_path.is_absolute():
            key_path = base / key_path
        return KeyCredential.from_file(user, key_path, srv.get("passphrase"))

    def target_for(self, name: str) -> RemoteTarget:
        """Return the SSH target for the named server."""
        srv = self.server(name)
        return RemoteTarget(
            host=str(srv["host"]),
            credential=self._credential(srv),
            port=int(srv.get("port", 22)),
        )

    def jump_for(self, name: str) -> RemoteTarget | None:
        """Return the jump host target for `name`, or None if it has none."""
        jump = self.server(name).get("jump")
        return self.target_for(jump) if jump else None

    def request_for(
        self,
        name: str,
        action: str,
        *,
        vm_id: str | None = None,
        vm_spec: dict[str, Any] | None = None,
        use_api: bool | None = None,
        deadline: float | None = None,
        requested_by: str | None = None,
    ) -> FacadeRequest:
        """Build a facade request for `action` against the named server."""
        srv = self.server(name)
        return FacadeRequest(
            action=action,
            target=self.target_for(name),
            vm_id=vm_id,
            vm_spec=vm_spec,
            fallback_target=self.jump_for(name),
            use_api=bool(srv.get("prefer_api", False)) if use_api is None else use_api,
            api_port=int(srv.get("management_port", DEFAULT_API_PORT)),
            deadline=deadline,
            requested_by=requested_by,
        )
