"""YAML schema validation for hypervisor server profiles.

The configuration file holds a top-level `servers` list. Each entry names a
hypervisor host, how to log into it, and optionally which other entry to
use as an SSH jump host when the host cannot be reached directly.
"""

from __future__ import annotations

from typing import Any


class SchemaError(ValueError):
    """Raised when the YAML configuration structure is invalid."""


_STRING_FIELDS = ("password", "key", "key_path", "passphrase", "jump")
_PORT_FIELDS = ("port", "management_port")


def _is_port(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value < 65536


def validate_config_schema(data: dict[str, Any]) -> None:
    """Validate the high-level config schema.

    Checks:
    - servers: non-empty list of objects with required keys (name, host, user)
    - port / management_port: integers in 1..65535 if provided
    - password / key / key_path / passphrase / jump: strings if provided
    - exactly one of password, key, key_path per server
    - prefer_api: boolean if provided
    - jump: must reference another server

    Raises:
        SchemaError: on structural issues; the message contains human-friendly details.
    """
    if not isinstance(data, dict):
        raise SchemaError("Top-level YAML must be a mapping/object")

    servers = data.get("servers")
    if not isinstance(servers, list) or not servers:
        raise SchemaError("'servers' must be a non-empty list")

    names: set[str] = set()
    for i, srv in enumerate(servers):
        if not isinstance(srv, dict):
            raise SchemaError(f"servers[{i}] must be a mapping/object")
        for req in ("name", "host", "user"):
            if req not in srv:
                raise SchemaError(f"servers[{i}] is missing required field '{req}'")
        name = str(srv["name"]).strip()
        if not name:
            raise SchemaError(f"servers[{i}].name cannot be empty")
        if name in names:
            raise SchemaError(f"Duplicate server name '{name}'")
        names.add(name)
        if not str(srv["host"]).strip():
            raise SchemaError(f"servers[{i}].host cannot be empty")

        for field_name in _PORT_FIELDS:
            if field_name in srv and not _is_port(srv[field_name]):
                raise SchemaError(f"servers[{i}].{field_name} must be an integer in 1..65535")
        for field_name in _STRING_FIELDS:
            value = srv.get(field_name)
            if value is not None and not isinstance(value, str):
                raise SchemaError(f"servers[{i}].{field_name} must be a string if provided")
        if "prefer_api" in srv and not isinstance(srv["prefer_api"], bool):
            raise SchemaError(f"servers[{i}].prefer_api must be a boolean if provided")

        secrets = [f for f in ("password", "key", "key_path") if srv.get(f)]
        if len(secrets) != 1:
            raise SchemaError(
                f"servers[{i}] must define exactly one of 'password', 'key' or 'key_path'"
            )

    for i, srv in enumerate(servers):
        jump = srv.get("jump")
        if jump is None:
            continue
        if jump not in names:
            raise SchemaError(f"servers[{i}] references unknown jump server '{jump}'")
        if jump == srv["name"]:
            raise SchemaError(f"servers[{i}] cannot use itself as jump server")
