import time
from typing import Annotated, Any, TypedDict

import weave

from vmcontrol.server import audit, mcp

from .log_manager import AuditLog, history_filter

_TEXT_FIELDS = ("server", "vm_id", "action", "requested_by", "command", "job_id", "stdout", "stderr")


class SearchItem(TypedDict):
    relevance_score: float
    server: str
    vm_id: str
    action: str
    requested_by: str
    command: str
    job_id: str
    timestamp: float
    formatted_time: str
    stdout: str
    stderr: str
    return_code: int | None


class SearchResult(TypedDict):
    query: str
    total_found: int
    results: list[SearchItem]


def _require_audit() -> AuditLog:
    if audit is None:
        raise ValueError("Audit history is disabled: set QDRANT_URL and MISTRAL_API_KEY")
    return audit


def _format_time(timestamp: float) -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(timestamp))


def _search_item(score: float, payload: dict[str, Any]) -> SearchItem:
    ts = payload.get("timestamp", 0)
    item = {key: payload.get(key, "") for key in _TEXT_FIELDS}
    item.update(
        relevance_score=score,
        timestamp=ts,
        formatted_time=_format_time(ts),
        return_code=payload.get("return_code"),
    )
    return item  # type: ignore[return-value]


@mcp.tool(
    name="vm_search_history",
    description=(
        "Search past VM control commands by meaning rather than exact text.\n\n"
        "Every state-changing command (power actions, delete, create, update) is stored three ways: "
        "the command line ('commands'), its output ('stdout') and its error output ('stderr').\n\n"
        "Parameters:\n"
        "- query (string): What to look for, e.g. 'undefine failures' or 'memory changes on web'.\n"
        "- collection (string, optional): 'commands' (default), 'stdout' or 'stderr'.\n"
        "- server (string, optional): Host address the command was sent to.\n"
        "- vm_id (string, optional): VM the command was about.\n"
        "- requested_by (string, optional): Caller identity given with the original request.\n"
        "- time_hours (int, optional): Only the last N hours.\n"
        "- limit (int, optional): Maximum hits (default 10).\n"
        "Returns: { query, total_found, results: [{ relevance_score, server, vm_id, action, command, "
        "return_code, stdout, stderr, formatted_time, ... }] }."
    ),
)
@weave.op()
def search_history(
    query: Annotated[str, "What to look for"],
    collection: Annotated[str, "'commands', 'stdout' or 'stderr'"] = "commands",
    server: Annotated[str | None, "Host address"] = None,
    vm_id: Annotated[str | None, "VM name"] = None,
    requested_by: Annotated[str | None, "Caller identity"] = None,
    time_hours: Annotated[int | None, "Only the last N hours"] = None,
    limit: Annotated[int, "Maximum hits"] = 10,
) -> SearchResult:
    hits = _require_audit().search(
        query,
        collection=collection,
        query_filter=history_filter(server, vm_id, requested_by, time_hours),
        limit=limit,
    )
    results = [_search_item(score, payload) for score, payload in hits]
    return {"query": query, "total_found": len(results), "results": results}


@mcp.tool(
    name="vm_history_statistics",
    description=(
        "Summarize recent VM control activity: how many commands ran, how many failed, "
        "which hosts and actions were busiest, and the latest error outputs (newest first).\n\n"
        "Parameters:\n"
        "- time_hours (int, optional): Window to summarize (default 24).\n"
        "- server, vm_id, requested_by (string, optional): Narrow the window.\n"
        "Returns: { time_period_hours, commands_executed, successful_commands, failed_commands, "
        "most_used_servers, most_common_actions, recent_errors }. A command counts as successful "
        "when it exited with 0."
    ),
)
@weave.op()
def history_statistics(
    time_hours: Annotated[int, "Window in hours"] = 24,
    server: Annotated[str | None, "Host address"] = None,
    vm_id: Annotated[str | None, "VM name"] = None,
    requested_by: Annotated[str | None, "Caller identity"] = None,
) -> dict:
    stats = _require_audit().statistics(history_filter(server, vm_id, requested_by, time_hours))
    stats["recent_errors"] = [
        {
            "server": p.get("server", ""),
            "vm_id": p.get("vm_id", ""),
            "command": p.get("command", ""),
            "error": p.get("stderr", ""),
            "requested_by": p.get("requested_by", ""),
            "timestamp": _format_time(p.get("timestamp", 0)),
        }
        for p in stats["recent_errors"]
    ]
    return {"time_period_hours": time_hours, **stats}
