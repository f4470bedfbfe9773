"""Searchable audit log of VM control commands.

Each state-changing command is stored in up to three Qdrant collections,
embedded with Mistral so the history can be searched in natural language:
`vm_commands` (always), `vm_stdout` and `vm_stderr` (when non-empty).

Clients are created on first use, so importing this module never needs
network access or API keys.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import Counter
from typing import Any

from mistralai import Mistral
from qdrant_client import QdrantClient
from qdrant_client.models import (
    Direction,
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    OrderBy,
    PayloadSchemaType,
    PointStruct,
    Range,
    VectorParams,
)

from vmcontrol.SSH.utils.types import CommandResult

log = logging.getLogger(__name__)

EMBED_MODEL = "mistral-embed"
VECTOR_SIZE = 1024
# mistral-embed accepts 8192 tokens, roughly 30000 characters.
MAX_EMBED_CHARS = 30000

COMMANDS = "vm_commands"
STDOUT = "vm_stdout"
STDERR = "vm_stderr"
COLLECTIONS = {"commands": COMMANDS, "stdout": STDOUT, "stderr": STDERR}

TOP_N = 10
SCROLL_PAGE = 256

_INDEXES = {
    "server": PayloadSchemaType.KEYWORD,
    "vm_id": PayloadSchemaType.KEYWORD,
    "action": PayloadSchemaType.KEYWORD,
    "requested_by": PayloadSchemaType.KEYWORD,
    "command": PayloadSchemaType.KEYWORD,
    "job_id": PayloadSchemaType.KEYWORD,
    "timestamp": PayloadSchemaType.FLOAT,
    "return_code": PayloadSchemaType.INTEGER,
}


def history_filter(
    server: str | None = None,
    vm_id: str | None = None,
    requested_by: str | None = None,
    hours: int | None = None,
) -> Filter | None:
    """Exact-match filter on the given fields, plus a lookback window."""
    exact = {"server": server, "vm_id": vm_id, "requested_by": requested_by}
    must: list[FieldCondition] = [
        FieldCondition(key=key, match=MatchValue(value=value)) for key, value in exact.items() if value
    ]
    if hours:
        must.append(FieldCondition(key="timestamp", range=Range(gte=time.time() - hours * 3600)))
    return Filter(must=must) if must else None


class AuditLog:
    """Write and query the command history.

    Args:
        qdrant_url: Qdrant endpoint.
        qdrant_api_key: Optional Qdrant API key.
        mistral_api_key: Key used for embeddings.
        qdrant: Pre-built client, mainly for tests.
        mistral: Pre-built client, mainly for tests.
    """

    def __init__(
        self,
        qdrant_url: str | None = None,
        qdrant_api_key: str | None = None,
        mistral_api_key: str | None = None,
        *,
        qdrant: QdrantClient | None = None,
        mistral: Mistral | None = None,
    ):
        self._qdrant_url = qdrant_url
        self._qdrant_api_key = qdrant_api_key
        self._mistral_api_key = mistral_api_key
        self._qdrant = qdrant
        self._mistral = mistral
        self._ready = False

    @property
    def qdrant(self) -> QdrantClient:
        if self._qdrant is None:
            self._qdrant = QdrantClient(url=self._qdrant_url, api_key=self._qdrant_api_key)
        return self._qdrant

    @property
    def mistral(self) -> Mistral:
        if self._mistral is None:
            self._mistral = Mistral(api_key=self._mistral_api_key)
        return self._mistral

    def embed_text(self, text: str) -> list[float]:
        response = self.mistral.embeddings.create(model=EMBED_MODEL, inputs=[text[:MAX_EMBED_CHARS]])
        return response.data[0].embedding

    def ensure_collections_exist(self) -> None:
        if self._ready:
            return
        for name in COLLECTIONS.values():
            if not self.qdrant.collection_exists(name):
                log.info("Creating collection: %s", name)
                self.qdrant.create_collection(
                    collection_name=name,
                    vectors_config=VectorParams(size=VECTOR_SIZE, distance=Distance.COSINE),
                )
            for field_name, field_type in _INDEXES.items():
                try:
                    self.qdrant.create_payload_index(
                        collection_name=name, field_name=field_name, field_schema=field_type
                    )
                except Exception as e:
                    text = str(e).lower()
                    if "already exists" not in text and "duplicate" not in text:
                        log.warning("Could not create index %s.%s: %s", name, field_name, e)
        self._ready = True

    def _upsert(self, collection: str, text: str, payload: dict[str, Any]) -> None:
        self.qdrant.upsert(
            collection_name=collection,
            points=[PointStruct(id=str(uuid.uuid4()), vector=self.embed_text(text), payload=payload)],
        )

    def log_operation(
        self,
        *,
        server: str,
        action: str,
        vm_id: str | None,
        command: str,
        result: CommandResult,
        requested_by: str | None = None,
        job_id: str | None = None,
    ) -> str:
        """Store one command and its output; returns the job id."""
        self.ensure_collections_exist()
        job_id = job_id or str(uuid.uuid4())
        base = {
            "job_id": job_id,
            "server": server,
            "vm_id": vm_id or "",
            "action": action,
            "requested_by": requested_by or "",
            "command": command,
            "timestamp": time.time(),
            "return_code": result.exit_code,
        }
        self._upsert(COMMANDS, f"COMMAND: {command}", base)

        stdout = result.stdout[:MAX_EMBED_CHARS]
        if stdout:
            self._upsert(STDOUT, f"STDOUT: {stdout}", {**base, "stdout": stdout})

        stderr = result.stderr[:MAX_EMBED_CHARS]
        if stderr:
            self._upsert(STDERR, f"ERROR: {stderr}", {**base, "stderr": stderr})
        return job_id

    def record(self, **kwargs: Any) -> str | None:
        """`log_operation` that never raises; audit failures are only logged."""
        try:
            return self.log_operation(**kwargs)
        except Exception as e:
            log.warning("Audit log write failed for %r: %s", kwargs.get("command"), e)
            return None

    def search(
        self,
        query: str,
        *,
        collection: str = "commands",
        query_filter: Filter | None = None,
        limit: int = 10,
    ) -> list[tuple[float, dict[str, Any]]]:
        """Nearest stored entries to `query`, as `(score, payload)` pairs.

        Raises:
            ValueError: `collection` is not one of `COLLECTIONS`.
        """
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection {collection!r}: expected one of {', '.join(COLLECTIONS)}")
        self.ensure_collections_exist()
        response = self.qdrant.query_points(
            collection_name=COLLECTIONS[collection],
            query=self.embed_text(query),
            query_filter=query_filter,
            with_payload=True,
            limit=limit,
        )
        return [(point.score, point.payload or {}) for point in response.points]

    def _all_payloads(self, collection: str, query_filter: Filter | None) -> list[dict[str, Any]]:
        payloads: list[dict[str, Any]] = []
        offset = None
        while True:
            points, offset = self.qdrant.scroll(
                collection_name=collection,
                scroll_filter=query_filter,
                limit=SCROLL_PAGE,
                offset=offset,
                with_payload=True,
            )
            payloads.extend(point.payload or {} for point in points)
            if offset is None:
                return payloads

    def latest(
        self, collection: str, query_filter: Filter | None, limit: int = TOP_N
    ) -> list[dict[str, Any]]:
        """Newest entries of a collection by timestamp."""
        points, _ = self.qdrant.scroll(
            collection_name=collection,
            scroll_filter=query_filter,
            limit=limit,
            order_by=OrderBy(key="timestamp", direction=Direction.DESC),
            with_payload=True,
        )
        payloads = [point.payload or {} for point in points]
        return sorted(payloads, key=lambda p: p.get("timestamp", 0), reverse=True)

    def statistics(self, query_filter: Filter | None = None) -> dict[str, Any]:
        """Counts over every command matching `query_filter`, and the latest errors."""
        self.ensure_collections_exist()
        payloads = self._all_payloads(COMMANDS, query_filter)
        succeeded = sum(1 for p in payloads if p.get("return_code") == 0)
        servers = Counter(p.get("server", "unknown") for p in payloads)
        actions = Counter(p.get("action", "unknown") for p in payloads)
        return {
            "commands_executed": len(payloads),
            "successful_commands": succeeded,
            "failed_commands": len(payloads) - succeeded,
            "most_used_servers": dict(servers.most_common(TOP_N)),
            "most_common_actions": dict(actions.most_common(TOP_N)),
            "recent_errors": self.latest(STDERR, query_filter),
        }
