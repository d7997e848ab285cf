"""Memory-service clients.

Three backends share one interface:
- Graphiti (default when MEMORY_SERVICE_URL is set): temporal knowledge
  graph reached over HTTP.
- Mem0 hosted (when MEM0_API_KEY is set instead).
- Disabled: search returns nothing and writes are no-ops. The companion
  still talks, it just doesn't remember.

Every backend degrades instead of raising: search failures return an empty
list, write failures return False. Both are logged.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from companion.config import settings
from companion.memory.models import MemoryFact
from companion.models import Association
from companion.retry import RetryPolicy, retry_async

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

SOURCE_DESCRIPTION = "companion"
ASSISTANT_ROLE = "Companion"


class MemoryClient(ABC):
    """Interface the context assembler and persistence gateway rely on."""

    #: None until a health check has run
    healthy: bool | None = None

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def search(self, user_id: str, query: str, max_facts: int = 5) -> list[MemoryFact]:
        """Return up to *max_facts* facts relevant to *query* for *user_id*."""

    @abstractmethod
    async def store(self, user_id: str, user_message: str, response: str) -> bool:
        """Store one exchange. Returns True on success."""

    async def store_teaching(self, user_id: str, topic: str, teaching: str) -> bool:
        """Store something the user explicitly taught. Returns True on success."""
        return False

    async def check_health(self) -> bool:
        self.healthy = self.enabled
        return self.healthy

    async def aclose(self) -> None:
        return None


class DisabledMemory(MemoryClient):
    healthy = False

    @property
    def enabled(self) -> bool:
        return False

    async def search(self, user_id: str, query: str, max_facts: int = 5) -> list[MemoryFact]:
        return []

    async def store(self, user_id: str, user_message: str, response: str) -> bool:
        return False


class GraphitiMemory(MemoryClient):
    """Client for a Graphiti REST service.

    Group ID convention, per user:
    - ``<prefix>-core``: identity and personality constants
    - ``<prefix>-collective``: anonymized wisdom shared across users
    - ``<prefix>-<user>``: learnings, preferences, teachings
    - ``<prefix>-<user>-sessions``: conversation exchanges
    - ``<prefix>-<user>-tasks``: commitments and follow-ups
    """

    def __init__(
        self,
        base_url: str,
        *,
        group_prefix: str | None = None,
        search_timeout: float | None = None,
        store_timeout: float | None = None,
        health_timeout: float | None = None,
        retry_factory: Callable[[], RetryPolicy] = RetryPolicy,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._prefix = group_prefix or settings.memory_group_prefix
        self._search_timeout = search_timeout or settings.memory_search_timeout
        self._store_timeout = store_timeout or settings.memory_store_timeout
        self._health_timeout = health_timeout or settings.memory_health_timeout
        self._retry_factory = retry_factory
        self._client = httpx.AsyncClient(base_url=self._base_url, transport=transport)
        self.healthy = None

    def group_ids(self, user_id: str) -> list[str]:
        p = self._prefix
        return [
            f"{p}-core",
            f"{p}-collective",
            f"{p}-{user_id}",
            f"{p}-{user_id}-sessions",
            f"{p}-{user_id}-tasks",
        ]

    async def check_health(self) -> bool:
        start = time.monotonic()
        try:
            resp = await self._client.get("/healthcheck", timeout=self._health_timeout)
            self.healthy = resp.status_code == 200 and resp.json().get("status") == "healthy"
        except (httpx.HTTPError, ValueError):
            logger.warning("Memory service health check failed", exc_info=True)
            self.healthy = False
        logger.info(
            "Memory service %s (%dms)",
            "healthy" if self.healthy else "unavailable",
            (time.monotonic() - start) * 1000,
        )
        return self.healthy

    async def search(self, user_id: str, query: str, max_facts: int = 5) -> list[MemoryFact]:
        if self.healthy is False:
            return []

        payload = {
            "query": query,
            "group_ids": self.group_ids(user_id),
            "max_facts": max_facts,
        }
        try:
            resp = await self._client.post("/search", json=payload, timeout=self._search_timeout)
        except httpx.HTTPError:
            logger.exception("Memory search failed")
            return []

        if resp.status_code != 200:
            logger.warning("Memory search returned %d: %s", resp.status_code, resp.text[:200])
            return []

        try:
            body = resp.json()
            if not isinstance(body, dict):
                raise ValueError(f"expected an object, got {type(body).__name__}")
            facts = [MemoryFact.model_validate(f) for f in body.get("facts") or []]
        except ValueError:
            logger.exception("Memory search returned malformed facts")
            return []

        logger.debug("Memory search for %s returned %d facts", user_id, len(facts))
        return facts[:max_facts]

    async def _post_messages(self, group_id: str, messages: list[dict[str, Any]]) -> None:
        resp = await self._client.post(
            "/messages",
            json={"group_id": group_id, "messages": messages},
            timeout=self._store_timeout,
        )
        resp.raise_for_status()

    async def _send(self, group_id: str, messages: list[dict[str, Any]], what: str) -> bool:
        if self.healthy is False:
            logger.info("Memory service unavailable, %s not stored", what)
            return False
        try:
            await retry_async(
                lambda: self._post_messages(group_id, messages),
                self._retry_factory(),
                description=f"Memory {what} write",
            )
        except Exception:
            logger.exception("Failed to store %s to %s", what, group_id)
            return False
        logger.debug("Stored %s to %s", what, group_id)
        return True

    async def store(self, user_id: str, user_message: str, response: str) -> bool:
        now = datetime.now(UTC)
        session_name = f"session-{now.date().isoformat()}"
        messages = [
            {
                "content": user_message,
                "role_type": "user",
                "role": user_id,
                "name": session_name,
                "timestamp": now.isoformat(),
                "source_description": SOURCE_DESCRIPTION,
            },
            {
                "content": response,
                "role_type": "assistant",
                "role": ASSISTANT_ROLE,
                "name": session_name,
                "timestamp": datetime.now(UTC).isoformat(),
                "source_description": SOURCE_DESCRIPTION,
            },
        ]
        return await self._send(f"{self._prefix}-{user_id}-sessions", messages, "conversation")

    async def store_teaching(self, user_id: str, topic: str, teaching: str) -> bool:
        slug = "-".join(topic.lower().split())
        messages = [
            {
                "content": f'{user_id} taught {ASSISTANT_ROLE} about {topic}: "{teaching}"',
                "role_type": "system",
                "role": "teaching",
                "name": f"teaching-{slug}",
                "timestamp": datetime.now(UTC).isoformat(),
                "source_description": f"{SOURCE_DESCRIPTION}-teaching",
            }
        ]
        return await self._send(f"{self._prefix}-{user_id}", messages, "teaching")

    async def aclose(self) -> None:
        await self._client.aclose()


class Mem0Memory(MemoryClient):
    """Mem0 hosted platform backend."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: str) -> Mem0Memory:
        from mem0 import AsyncMemoryClient

        return cls(AsyncMemoryClient(api_key=api_key))

    async def search(self, user_id: str, query: str, max_facts: int = 5) -> list[MemoryFact]:
        try:
            raw = await self._client.search(query, user_id=user_id, limit=max_facts)
        except Exception:
            logger.exception("Memory search failed")
            return []
        return self._normalize(raw)[:max_facts]

    async def store(self, user_id: str, user_message: str, response: str) -> bool:
        messages = [
            {"role": "user", "content": user_message},
            {"role": "assistant", "content": response},
        ]
        try:
            await self._client.add(
                messages,
                user_id=user_id,
                metadata={"source": SOURCE_DESCRIPTION, "created_at": datetime.now(UTC).isoformat()},
            )
        except Exception:
            logger.exception("Failed to store conversation")
            return False
        return True

    async def store_teaching(self, user_id: str, topic: str, teaching: str) -> bool:
        try:
            await self._client.add(
                f"{user_id} taught {ASSISTANT_ROLE} about {topic}: {teaching}",
                user_id=user_id,
                metadata={"category": "teaching", "topic": topic},
            )
        except Exception:
            logger.exception("Failed to store teaching")
            return False
        return True

    @staticmethod
    def _normalize(raw: Any) -> list[MemoryFact]:
        """Normalize Mem0 results (dict or list) into MemoryFact list."""
        if isinstance(raw, dict):
            items = raw.get("results", [])
        elif isinstance(raw, list):
            items = raw
        else:
            items = []

        facts = []
        for item in items:
            text = item.get("memory", "")
            if not text:
                continue
            facts.append(
                MemoryFact(
                    id=item.get("id", ""),
                    fact=text,
                    created_at=item.get("created_at", "") or "",
                )
            )
        return facts


_client: MemoryClient | None = None


def get_memory_client() -> MemoryClient:
    """Return the shared memory client, choosing a backend from settings."""
    global _client  # noqa: PLW0603
    if _client is None:
        if settings.memory_service_url:
            _client = GraphitiMemory(settings.memory_service_url)
            logger.info("Memory: Graphiti at %s", settings.memory_service_url)
        elif settings.mem0_api_key:
            try:
                _client = Mem0Memory.from_api_key(settings.mem0_api_key)
                logger.info("Memory: hosted mode (Mem0 cloud)")
            except Exception:
                logger.exception("Failed to init Mem0 client")
                _client = DisabledMemory()
        else:
            logger.warning(
                "Memory disabled. Set MEMORY_SERVICE_URL or MEM0_API_KEY to enable."
            )
            _client = DisabledMemory()
    return _client


def _reset() -> None:
    """Forget the shared client (for testing)."""
    global _client  # noqa: PLW0603
    _client = None


def facts_to_associations(facts: list[MemoryFact]) -> list[Association]:
    """Map memory-service facts onto associations by keyword."""
    associations = []
    for fact in facts:
        lowered = fact.fact.lower()
        if "taught" in lowered:
            kind, intensity = "teaching", "medium"
        elif "prefer" in lowered or "like" in lowered:
            kind, intensity = "preference", "medium"
        elif "want" in lowered:
            kind, intensity = "pull", "medium"
        elif any(w in lowered for w in ("concern", "worry", "struggle")):
            kind, intensity = "signal", "strong"
        elif any(w in lowered for w in ("might", "perhaps", "seem")):
            kind, intensity = "hunch", "faint"
        else:
            kind, intensity = "recollection", "strong"
        associations.append(
            Association(type=kind, intensity=intensity, text=fact.fact, source="memory-service")
        )
    return associations
