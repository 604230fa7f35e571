"""In-memory EventBus.

Lets the whole package run, and the test suite assert on emitted events,
without a broker.
"""

from __future__ import annotations

import json
from typing import Any, final

from fractor.core.result import Err, Ok
from fractor.infra.protocols import PersistenceError


@final
class InMemoryEventBus:
    """Messages stored per topic as (key, value) pairs in publish order."""

    def __init__(self) -> None:
        self._topics: dict[str, list[tuple[str, bytes]]] = {}

    def publish(
        self, topic: str, key: str, value: bytes,
    ) -> Ok[None] | Err[PersistenceError]:
        self._topics.setdefault(topic, []).append((key, value))
        return Ok(None)

    def get_messages(self, topic: str) -> list[tuple[str, bytes]]:
        return list(self._topics.get(topic, []))

    def decoded(self, topic: str) -> list[dict[str, Any]]:
        """Messages of a topic parsed back from JSON."""
        return [json.loads(v) for _, v in self._topics.get(topic, [])]

    def event_types(self, topic: str) -> list[str]:
        return [m["_type"] for m in self.decoded(topic)]

    def topic_count(self) -> int:
        return len(self._topics)
