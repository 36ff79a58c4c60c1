"""Persistence collaborator contract used by the topic core.

The core never talks to a database directly.  Callers hand it an object
implementing :class:`TopicRepository` and are responsible for running
each mutation inside one transaction.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, Sequence

from topic_graph import CompletionRecord, PrerequisiteEdge, Topic


class TopicRepository(Protocol):
    def load_topic(self, topic_id: str) -> Optional[Topic]:
        ...

    def load_topics(self) -> List[Topic]:
        ...

    def save_topic(self, topic: Topic) -> None:
        ...

    def delete_topic(self, topic_id: str) -> None:
        ...

    def load_edges(self, scope: Optional[Sequence[str]] = None) -> List[PrerequisiteEdge]:
        """Return edges touching any topic in ``scope``, or every edge when ``scope`` is ``None``."""
        ...

    def save_edges(self, topic_id: str, edges: Iterable[PrerequisiteEdge]) -> None:
        """Replace the stored prerequisite edges of ``topic_id``."""
        ...

    def load_completion_records(self, learner_id: str) -> List[CompletionRecord]:
        ...
