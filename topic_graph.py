"""Topic prerequisite graph with acyclicity enforcement."""

from __future__ import annotations

import heapq
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

_LOGGER = logging.getLogger(__name__)


def _log_json(event: str, payload: Dict[str, Any]) -> None:
    record = {"event": event, **payload}
    try:
        message = json.dumps(record, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError):
        message = json.dumps(
            {"event": event, "error": "serialization_failed", "payload_repr": repr(payload)},
            sort_keys=True,
        )
    _LOGGER.info(message)


class TopicKind(str, Enum):
    THEORY = "THEORY"
    PRACTICE = "PRACTICE"
    PROJECT = "PROJECT"


class LearnerTopicStatus(str, Enum):
    NOT_LEARNED = "NOT_LEARNED"
    LEARNED = "LEARNED"


class GraphError(Exception):
    """Base class for rejected graph mutations."""


class ValidationError(GraphError):
    """Malformed edge request: self-loop, unknown topic, or disallowed prerequisite."""

    def __init__(self, message: str, *, ids: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.ids = tuple(ids)


class DuplicateEdgeError(GraphError):
    def __init__(self, topic_id: str, prerequisite_id: str) -> None:
        super().__init__(f"{topic_id} already depends on {prerequisite_id}")
        self.topic_id = topic_id
        self.prerequisite_id = prerequisite_id
        self.ids = (topic_id, prerequisite_id)


class CycleError(GraphError):
    """Raised when edges would form, or already form, a directed cycle.

    ``ids`` holds the cycle path when one is known, otherwise the topics
    that could not be ordered.
    """

    def __init__(self, message: str, *, ids: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.ids = tuple(ids)


class PrerequisiteBatchError(GraphError):
    """Raised when a prerequisite batch is rejected; nothing was committed."""

    def __init__(self, topic_id: str, rejected: Mapping[str, GraphError]) -> None:
        listed = ", ".join(sorted(rejected))
        super().__init__(f"Rejected prerequisites for {topic_id}: {listed}")
        self.topic_id = topic_id
        self.rejected: Dict[str, GraphError] = dict(rejected)

    @property
    def rejected_ids(self) -> Set[str]:
        return set(self.rejected)


@dataclass(frozen=True)
class Topic:
    """A learnable unit. Text fields hold the stored multilingual value as-is."""

    id: str
    slug: str
    kind: TopicKind
    name: Any
    keypoints: Any
    description: Any = None
    author_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PrerequisiteEdge:
    """``topic_id`` depends on ``prerequisite_id``."""

    topic_id: str
    prerequisite_id: str

    def to_dict(self) -> Dict[str, str]:
        return {"topic_id": self.topic_id, "prerequisite_id": self.prerequisite_id}


@dataclass(frozen=True)
class CompletionRecord:
    learner_id: str
    topic_id: str
    completed_at: Optional[datetime] = None


@dataclass
class LocalGraph:
    """A topic with its direct neighbourhood."""

    center: Topic
    prerequisites: List[Topic]
    dependents: List[Topic]
    links: List[Tuple[str, str]]


class TopicGraph:
    """Topics and the prerequisite edges between them."""

    def __init__(self) -> None:
        self._topics: Dict[str, Topic] = {}
        self._slugs: Dict[str, str] = {}
        self._prerequisites: Dict[str, List[str]] = {}
        self._dependents: Dict[str, List[str]] = {}

    # ------------------------------------------------------------------
    def add_topic(self, topic: Topic) -> None:
        """Register a new topic or replace the stored fields of an existing one."""

        existing = self._topics.get(topic.id)
        if existing is not None and existing.slug != topic.slug:
            raise ValidationError(
                f"Slug of topic {topic.id} cannot change from '{existing.slug}'", ids=[topic.id]
            )
        owner = self._slugs.get(topic.slug)
        if owner is not None and owner != topic.id:
            raise ValidationError(f"Topic with slug '{topic.slug}' already exists", ids=[owner])
        self._topics[topic.id] = topic
        self._slugs[topic.slug] = topic.id
        self._prerequisites.setdefault(topic.id, [])
        self._dependents.setdefault(topic.id, [])

    # ------------------------------------------------------------------
    def get_topic(self, topic_id: str) -> Optional[Topic]:
        return self._topics.get(topic_id)

    # ------------------------------------------------------------------
    def find_by_slug(self, slug: str) -> Optional[Topic]:
        topic_id = self._slugs.get(slug)
        return self._topics.get(topic_id) if topic_id is not None else None

    # ------------------------------------------------------------------
    def topics(self) -> List[Topic]:
        return list(self._topics.values())

    def __contains__(self, topic_id: object) -> bool:
        return topic_id in self._topics

    def __len__(self) -> int:
        return len(self._topics)

    # ------------------------------------------------------------------
    def has_edge(self, topic_id: str, prerequisite_id: str) -> bool:
        return prerequisite_id in self._prerequisites.get(topic_id, [])

    # ------------------------------------------------------------------
    def edges(self) -> List[PrerequisiteEdge]:
        return [
            PrerequisiteEdge(topic_id, prerequisite_id)
            for topic_id, prerequisites in self._prerequisites.items()
            for prerequisite_id in prerequisites
        ]

    # ------------------------------------------------------------------
    def prerequisites_of(self, topic_id: str) -> List[str]:
        return list(self._prerequisites.get(topic_id, []))

    # ------------------------------------------------------------------
    def dependents_of(self, topic_id: str) -> List[str]:
        return list(self._dependents.get(topic_id, []))

    # ------------------------------------------------------------------
    def add_edge(self, topic_id: str, prerequisite_id: str) -> PrerequisiteEdge:
        """Insert one prerequisite edge after validating it against the current graph."""

        try:
            self._check_edge(topic_id, prerequisite_id, self._prerequisites)
        except GraphError as exc:
            _LOGGER.warning("Rejected edge %s -> %s: %s", topic_id, prerequisite_id, exc)
            raise
        self._link(topic_id, prerequisite_id)
        _log_json("edge_added", {"topic_id": topic_id, "prerequisite_id": prerequisite_id})
        return PrerequisiteEdge(topic_id, prerequisite_id)

    # ------------------------------------------------------------------
    def replace_prerequisites(self, topic_id: str, prerequisite_ids: Iterable[str]) -> List[str]:
        """Swap the direct prerequisites of ``topic_id`` for ``prerequisite_ids``.

        All ids are validated first against the graph without the topic's
        current prerequisites.  If any id is rejected nothing changes and
        :class:`PrerequisiteBatchError` lists every rejected id with its error.
        """

        if topic_id not in self._topics:
            raise ValidationError(f"Unknown topic {topic_id}", ids=[topic_id])

        candidate: Dict[str, List[str]] = dict(self._prerequisites)
        accepted: List[str] = []
        candidate[topic_id] = accepted
        rejected: Dict[str, GraphError] = {}
        for prerequisite_id in prerequisite_ids:
            try:
                self._check_edge(topic_id, prerequisite_id, candidate)
            except GraphError as exc:
                rejected.setdefault(prerequisite_id, exc)
                continue
            accepted.append(prerequisite_id)

        if rejected:
            _LOGGER.warning(
                "Rejected prerequisite batch for %s: %s", topic_id, sorted(rejected)
            )
            raise PrerequisiteBatchError(topic_id, rejected)

        for previous in self._prerequisites.get(topic_id, []):
            self._dependents[previous].remove(topic_id)
        self._prerequisites[topic_id] = []
        for prerequisite_id in accepted:
            self._link(topic_id, prerequisite_id)
        _log_json("prerequisites_replaced", {"topic_id": topic_id, "prerequisite_ids": accepted})
        return list(accepted)

    # ------------------------------------------------------------------
    def remove_edge(self, topic_id: str, prerequisite_id: str) -> None:
        prerequisites = self._prerequisites.get(topic_id, [])
        if prerequisite_id not in prerequisites:
            return
        prerequisites.remove(prerequisite_id)
        self._dependents[prerequisite_id].remove(topic_id)
        _log_json("edge_removed", {"topic_id": topic_id, "prerequisite_id": prerequisite_id})

    # ------------------------------------------------------------------
    def delete_topic(self, topic_id: str) -> bool:
        """Remove a topic and every edge touching it. Returns whether it existed."""

        topic = self._topics.pop(topic_id, None)
        if topic is None:
            return False
        if self._slugs.get(topic.slug) == topic_id:
            del self._slugs[topic.slug]
        for prerequisite_id in self._prerequisites.pop(topic_id, []):
            dependents = self._dependents.get(prerequisite_id)
            if dependents and topic_id in dependents:
                dependents.remove(topic_id)
        for dependent_id in self._dependents.pop(topic_id, []):
            prerequisites = self._prerequisites.get(dependent_id)
            if prerequisites and topic_id in prerequisites:
                prerequisites.remove(topic_id)
        _log_json("topic_deleted", {"topic_id": topic_id})
        return True

    # ------------------------------------------------------------------
    def transitive_prerequisites(self, topic_id: str) -> Set[str]:
        visited: Set[str] = set()
        stack: List[str] = [topic_id]
        while stack:
            current = stack.pop()
            for prerequisite_id in self._prerequisites.get(current, []):
                if prerequisite_id not in visited:
                    visited.add(prerequisite_id)
                    stack.append(prerequisite_id)
        return visited

    # ------------------------------------------------------------------
    @staticmethod
    def compute_status(
        learner_id: str,
        topic_id: str,
        completion_records: Iterable[CompletionRecord],
    ) -> LearnerTopicStatus:
        """LEARNED iff the learner has a completion record for the topic.

        Prerequisites are path-planning hints and do not gate completion.
        """

        for record in completion_records:
            if record.learner_id == learner_id and record.topic_id == topic_id:
                return LearnerTopicStatus.LEARNED
        return LearnerTopicStatus.NOT_LEARNED

    # ------------------------------------------------------------------
    def topological_order(self, topic_ids: Iterable[str]) -> List[str]:
        """Order ``topic_ids`` so each topic follows its prerequisites within the set.

        Ties keep the input order.  Raises :class:`CycleError` with the
        unorderable ids if the induced subgraph has a cycle.
        """

        ordered_input = list(dict.fromkeys(topic_ids))
        members = set(ordered_input)
        position = {topic_id: idx for idx, topic_id in enumerate(ordered_input)}
        indegree = {
            topic_id: sum(1 for p in self._prerequisites.get(topic_id, []) if p in members)
            for topic_id in ordered_input
        }
        ready = [(position[topic_id], topic_id) for topic_id, count in indegree.items() if count == 0]
        heapq.heapify(ready)

        ordered: List[str] = []
        while ready:
            _, topic_id = heapq.heappop(ready)
            ordered.append(topic_id)
            for dependent_id in self._dependents.get(topic_id, []):
                if dependent_id not in members:
                    continue
                indegree[dependent_id] -= 1
                if indegree[dependent_id] == 0:
                    heapq.heappush(ready, (position[dependent_id], dependent_id))

        if len(ordered) < len(ordered_input):
            placed = set(ordered)
            remaining = [topic_id for topic_id in ordered_input if topic_id not in placed]
            _LOGGER.error("Prerequisite cycle among topics %s", remaining)
            raise CycleError(
                f"Prerequisite cycle among topics: {', '.join(remaining)}", ids=remaining
            )
        return ordered

    # ------------------------------------------------------------------
    def ready_topics(self, completed: Iterable[str]) -> List[Topic]:
        """Return uncompleted topics whose direct prerequisites are all completed."""

        completed_set: Set[str] = set(completed)
        available: List[Topic] = []
        for topic_id, topic in self._topics.items():
            if topic_id in completed_set:
                continue
            if set(self._prerequisites.get(topic_id, [])).issubset(completed_set):
                available.append(topic)
        return available

    # ------------------------------------------------------------------
    def local_graph(self, topic_id: str) -> LocalGraph:
        center = self._topics.get(topic_id)
        if center is None:
            raise KeyError(f"Topic {topic_id} is not registered in the graph")
        prerequisites = [self._topics[p] for p in self._prerequisites.get(topic_id, []) if p in self._topics]
        dependents = [self._topics[d] for d in self._dependents.get(topic_id, []) if d in self._topics]
        links = [(topic.id, topic_id) for topic in prerequisites]
        links.extend((topic_id, topic.id) for topic in dependents)
        return LocalGraph(center=center, prerequisites=prerequisites, dependents=dependents, links=links)

    # ------------------------------------------------------------------
    def find_cycle(self) -> Optional[List[str]]:
        """Return one directed cycle as a closed path, or ``None`` for an acyclic graph."""

        state: Dict[str, int] = {}
        for root in self._prerequisites:
            if state.get(root):
                continue
            path: List[str] = [root]
            iterators = [iter(self._prerequisites.get(root, []))]
            state[root] = 1
            while iterators:
                advanced = False
                for nxt in iterators[-1]:
                    mark = state.get(nxt, 0)
                    if mark == 1:
                        return path[path.index(nxt):] + [nxt]
                    if mark == 0:
                        state[nxt] = 1
                        path.append(nxt)
                        iterators.append(iter(self._prerequisites.get(nxt, [])))
                        advanced = True
                        break
                if not advanced:
                    state[path.pop()] = 2
                    iterators.pop()
        return None

    # ------------------------------------------------------------------
    def validate(self) -> None:
        """Raise :class:`CycleError` if the stored edges contain a cycle."""

        cycle = self.find_cycle()
        if cycle is not None:
            raise CycleError(f"Prerequisite cycle: {' -> '.join(cycle)}", ids=cycle)

    # ------------------------------------------------------------------
    def _check_edge(
        self,
        topic_id: str,
        prerequisite_id: str,
        adjacency: Mapping[str, Sequence[str]],
    ) -> None:
        if topic_id == prerequisite_id:
            raise ValidationError("Topic cannot be a prerequisite of itself", ids=[topic_id])
        unknown = [tid for tid in (topic_id, prerequisite_id) if tid not in self._topics]
        if unknown:
            raise ValidationError(f"Unknown topic(s): {', '.join(unknown)}", ids=unknown)
        if prerequisite_id in adjacency.get(topic_id, ()):
            raise DuplicateEdgeError(topic_id, prerequisite_id)
        if self._topics[prerequisite_id].kind is TopicKind.PROJECT:
            raise ValidationError(
                "PROJECT type topics cannot be prerequisites", ids=[prerequisite_id]
            )
        path = self._path(prerequisite_id, topic_id, adjacency)
        if path is not None:
            cycle = [topic_id] + path
            raise CycleError(f"Edge would create a cycle: {' -> '.join(cycle)}", ids=cycle)

    # ------------------------------------------------------------------
    @staticmethod
    def _path(
        start: str,
        target: str,
        adjacency: Mapping[str, Sequence[str]],
    ) -> Optional[List[str]]:
        """Depth-first search for a prerequisite path ``start -> ... -> target``."""

        parents: Dict[str, Optional[str]] = {start: None}
        stack: List[str] = [start]
        while stack:
            current = stack.pop()
            if current == target:
                path: List[str] = []
                node: Optional[str] = current
                while node is not None:
                    path.append(node)
                    node = parents[node]
                return list(reversed(path))
            for nxt in adjacency.get(current, ()):
                if nxt not in parents:
                    parents[nxt] = current
                    stack.append(nxt)
        return None

    # ------------------------------------------------------------------
    def _link(self, topic_id: str, prerequisite_id: str) -> None:
        self._prerequisites.setdefault(topic_id, []).append(prerequisite_id)
        self._dependents.setdefault(prerequisite_id, []).append(topic_id)

    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "topics": [self._serialize_topic(topic) for topic in self._topics.values()],
            "edges": [edge.to_dict() for edge in self.edges()],
        }

    # ------------------------------------------------------------------
    def save_json(self, path: Path) -> None:
        path.write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")

    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TopicGraph":
        """Rebuild a graph from an export without edge validation.

        Imported data is not trusted to be acyclic; call :meth:`validate`
        before relying on it.  Topic rows without a usable id, slug or kind
        are skipped, as are edges to unknown topics and repeated pairs.
        """

        topics: List[Topic] = []
        malformed = 0
        for data in payload.get("topics", []):
            try:
                topics.append(cls._deserialize_topic(data))
            except (KeyError, TypeError, ValueError) as exc:
                malformed += 1
                _LOGGER.debug("Malformed topic row %r: %s", data, exc)
        if malformed:
            _LOGGER.warning("Skipped %d imported topics with missing or invalid fields", malformed)
        edges = [
            PrerequisiteEdge(
                str(edge_data.get("topic_id") or edge_data.get("topicId")),
                str(edge_data.get("prerequisite_id") or edge_data.get("prerequisiteId")),
            )
            for edge_data in payload.get("edges", [])
        ]
        return cls.from_records(topics, edges)

    # ------------------------------------------------------------------
    @classmethod
    def from_records(
        cls,
        topics: Iterable[Topic],
        edges: Iterable[PrerequisiteEdge],
    ) -> "TopicGraph":
        """Build a graph from persisted rows, inserting edges without validation.

        The first topic wins when ids or slugs repeat.
        """

        graph = cls()
        conflicts = 0
        for topic in topics:
            if topic.id in graph._topics:
                conflicts += 1
                continue
            try:
                graph.add_topic(topic)
            except ValidationError:
                conflicts += 1
        if conflicts:
            _LOGGER.warning("Skipped %d imported topics with repeated ids or slugs", conflicts)
        skipped = 0
        for edge in edges:
            topic_id, prerequisite_id = edge.topic_id, edge.prerequisite_id
            if topic_id not in graph._topics or prerequisite_id not in graph._topics:
                skipped += 1
                continue
            if graph.has_edge(topic_id, prerequisite_id):
                skipped += 1
                continue
            graph._link(topic_id, prerequisite_id)
        if skipped:
            _LOGGER.warning("Skipped %d imported edges with unknown or repeated endpoints", skipped)
        return graph

    # ------------------------------------------------------------------
    @classmethod
    def load_json(cls, path: Path) -> "TopicGraph":
        payload = json.loads(path.read_text(encoding="utf-8"))
        return cls.from_dict(payload)

    # ------------------------------------------------------------------
    @staticmethod
    def _serialize_topic(topic: Topic) -> Dict[str, Any]:
        return {
            "id": topic.id,
            "slug": topic.slug,
            "kind": topic.kind.value,
            "name": topic.name,
            "description": topic.description,
            "keypoints": topic.keypoints,
            "author_id": topic.author_id,
            "metadata": topic.metadata,
        }

    # ------------------------------------------------------------------
    @staticmethod
    def _deserialize_topic(data: Mapping[str, Any]) -> Topic:
        return Topic(
            id=str(data["id"]),
            slug=str(data["slug"]),
            kind=TopicKind(data.get("kind") or data.get("type")),
            name=data.get("name"),
            keypoints=data.get("keypoints"),
            description=data.get("description"),
            author_id=data.get("author_id") or data.get("authorId"),
            metadata=dict(data.get("metadata") or {}),
        )


__all__ = [
    "CompletionRecord",
    "CycleError",
    "DuplicateEdgeError",
    "GraphError",
    "LearnerTopicStatus",
    "LocalGraph",
    "PrerequisiteBatchError",
    "PrerequisiteEdge",
    "Topic",
    "TopicGraph",
    "TopicKind",
    "ValidationError",
]
