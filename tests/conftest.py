import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from topic_graph import CompletionRecord, PrerequisiteEdge, Topic, TopicGraph, TopicKind


class InMemoryTopicRepository:
    """Dictionary-backed stand-in for the persistence collaborator."""

    def __init__(self) -> None:
        self.topics: Dict[str, Topic] = {}
        self.edges: Dict[str, List[PrerequisiteEdge]] = {}
        self.completions: List[CompletionRecord] = []
        self.completion_loads = 0

    def load_topic(self, topic_id: str) -> Optional[Topic]:
        return self.topics.get(topic_id)

    def load_topics(self) -> List[Topic]:
        return list(self.topics.values())

    def save_topic(self, topic: Topic) -> None:
        self.topics[topic.id] = topic

    def delete_topic(self, topic_id: str) -> None:
        self.topics.pop(topic_id, None)
        self.edges.pop(topic_id, None)
        for topic, edges in self.edges.items():
            self.edges[topic] = [edge for edge in edges if edge.prerequisite_id != topic_id]

    def load_edges(self, scope: Optional[Sequence[str]] = None) -> List[PrerequisiteEdge]:
        edges = [edge for edges in self.edges.values() for edge in edges]
        if scope is None:
            return edges
        wanted = set(scope)
        return [edge for edge in edges if edge.topic_id in wanted or edge.prerequisite_id in wanted]

    def save_edges(self, topic_id: str, edges: Iterable[PrerequisiteEdge]) -> None:
        self.edges[topic_id] = list(edges)

    def load_completion_records(self, learner_id: str) -> List[CompletionRecord]:
        self.completion_loads += 1
        return [record for record in self.completions if record.learner_id == learner_id]


def make_topic(topic_id: str, kind: TopicKind = TopicKind.THEORY, **fields) -> Topic:
    fields.setdefault("name", {"en": topic_id.title(), "uk": f"{topic_id} (uk)"})
    fields.setdefault("keypoints", {"en": f"Key points of {topic_id}"})
    return Topic(id=topic_id, slug=topic_id.lower(), kind=kind, **fields)


def build_chain_graph() -> TopicGraph:
    """A <- B <- C: B depends on A, C depends on B."""
    graph = TopicGraph()
    for topic_id in ("a", "b", "c"):
        graph.add_topic(make_topic(topic_id))
    graph.add_edge("b", "a")
    graph.add_edge("c", "b")
    return graph


@pytest.fixture
def repository() -> InMemoryTopicRepository:
    return InMemoryTopicRepository()


@pytest.fixture
def chain_graph() -> TopicGraph:
    return build_chain_graph()
