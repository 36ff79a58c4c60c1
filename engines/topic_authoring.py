"""Create, update and delete topics against the graph and the repository."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping, Optional, Sequence
from uuid import uuid4

from multilingual import MultilingualText, set_language
from repository import TopicRepository
from schemas import TopicCreate, TopicUpdate
from topic_graph import (
    GraphError,
    PrerequisiteEdge,
    Topic,
    TopicGraph,
    TopicKind,
    ValidationError,
)

_LOGGER = logging.getLogger(__name__)

TEXT_FIELDS = ("name", "description", "keypoints")


def load_graph(
    repository: TopicRepository,
    *,
    validate: bool = True,
    scope: Optional[Sequence[str]] = None,
) -> TopicGraph:
    """Build a graph snapshot from the repository.

    With ``scope`` only the listed topics, the edges touching them and the
    topics on the other end of those edges are loaded.  Stored edges are
    not trusted; with ``validate`` a stored cycle raises
    :class:`topic_graph.CycleError` before the snapshot is used.
    """

    if scope is None:
        topics = repository.load_topics()
        edges = repository.load_edges()
    else:
        edges = repository.load_edges(scope)
        wanted = dict.fromkeys(scope)
        for edge in edges:
            wanted.setdefault(edge.topic_id)
            wanted.setdefault(edge.prerequisite_id)
        loaded = (repository.load_topic(topic_id) for topic_id in wanted)
        topics = [topic for topic in loaded if topic is not None]
    graph = TopicGraph.from_records(topics, edges)
    if validate:
        graph.validate()
    return graph


def _merge_text(existing: Any, incoming: Mapping[str, str]) -> MultilingualText:
    merged: Any = existing
    for language, text in incoming.items():
        merged = set_language(merged, language, text)
    return merged


class TopicAuthoring:
    """Apply authoring actions with all-or-nothing prerequisite validation.

    The caller wraps each method call in one repository transaction; the
    graph is only changed once validation has passed.
    """

    def __init__(self, repository: TopicRepository, graph: Optional[TopicGraph] = None) -> None:
        self.repository = repository
        self.graph = graph if graph is not None else load_graph(repository)

    # ------------------------------------------------------------------
    def create_topic(
        self,
        payload: TopicCreate | Mapping[str, Any],
        *,
        author_id: Optional[str] = None,
        topic_id: Optional[str] = None,
    ) -> Topic:
        data = payload if isinstance(payload, TopicCreate) else TopicCreate.model_validate(payload)
        topic = Topic(
            id=topic_id or uuid4().hex,
            slug=data.slug,
            kind=data.kind,
            name=data.name,
            keypoints=data.keypoints,
            description=data.description,
            author_id=author_id,
        )
        if topic.id in self.graph:
            raise ValidationError(f"Topic {topic.id} already exists", ids=[topic.id])

        self.graph.add_topic(topic)
        try:
            accepted = self.graph.replace_prerequisites(topic.id, data.prerequisite_ids)
        except GraphError:
            self.graph.delete_topic(topic.id)
            raise

        self.repository.save_topic(topic)
        self.repository.save_edges(topic.id, [PrerequisiteEdge(topic.id, pid) for pid in accepted])
        _LOGGER.info("Created topic %s (%s) with %d prerequisites", topic.slug, topic.id, len(accepted))
        return topic

    # ------------------------------------------------------------------
    def update_topic(self, topic_id: str, payload: TopicUpdate | Mapping[str, Any]) -> Topic:
        """Apply a partial update.

        Text fields are merged per language so translations not present in
        the payload survive.  When ``prerequisite_ids`` is given it replaces
        the topic's prerequisites as one batch.
        """

        existing = self.graph.get_topic(topic_id)
        if existing is None:
            raise KeyError(f"Topic {topic_id} does not exist")
        data = payload if isinstance(payload, TopicUpdate) else TopicUpdate.model_validate(payload)

        changes: dict[str, Any] = {}
        if data.kind is not None and data.kind != existing.kind:
            dependents = self.graph.dependents_of(topic_id)
            if data.kind is TopicKind.PROJECT and dependents:
                raise ValidationError(
                    "PROJECT type topics cannot be prerequisites", ids=dependents
                )
            changes["kind"] = data.kind
        for field_name in TEXT_FIELDS:
            incoming = getattr(data, field_name)
            if incoming:
                changes[field_name] = _merge_text(getattr(existing, field_name), incoming)

        accepted = None
        if data.prerequisite_ids is not None:
            accepted = self.graph.replace_prerequisites(topic_id, data.prerequisite_ids)

        updated = replace(existing, **changes)
        self.graph.add_topic(updated)
        self.repository.save_topic(updated)
        if accepted is not None:
            self.repository.save_edges(topic_id, [PrerequisiteEdge(topic_id, pid) for pid in accepted])
        _LOGGER.info("Updated topic %s fields=%s", topic_id, sorted(changes))
        return updated

    # ------------------------------------------------------------------
    def set_translation(self, topic_id: str, field_name: str, language: str, value: str) -> Topic:
        """Set one language of one text field, leaving every other translation as stored."""

        if field_name not in TEXT_FIELDS:
            raise ValueError(f"Unknown text field: {field_name}")
        existing = self.graph.get_topic(topic_id)
        if existing is None:
            raise KeyError(f"Topic {topic_id} does not exist")
        updated = replace(
            existing, **{field_name: set_language(getattr(existing, field_name), language, value)}
        )
        self.graph.add_topic(updated)
        self.repository.save_topic(updated)
        return updated

    # ------------------------------------------------------------------
    def add_prerequisite(self, topic_id: str, prerequisite_id: str) -> PrerequisiteEdge:
        edge = self.graph.add_edge(topic_id, prerequisite_id)
        self._persist_edges(topic_id)
        return edge

    # ------------------------------------------------------------------
    def remove_prerequisite(self, topic_id: str, prerequisite_id: str) -> None:
        if not self.graph.has_edge(topic_id, prerequisite_id):
            return
        self.graph.remove_edge(topic_id, prerequisite_id)
        self._persist_edges(topic_id)

    # ------------------------------------------------------------------
    def delete_topic(self, topic_id: str) -> bool:
        """Delete a topic and every edge that references it. Idempotent."""

        existed = self.graph.delete_topic(topic_id)
        self.repository.delete_topic(topic_id)
        if existed:
            _LOGGER.info("Deleted topic %s", topic_id)
        return existed

    # ------------------------------------------------------------------
    def _persist_edges(self, topic_id: str) -> None:
        edges = [PrerequisiteEdge(topic_id, pid) for pid in self.graph.prerequisites_of(topic_id)]
        self.repository.save_edges(topic_id, edges)


__all__ = ["TEXT_FIELDS", "TopicAuthoring", "load_graph"]
