"""Per-learner topic status and localized read models."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from multilingual import available_languages, resolve
from repository import TopicRepository
from schemas import LocalGraphLink, LocalGraphNode, LocalGraphView, TopicRef, TopicView
from topic_graph import CompletionRecord, LearnerTopicStatus, Topic, TopicGraph

_LOGGER = logging.getLogger(__name__)


class StatusProjector:
    """Combine the prerequisite graph with a learner's completion records.

    Nothing is cached: every call reads completion records again, either
    from the arguments or from the repository.
    """

    def __init__(self, graph: TopicGraph, repository: Optional[TopicRepository] = None) -> None:
        self.graph = graph
        self.repository = repository

    # ------------------------------------------------------------------
    def _records(
        self,
        learner_id: Optional[str],
        completion_records: Optional[Iterable[CompletionRecord]],
    ) -> List[CompletionRecord]:
        if completion_records is not None:
            return list(completion_records)
        if learner_id is None or self.repository is None:
            return []
        return list(self.repository.load_completion_records(learner_id))

    # ------------------------------------------------------------------
    def status(
        self,
        learner_id: Optional[str],
        topic_id: str,
        completion_records: Optional[Iterable[CompletionRecord]] = None,
    ) -> LearnerTopicStatus:
        if learner_id is None:
            return LearnerTopicStatus.NOT_LEARNED
        records = self._records(learner_id, completion_records)
        return self.graph.compute_status(learner_id, topic_id, records)

    # ------------------------------------------------------------------
    def statuses(
        self,
        learner_id: Optional[str],
        topic_ids: Optional[Iterable[str]] = None,
        completion_records: Optional[Iterable[CompletionRecord]] = None,
    ) -> Dict[str, LearnerTopicStatus]:
        ids = list(topic_ids) if topic_ids is not None else [topic.id for topic in self.graph.topics()]
        learned = self._learned_ids(learner_id, completion_records)
        return {
            topic_id: LearnerTopicStatus.LEARNED if topic_id in learned else LearnerTopicStatus.NOT_LEARNED
            for topic_id in ids
        }

    # ------------------------------------------------------------------
    def topic_view(
        self,
        topic_id: str,
        language: str,
        learner_id: Optional[str] = None,
        completion_records: Optional[Iterable[CompletionRecord]] = None,
    ) -> TopicView:
        topic = self._require(topic_id)
        status = self.status(learner_id, topic_id, completion_records)
        return self._view(topic, language, status)

    # ------------------------------------------------------------------
    def topic_views(
        self,
        language: str,
        learner_id: Optional[str] = None,
        completion_records: Optional[Iterable[CompletionRecord]] = None,
    ) -> List[TopicView]:
        """Every topic resolved for ``language``, ordered by display name."""

        learned = self._learned_ids(learner_id, completion_records)
        views = [
            self._view(
                topic,
                language,
                LearnerTopicStatus.LEARNED if topic.id in learned else LearnerTopicStatus.NOT_LEARNED,
            )
            for topic in self.graph.topics()
        ]
        views.sort(key=lambda view: (view.name.casefold(), view.slug))
        return views

    # ------------------------------------------------------------------
    def local_graph_view(
        self,
        topic_id: str,
        language: str,
        learner_id: Optional[str] = None,
        completion_records: Optional[Iterable[CompletionRecord]] = None,
    ) -> LocalGraphView:
        local = self.graph.local_graph(topic_id)
        learned = self._learned_ids(learner_id, completion_records)
        return LocalGraphView(
            center=self._node(local.center, language, learned),
            prerequisites=[self._node(topic, language, learned) for topic in local.prerequisites],
            dependents=[self._node(topic, language, learned) for topic in local.dependents],
            links=[LocalGraphLink(source=source, target=target) for source, target in local.links],
        )

    # ------------------------------------------------------------------
    def learning_path(
        self,
        topic_id: str,
        learner_id: Optional[str] = None,
        completion_records: Optional[Iterable[CompletionRecord]] = None,
        *,
        include_learned: bool = False,
    ) -> List[str]:
        """Topics to study before and including ``topic_id``, prerequisites first."""

        self._require(topic_id)
        closure = self.graph.transitive_prerequisites(topic_id)
        candidates = [topic.id for topic in self.graph.topics() if topic.id in closure]
        candidates.append(topic_id)
        ordered = self.graph.topological_order(candidates)
        _LOGGER.debug("Learning path for %s spans %d topics", topic_id, len(ordered))
        if include_learned:
            return ordered
        learned = self._learned_ids(learner_id, completion_records)
        return [tid for tid in ordered if tid not in learned]

    # ------------------------------------------------------------------
    def _learned_ids(
        self,
        learner_id: Optional[str],
        completion_records: Optional[Iterable[CompletionRecord]],
    ) -> set[str]:
        if learner_id is None:
            return set()
        records = self._records(learner_id, completion_records)
        return {record.topic_id for record in records if record.learner_id == learner_id}

    # ------------------------------------------------------------------
    def _require(self, topic_id: str) -> Topic:
        topic = self.graph.get_topic(topic_id)
        if topic is None:
            raise KeyError(f"Topic {topic_id} does not exist")
        return topic

    # ------------------------------------------------------------------
    def _refs(self, topic_ids: Sequence[str], language: str) -> List[TopicRef]:
        refs: List[TopicRef] = []
        for prerequisite_id in topic_ids:
            prerequisite = self.graph.get_topic(prerequisite_id)
            if prerequisite is None:
                continue
            refs.append(
                TopicRef(
                    id=prerequisite.id,
                    slug=prerequisite.slug,
                    kind=prerequisite.kind,
                    name=resolve(prerequisite.name, language, fallback=prerequisite.slug),
                )
            )
        return refs

    # ------------------------------------------------------------------
    def _view(self, topic: Topic, language: str, status: LearnerTopicStatus) -> TopicView:
        return TopicView(
            id=topic.id,
            slug=topic.slug,
            kind=topic.kind,
            name=resolve(topic.name, language, fallback=topic.slug),
            description=resolve(topic.description, language),
            keypoints=resolve(topic.keypoints, language),
            status=status,
            author_id=topic.author_id,
            prerequisites=self._refs(self.graph.prerequisites_of(topic.id), language),
            available_languages=sorted(available_languages(topic.name)),
        )

    # ------------------------------------------------------------------
    def _node(self, topic: Topic, language: str, learned: set[str]) -> LocalGraphNode:
        status = LearnerTopicStatus.LEARNED if topic.id in learned else LearnerTopicStatus.NOT_LEARNED
        view = self._view(topic, language, status)
        return LocalGraphNode(
            **view.model_dump(),
            prerequisite_count=len(self.graph.prerequisites_of(topic.id)),
            dependent_count=len(self.graph.dependents_of(topic.id)),
        )


__all__ = ["StatusProjector"]
