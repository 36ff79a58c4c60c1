"""Pydantic schemas for topic payloads, read models and helper utilities."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from multilingual import MultilingualText, normalize_text
from topic_graph import LearnerTopicStatus, TopicKind

__all__ = [
    "SLUG_PATTERN",
    "TopicCreate",
    "TopicUpdate",
    "TopicRef",
    "TopicView",
    "LocalGraphNode",
    "LocalGraphLink",
    "LocalGraphView",
    "CompletionRecordPayload",
    "TopicGraphExport",
    "parse_json_safe",
]

SLUG_PATTERN = r"^[a-z0-9-]+$"
NAME_MAX_LENGTH = 100


def _clean_text_field(value: Any) -> MultilingualText:
    return normalize_text(value)


def _require_text(value: MultilingualText, label: str) -> MultilingualText:
    if not value:
        raise ValueError(f"{label} is required in at least one language")
    return value


def _check_name_lengths(value: MultilingualText) -> MultilingualText:
    _require_text(value, "Name")
    for language, text in value.items():
        if len(text) > NAME_MAX_LENGTH:
            raise ValueError(f"Name ({language}) must be at most {NAME_MAX_LENGTH} characters")
    return value


def _clean_prerequisite_ids(values: List[str]) -> List[str]:
    cleaned: List[str] = []
    for value in values:
        text = str(value).strip()
        if not text:
            raise ValueError("Invalid prerequisite IDs")
        cleaned.append(text)
    return cleaned


class TopicCreate(BaseModel):
    """Payload for creating a topic. ``type`` and ``prerequisiteIds`` are accepted as aliases."""

    model_config = ConfigDict(populate_by_name=True)

    name: Dict[str, str]
    slug: str = Field(min_length=1, max_length=100, pattern=SLUG_PATTERN)
    kind: TopicKind = Field(validation_alias=AliasChoices("kind", "type"))
    description: Dict[str, str] | None = None
    keypoints: Dict[str, str]
    prerequisite_ids: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("prerequisite_ids", "prerequisiteIds"),
    )

    @field_validator("name", "keypoints", "description", mode="before")
    @classmethod
    def _normalise_text(cls, value: Any) -> Any:
        if value is None:
            return None
        return _clean_text_field(value)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: MultilingualText) -> MultilingualText:
        return _check_name_lengths(value)

    @field_validator("keypoints")
    @classmethod
    def _check_keypoints(cls, value: MultilingualText) -> MultilingualText:
        return _require_text(value, "Key points")

    @field_validator("description")
    @classmethod
    def _empty_description(cls, value: MultilingualText | None) -> MultilingualText | None:
        return value or None

    @field_validator("prerequisite_ids")
    @classmethod
    def _check_prerequisites(cls, value: List[str]) -> List[str]:
        return _clean_prerequisite_ids(value)


class TopicUpdate(BaseModel):
    """Partial topic update. Omitted fields stay unchanged; the slug cannot be edited."""

    model_config = ConfigDict(populate_by_name=True)

    name: Dict[str, str] | None = None
    kind: TopicKind | None = Field(default=None, validation_alias=AliasChoices("kind", "type"))
    description: Dict[str, str] | None = None
    keypoints: Dict[str, str] | None = None
    prerequisite_ids: List[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("prerequisite_ids", "prerequisiteIds"),
    )

    @field_validator("name", "keypoints", "description", mode="before")
    @classmethod
    def _normalise_text(cls, value: Any) -> Any:
        if value is None:
            return None
        return _clean_text_field(value)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: MultilingualText | None) -> MultilingualText | None:
        if value is None:
            return None
        return _check_name_lengths(value)

    @field_validator("keypoints")
    @classmethod
    def _check_keypoints(cls, value: MultilingualText | None) -> MultilingualText | None:
        if value is None:
            return None
        return _require_text(value, "Key points")

    @field_validator("prerequisite_ids")
    @classmethod
    def _check_prerequisites(cls, value: List[str] | None) -> List[str] | None:
        if value is None:
            return None
        return _clean_prerequisite_ids(value)


class TopicRef(BaseModel):
    id: str
    slug: str
    kind: TopicKind
    name: str


class TopicView(BaseModel):
    """A topic resolved for one display language and one learner."""

    id: str
    slug: str
    kind: TopicKind
    name: str
    description: str
    keypoints: str
    status: LearnerTopicStatus = LearnerTopicStatus.NOT_LEARNED
    author_id: str | None = None
    prerequisites: List[TopicRef] = Field(default_factory=list)
    available_languages: List[str] = Field(
        default_factory=list,
        description="Languages with a name translation, sorted.",
    )


class LocalGraphNode(TopicView):
    prerequisite_count: int = Field(default=0, ge=0)
    dependent_count: int = Field(default=0, ge=0)


class LocalGraphLink(BaseModel):
    source: str
    target: str
    value: int = 1


class LocalGraphView(BaseModel):
    center: LocalGraphNode
    prerequisites: List[LocalGraphNode] = Field(default_factory=list)
    dependents: List[LocalGraphNode] = Field(default_factory=list)
    links: List[LocalGraphLink] = Field(default_factory=list)


class CompletionRecordPayload(BaseModel):
    learner_id: str = Field(validation_alias=AliasChoices("learner_id", "userId"))
    topic_id: str = Field(validation_alias=AliasChoices("topic_id", "topicId"))
    completed_at: datetime | None = None


class TopicGraphExport(BaseModel):
    """Bulk export/import document: raw topic rows plus edge rows."""

    model_config = {
        "extra": "allow",
    }

    topics: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)


_T = TypeVar("_T", bound=BaseModel)


def _find_first_json_object(text: str) -> tuple[str, int, int]:
    start = text.find("{")
    while start != -1:
        depth = 0
        for idx in range(start, len(text)):
            char = text[idx]
            if char == "{" and (idx == 0 or text[idx - 1] != "\\"):
                depth += 1
            elif char == "}" and (idx == 0 or text[idx - 1] != "\\"):
                depth -= 1
                if depth == 0:
                    candidate = text[start : idx + 1]
                    try:
                        json.loads(candidate)
                    except ValueError:
                        break
                    return candidate, start, idx + 1
        start = text.find("{", start + 1)
    raise ValueError("No JSON object found in provided text")


def parse_json_safe(text: str, model: Type[_T]) -> _T:
    """Parse ``text`` into ``model`` with a fallback JSON extraction pass."""

    first_error: Exception | None = None
    try:
        return model.model_validate_json(text)
    except (ValidationError, ValueError, TypeError) as exc:
        first_error = exc

    try:
        snippet, _, end = _find_first_json_object(text)
    except ValueError:
        if first_error:
            raise first_error
        raise

    trailing = text[end:]
    if trailing.strip():
        if isinstance(first_error, ValidationError):
            raise first_error
        raise ValueError("Trailing content detected after JSON object")

    try:
        return model.model_validate_json(snippet)
    except (ValidationError, ValueError):
        if first_error:
            raise first_error
        raise
