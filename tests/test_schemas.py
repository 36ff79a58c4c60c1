import json

import pytest
from pydantic import ValidationError

from schemas import TopicCreate, TopicGraphExport, TopicUpdate, parse_json_safe
from topic_graph import TopicKind


def _sample_payload() -> dict[str, object]:
    return {
        "name": {"en": " Loops ", "uk": "Цикли"},
        "slug": "loops",
        "type": "THEORY",
        "description": {"en": ""},
        "keypoints": '{"en": "for, while"}',
        "prerequisiteIds": ["variables", " conditions "],
    }


def test_topic_create_normalises_fields():
    topic = TopicCreate.model_validate(_sample_payload())

    assert topic.kind is TopicKind.THEORY
    assert topic.name == {"en": "Loops", "uk": "Цикли"}
    assert topic.description is None
    assert topic.keypoints == {"en": "for, while"}
    assert topic.prerequisite_ids == ["variables", "conditions"]


def test_topic_create_accepts_field_names():
    topic = TopicCreate(
        name={"uk": "Цикли"},
        slug="loops-2",
        kind=TopicKind.PRACTICE,
        keypoints={"uk": "for"},
    )
    assert topic.prerequisite_ids == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"slug": "Loops!"},
        {"slug": ""},
        {"type": "LECTURE"},
        {"name": {"en": "  "}},
        {"name": {"en": "x" * 101}},
        {"keypoints": {}},
        {"prerequisiteIds": ["ok", "  "]},
    ],
)
def test_topic_create_rejects_invalid_payloads(overrides):
    payload = {**_sample_payload(), **overrides}
    with pytest.raises(ValidationError):
        TopicCreate.model_validate(payload)


def test_topic_update_tracks_omitted_fields():
    update = TopicUpdate.model_validate({"name": {"uk": "Нове"}})
    assert update.name == {"uk": "Нове"}
    assert update.kind is None
    assert update.prerequisite_ids is None

    cleared = TopicUpdate.model_validate({"prerequisiteIds": []})
    assert cleared.prerequisite_ids == []

    with pytest.raises(ValidationError):
        TopicUpdate.model_validate({"keypoints": {"en": ""}})


def test_parse_json_safe_extracts_export_object():
    document = {"topics": [{"id": "a", "slug": "a", "kind": "THEORY"}], "edges": []}
    noisy = "export follows\n" + json.dumps(document)

    export = parse_json_safe(noisy, TopicGraphExport)
    assert export.topics[0]["id"] == "a"


def test_parse_json_safe_rejects_trailing_payload():
    with pytest.raises((ValidationError, ValueError)):
        parse_json_safe('{"topics": []} trailing', TopicGraphExport)


def test_deeply_nested_text_fields_are_read_as_plain_text():
    nested = "[" * 100000

    with pytest.raises(ValidationError):
        TopicCreate.model_validate({**_sample_payload(), "name": nested})

    topic = TopicCreate.model_validate({**_sample_payload(), "keypoints": nested})
    assert topic.keypoints == {"en": nested}
