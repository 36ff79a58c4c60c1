import pytest
from pydantic import ValidationError as PayloadValidationError

from engines.topic_authoring import TopicAuthoring, load_graph
from topic_graph import (
    CycleError,
    PrerequisiteBatchError,
    PrerequisiteEdge,
    Topic,
    TopicKind,
    ValidationError,
)


def _payload(slug: str, **overrides):
    payload = {
        "name": {"en": slug.title()},
        "slug": slug,
        "type": "THEORY",
        "keypoints": {"en": f"About {slug}"},
        "prerequisiteIds": [],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def authoring(repository):
    service = TopicAuthoring(repository)
    service.create_topic(_payload("variables"), topic_id="vars", author_id="author-1")
    service.create_topic(_payload("loops", prerequisiteIds=["vars"]), topic_id="loops")
    return service


def test_create_topic_persists_topic_and_edges(authoring, repository):
    assert repository.topics["loops"].name == {"en": "Loops"}
    assert repository.topics["vars"].author_id == "author-1"
    assert repository.edges["loops"] == [PrerequisiteEdge("loops", "vars")]
    assert authoring.graph.transitive_prerequisites("loops") == {"vars"}


def test_create_topic_generates_ids_and_validates_payload(authoring):
    topic = authoring.create_topic(_payload("functions"))
    assert topic.id and topic.id in authoring.graph

    with pytest.raises(PayloadValidationError):
        authoring.create_topic(_payload("Bad Slug"))
    with pytest.raises(ValidationError):
        authoring.create_topic(_payload("loops"))


def test_create_topic_with_rejected_prerequisites_leaves_no_trace(authoring, repository):
    with pytest.raises(PrerequisiteBatchError) as excinfo:
        authoring.create_topic(_payload("arrays", prerequisiteIds=["vars", "ghost"]), topic_id="arrays")

    assert excinfo.value.rejected_ids == {"ghost"}
    assert "arrays" not in authoring.graph
    assert "arrays" not in repository.topics
    assert authoring.graph.dependents_of("vars") == ["loops"]


def test_update_merges_translations(authoring, repository):
    updated = authoring.update_topic("loops", {"name": {"uk": "Цикли"}, "type": "PRACTICE"})

    assert updated.name == {"en": "Loops", "uk": "Цикли"}
    assert updated.kind is TopicKind.PRACTICE
    assert repository.topics["loops"].name == {"en": "Loops", "uk": "Цикли"}
    assert authoring.graph.prerequisites_of("loops") == ["vars"]


def test_update_with_cycle_commits_nothing(authoring, repository):
    with pytest.raises(PrerequisiteBatchError) as excinfo:
        authoring.update_topic("vars", {"name": {"en": "Vars"}, "prerequisiteIds": ["loops"]})

    assert isinstance(excinfo.value.rejected["loops"], CycleError)
    assert repository.topics["vars"].name == {"en": "Variables"}
    assert authoring.graph.prerequisites_of("vars") == []


def test_update_rejects_project_kind_for_prerequisites(authoring):
    with pytest.raises(ValidationError) as excinfo:
        authoring.update_topic("vars", {"type": "PROJECT"})
    assert excinfo.value.ids == ("loops",)

    with pytest.raises(KeyError):
        authoring.update_topic("ghost", {"type": "THEORY"})


def test_set_translation_keeps_legacy_text(authoring, repository):
    authoring.graph.add_topic(
        Topic(id="legacy", slug="legacy", kind=TopicKind.THEORY, name="Змінні", keypoints="kp")
    )
    updated = authoring.set_translation("legacy", "name", "uk", "Змінні (нове)")

    assert updated.name == {"en": "Змінні", "uk": "Змінні (нове)"}
    with pytest.raises(ValueError):
        authoring.set_translation("legacy", "slug", "uk", "x")


def test_edge_helpers_and_delete(authoring, repository):
    authoring.create_topic(_payload("functions"), topic_id="funcs")
    authoring.add_prerequisite("funcs", "loops")
    assert repository.edges["funcs"] == [PrerequisiteEdge("funcs", "loops")]

    authoring.remove_prerequisite("funcs", "loops")
    authoring.remove_prerequisite("funcs", "loops")
    assert repository.edges["funcs"] == []

    authoring.add_prerequisite("funcs", "loops")
    assert authoring.delete_topic("loops") is True
    assert authoring.delete_topic("loops") is False
    assert authoring.graph.prerequisites_of("funcs") == []
    assert "loops" not in repository.topics
    assert repository.edges["funcs"] == []


def test_load_graph_rejects_stored_cycles(repository, authoring):
    repository.save_edges("vars", [PrerequisiteEdge("vars", "loops")])

    with pytest.raises(CycleError):
        load_graph(repository)
    graph = load_graph(repository, validate=False)
    assert graph.find_cycle() is not None


def test_load_graph_with_scope_loads_only_the_neighbourhood(authoring, repository):
    authoring.create_topic(_payload("functions", prerequisiteIds=["loops"]), topic_id="funcs")
    authoring.create_topic(_payload("arrays"), topic_id="arrays")

    graph = load_graph(repository, scope=["loops"])

    assert sorted(topic.id for topic in graph.topics()) == ["funcs", "loops", "vars"]
    assert graph.prerequisites_of("loops") == ["vars"]
    assert graph.dependents_of("loops") == ["funcs"]
    assert load_graph(repository, scope=["ghost"]).topics() == []
