from __future__ import annotations

from datetime import date

import pytest

from kinship.config import EngineSettings
from kinship.engine import KinshipEngine
from kinship.errors import InvalidEdge, PersonNotFound, RelationshipNotFound
from kinship.models import (
    EdgeDraft,
    Person,
    Relationship,
    RelationshipQuery,
    RelationshipSortField,
    RelationshipType,
)
from kinship.store import InMemoryStore
from kinship.validation import Rule


def test_reads_delegate_to_deriver(engine: KinshipEngine) -> None:
    assert engine.get_family_members("me").cousins == {"cousin"}
    assert engine.get_ancestors("kid", max_generations=1).person_ids() == {"me"}
    assert engine.get_descendants("mom").person_ids() == {"me", "sis", "kid", "niece"}


def test_path_uses_configured_default_hops(family_store: InMemoryStore) -> None:
    engine = KinshipEngine(family_store, EngineSettings(default_max_hops=2))
    assert engine.find_relationship_path("me", "cousin") is None
    assert engine.find_relationship_path("me", "cousin", max_hops=6).hops == 4


class TestCommit:
    def test_create_returns_relationship_and_warnings(self, engine: KinshipEngine) -> None:
        result = engine.commit_edge(
            EdgeDraft(person1_id="mom", person2_id="kid", relationship_type="parent")
        )
        # A 56 year old mother is suspicious, but only a warning.
        assert [w.rule for w in result.warnings] == [Rule.PARENT_AGE_GAP]
        assert engine.store.get_edge(result.relationship.id) == result.relationship

    def test_rejected_commit_raises_and_writes_nothing(self, engine: KinshipEngine) -> None:
        before = engine.store.all_edges()
        with pytest.raises(InvalidEdge) as exc:
            engine.commit_edge(EdgeDraft(person1_id="kid", person2_id="gf1", relationship_type="parent"))
        rules = {i.rule for i in exc.value.verdict.errors}
        assert Rule.CYCLE in rules
        assert Rule.PARENT_CHRONOLOGY in rules
        assert "cycle" in str(exc.value)
        assert engine.store.all_edges() == before

    def test_spouse_biological_rejected(self, engine: KinshipEngine) -> None:
        with pytest.raises(InvalidEdge):
            engine.commit_edge(
                EdgeDraft(
                    person1_id="sis",
                    person2_id="cousin",
                    relationship_type="spouse",
                    relationship_qualifier="biological",
                )
            )

    def test_update_in_place(self, engine: KinshipEngine) -> None:
        original = engine.store.get_edge("s5")
        draft = EdgeDraft.from_relationship(original).model_copy(
            update={"end_date": date(2001, 1, 1), "notes": "divorced"}
        )
        result = engine.commit_edge(draft)
        assert result.relationship.id == "s5"
        assert result.relationship.end_date == date(2001, 1, 1)
        assert result.relationship.created_at == original.created_at
        assert len(engine.store.all_edges()) == 21

    def test_update_unknown_relationship(self, engine: KinshipEngine) -> None:
        with pytest.raises(RelationshipNotFound):
            engine.commit_edge(
                EdgeDraft(id="nope", person1_id="me", person2_id="sis", relationship_type="sibling")
            )

    def test_unknown_person_is_not_found(self, engine: KinshipEngine) -> None:
        with pytest.raises(PersonNotFound) as exc:
            engine.validate_proposed_edge(
                EdgeDraft(person1_id="me", person2_id="ghost", relationship_type="spouse")
            )
        assert exc.value.person_ids == ("ghost",)

    def test_validate_does_not_write(self, engine: KinshipEngine) -> None:
        before = len(engine.store.all_edges())
        verdict = engine.validate_proposed_edge(
            EdgeDraft(person1_id="me", person2_id="sis", relationship_type="sibling")
        )
        assert verdict.valid
        assert len(engine.store.all_edges()) == before

    def test_duplicate_commit_rejected(self, engine: KinshipEngine) -> None:
        with pytest.raises(InvalidEdge) as exc:
            engine.commit_edge(EdgeDraft(person1_id="partner", person2_id="me", relationship_type="spouse"))
        assert [i.rule for i in exc.value.verdict.errors] == [Rule.DUPLICATE_EDGE]


def test_delete_edge(engine: KinshipEngine) -> None:
    engine.delete_edge("r15")
    assert engine.get_family_members("me").children == set()
    with pytest.raises(RelationshipNotFound):
        engine.delete_edge("r15")


def test_in_memory_transaction_rolls_back_on_error() -> None:
    store = InMemoryStore([Person("a"), Person("b")])
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.create_edge(EdgeDraft(person1_id="a", person2_id="b", relationship_type="spouse"))
            raise RuntimeError("boom")
    assert store.all_edges() == []


def test_audit_clean_graph(engine: KinshipEngine) -> None:
    verdict = engine.audit_graph()
    assert verdict.valid
    assert verdict.warnings == ()


def test_audit_finds_latent_cycle() -> None:
    store = InMemoryStore(
        [Person("a"), Person("b")],
        [
            Relationship("1", "a", "b", RelationshipType.PARENT),
            Relationship("2", "b", "a", RelationshipType.PARENT),
        ],
    )
    verdict = KinshipEngine(store).audit_graph()
    assert not verdict.valid
    assert {i.rule for i in verdict.errors} == {Rule.CYCLE}


def test_list_relationships(engine: KinshipEngine) -> None:
    rows = engine.list_relationships(
        RelationshipQuery(
            relationship_type=RelationshipType.SPOUSE,
            sort_by=RelationshipSortField.START_DATE,
            descending=True,
            limit=2,
        )
    )
    assert [r.id for r in rows] == ["s5", "s4"]

    rows = engine.list_relationships(
        RelationshipQuery(relationship_type=RelationshipType.SPOUSE, start_date_to=date(1930, 1, 1))
    )
    assert {r.id for r in rows} == {"s1", "s2"}


def test_query_rejects_bad_paging() -> None:
    with pytest.raises(ValueError):
        RelationshipQuery(limit=0)
    with pytest.raises(ValueError):
        RelationshipQuery(offset=-1)
