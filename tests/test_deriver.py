from __future__ import annotations

from datetime import date

import pytest

from kinship.accessor import GraphAccessor
from kinship.deriver import KinshipDeriver
from kinship.errors import PersonNotFound
from kinship.models import Person, Relationship, RelationshipType
from kinship.store import InMemoryStore


def _rel(rid: str, p1: str, p2: str, rtype: RelationshipType = RelationshipType.PARENT, **kw) -> Relationship:
    return Relationship(id=rid, person1_id=p1, person2_id=p2, relationship_type=rtype, **kw)


def _deriver(person_ids: list[str], rels: list[Relationship]) -> KinshipDeriver:
    store = InMemoryStore([Person(pid) for pid in person_ids], rels)
    return KinshipDeriver(GraphAccessor(store))


class TestFamilyMembers:
    def test_all_categories_for_middle_generation(self, family_store) -> None:
        fam = KinshipDeriver(GraphAccessor(family_store)).family_members("me")

        assert fam.parents == {"dad", "mom"}
        assert fam.children == {"kid"}
        assert fam.siblings == {"sis"}
        assert [s.person_id for s in fam.spouses] == ["partner"]
        assert fam.grandparents == {"gf1", "gm1", "gf2", "gm2"}
        assert fam.grandchildren == set()
        assert fam.aunts_uncles == {"uncle", "aunt"}
        assert fam.nieces_nephews == {"niece"}
        assert fam.cousins == {"cousin"}
        assert fam.issues == ()

    def test_in_laws_are_not_derived_as_blood_kin(self, family_store) -> None:
        fam = KinshipDeriver(GraphAccessor(family_store)).family_members("me")
        assert "uwife" not in fam.aunts_uncles

    def test_subject_never_in_any_category(self, family_store) -> None:
        d = KinshipDeriver(GraphAccessor(family_store))
        for pid in ("me", "dad", "gf1", "kid", "cousin"):
            for name, members in d.family_members(pid).categories().items():
                assert pid not in members, name

    def test_is_idempotent(self, family_store) -> None:
        d = KinshipDeriver(GraphAccessor(family_store))
        assert d.family_members("me") == d.family_members("me")

    def test_matches_individual_derivations(self, family_store) -> None:
        d = KinshipDeriver(GraphAccessor(family_store))
        fam = d.family_members("sis")
        assert fam.grandparents == d.grandparents("sis")
        assert fam.aunts_uncles == d.aunts_uncles("sis")
        assert fam.cousins == d.cousins("sis")
        assert fam.nieces_nephews == d.nieces_nephews("sis")
        assert fam.grandchildren == d.grandchildren("sis")

    def test_grandparents_for_oldest_generation(self, family_store) -> None:
        d = KinshipDeriver(GraphAccessor(family_store))
        assert d.grandchildren("gf1") == {"me", "sis", "cousin"}
        assert d.grandparents("gf1") == set()


def test_only_child_of_two_parents_has_no_siblings() -> None:
    d = _deriver(["p1", "p2", "c"], [_rel("a", "p1", "c"), _rel("b", "p2", "c")])
    assert d.siblings("c") == set()
    assert d.parents("c") == {"p1", "p2"}


def test_half_siblings_share_one_parent() -> None:
    d = _deriver(
        ["p", "m1", "m2", "x", "y"],
        [
            _rel("1", "p", "x"),
            _rel("2", "m1", "x"),
            _rel("3", "p", "y"),
            _rel("4", "m2", "y"),
        ],
    )
    assert d.siblings("x") == {"y"}
    assert d.siblings("y") == {"x"}


def test_sibling_edge_alone_does_not_make_siblings() -> None:
    d = _deriver(
        ["f", "m", "p", "x"],
        [_rel("1", "f", "p"), _rel("2", "m", "p"), _rel("s", "p", "x", RelationshipType.SIBLING)],
    )
    assert d.siblings("p") == set()
    assert d.siblings("x") == set()
    assert d.family_members("p").siblings == set()


def test_grandparents_four_distinct() -> None:
    d = _deriver(
        ["c", "f", "m", "ff", "fm", "mf", "mm"],
        [
            _rel("1", "f", "c"),
            _rel("2", "m", "c"),
            _rel("3", "ff", "f"),
            _rel("4", "fm", "f"),
            _rel("5", "mf", "m"),
            _rel("6", "mm", "m"),
        ],
    )
    assert d.grandparents("c") == {"ff", "fm", "mf", "mm"}


def test_grandparents_deduplicated_when_parents_share_a_parent() -> None:
    d = _deriver(
        ["c", "f", "m", "g", "gx", "gy"],
        [
            _rel("1", "f", "c"),
            _rel("2", "m", "c"),
            _rel("3", "g", "f"),
            _rel("4", "gx", "f"),
            _rel("5", "g", "m"),
            _rel("6", "gy", "m"),
        ],
    )
    assert d.grandparents("c") == {"g", "gx", "gy"}


def test_spouses_ordered_by_marriage_date_undated_last() -> None:
    d = _deriver(
        ["p", "s1", "s2", "s3"],
        [
            _rel("a", "p", "s3", RelationshipType.SPOUSE),
            _rel("b", "s2", "p", RelationshipType.SPOUSE, start_date=date(1990, 1, 1)),
            _rel("c", "p", "s1", RelationshipType.SPOUSE, start_date=date(1980, 1, 1)),
        ],
    )
    assert [s.person_id for s in d.spouses("p")] == ["s1", "s2", "s3"]


def test_unknown_person_raises_not_found() -> None:
    d = _deriver(["a"], [])
    with pytest.raises(PersonNotFound) as exc:
        d.family_members("ghost")
    assert exc.value.person_ids == ("ghost",)


def test_isolated_person_has_empty_categories() -> None:
    d = _deriver(["a"], [])
    fam = d.family_members("a")
    assert all(not members for members in fam.categories().values())


class TestLineage:
    def test_ancestors_by_generation(self, family_store) -> None:
        lin = KinshipDeriver(GraphAccessor(family_store)).ancestors("me")
        assert [g.depth for g in lin.generations] == [1, 2]
        assert set(lin.generations[0].person_ids) == {"dad", "mom"}
        assert set(lin.generations[1].person_ids) == {"gf1", "gm1", "gf2", "gm2"}
        assert lin.issues == ()

    def test_descendants_by_generation(self, family_store) -> None:
        lin = KinshipDeriver(GraphAccessor(family_store)).descendants("gf1")
        assert set(lin.generations[0].person_ids) == {"dad", "uncle"}
        assert set(lin.generations[1].person_ids) == {"me", "sis", "cousin"}
        assert set(lin.generations[2].person_ids) == {"kid", "niece"}

    def test_max_generations_limits_depth(self, family_store) -> None:
        lin = KinshipDeriver(GraphAccessor(family_store)).ancestors("me", max_generations=1)
        assert lin.person_ids() == {"dad", "mom"}

    def test_max_generations_must_be_positive(self, family_store) -> None:
        with pytest.raises(ValueError):
            KinshipDeriver(GraphAccessor(family_store)).descendants("me", max_generations=0)

    def test_person_appears_once_across_generations(self) -> None:
        # g is both grandparent and great-grandparent of c.
        d = _deriver(
            ["c", "p", "q", "g"],
            [_rel("1", "p", "c"), _rel("2", "q", "p"), _rel("3", "g", "q"), _rel("4", "g", "p")],
        )
        lin = d.ancestors("c")
        flat = [pid for g in lin.generations for pid in g.person_ids]
        assert sorted(flat) == ["g", "p", "q"]
        assert set(lin.generations[1].person_ids) == {"q", "g"}

    def test_cyclic_legacy_data_terminates_and_is_reported(self) -> None:
        d = _deriver(
            ["a", "b", "c"],
            [_rel("1", "a", "b"), _rel("2", "b", "c"), _rel("3", "c", "a")],
        )
        lin = d.ancestors("a")
        assert lin.person_ids() == {"b", "c"}
        assert lin.issues
        assert lin.issues[0].kind == "cycle"
        assert set(lin.issues[0].person_ids) == {"a", "b", "c"}

    def test_cycle_flagged_on_family_members(self) -> None:
        d = _deriver(["a", "b"], [_rel("1", "a", "b"), _rel("2", "b", "a")])
        fam = d.family_members("a")
        assert fam.issues and fam.issues[0].kind == "cycle"
        assert "a" not in fam.grandparents
