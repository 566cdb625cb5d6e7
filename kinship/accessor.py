from __future__ import annotations

from typing import Iterable, Optional

from .errors import PersonNotFound
from .models import Person, Relationship, RelationshipQuery, RelationshipType
from .store import RecordStore


class GraphAccessor:
    """Leaf lookups over a record store.

    An unknown person id is always an error (``PersonNotFound``); a known
    person with no edges yields an empty set.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def person_by_id(self, person_id: str) -> Person:
        person = self.store.get_person(person_id)
        if person is None:
            raise PersonNotFound([person_id])
        return person

    def persons_by_ids(self, person_ids: Iterable[str]) -> dict[str, Person]:
        ids = list(dict.fromkeys(person_ids))
        found = self.store.get_persons(ids)
        missing = [pid for pid in ids if pid not in found]
        if missing:
            raise PersonNotFound(missing)
        return found

    def require(self, *person_ids: str) -> None:
        self.persons_by_ids(person_ids)

    def edges_touching(
        self,
        person_id: str,
        types: Optional[Iterable[RelationshipType]] = None,
    ) -> set[Relationship]:
        self.person_by_id(person_id)
        return set(self.store.edges_for_person(person_id, types))

    def parent_edges_of(self, person_id: str) -> list[Relationship]:
        """Edges naming *person_id* as the child."""
        return [
            r
            for r in self.store.edges_for_person(person_id, [RelationshipType.PARENT])
            if r.person2_id == person_id
        ]

    def child_edges_of(self, person_id: str) -> list[Relationship]:
        """Edges naming *person_id* as the parent."""
        return [
            r
            for r in self.store.edges_for_person(person_id, [RelationshipType.PARENT])
            if r.person1_id == person_id
        ]

    def neighbors(
        self,
        person_ids: list[str],
        types: Optional[Iterable[RelationshipType]] = None,
    ) -> dict[str, list[tuple[str, Relationship]]]:
        """Return person -> [(neighbor, edge)] for one BFS frontier, ignoring direction."""

        if not person_ids:
            return {}

        out: dict[str, list[tuple[str, Relationship]]] = {pid: [] for pid in person_ids}
        for rel in self.store.edges_for_persons(person_ids, types):
            if rel.person1_id in out:
                out[rel.person1_id].append((rel.person2_id, rel))
            if rel.person2_id in out and rel.person2_id != rel.person1_id:
                out[rel.person2_id].append((rel.person1_id, rel))
        return out

    def all_edges(self, types: Optional[Iterable[RelationshipType]] = None) -> list[Relationship]:
        return self.store.all_edges(types)

    def find_relationships(self, query: RelationshipQuery) -> list[Relationship]:
        return self.store.find_relationships(query)
