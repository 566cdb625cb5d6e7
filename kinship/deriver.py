"""Kinship derivation over recorded parent/spouse/sibling edges.

Every derived set is keyed by person id and excludes the subject. Half- and
full- kinship are collapsed: two persons sharing one parent are
siblings, and the same holds through aunts/uncles and cousins. The
``relationship_qualifier`` is informational only here.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from .accessor import GraphAccessor
from .errors import GraphInconsistency
from .graph import find_cycles, format_cycle, parent_adjacency
from .models import (
    FamilyMembers,
    Generation,
    Lineage,
    Relationship,
    RelationshipType,
    SpouseLink,
)

log = logging.getLogger(__name__)

_PARENT = [RelationshipType.PARENT]


def _union(sets: Iterable[Iterable[str]], *, exclude: Optional[str] = None) -> frozenset[str]:
    out: set[str] = set()
    for s in sets:
        out.update(s)
    if exclude is not None:
        out.discard(exclude)
    return frozenset(out)


class KinshipDeriver:
    def __init__(self, accessor: GraphAccessor) -> None:
        self.accessor = accessor

    # ------------------------------------------------------------------
    # Primitives (no existence check; public wrappers below add it)
    # ------------------------------------------------------------------

    def _parents(self, person_id: str) -> frozenset[str]:
        return frozenset(
            r.person1_id for r in self.accessor.parent_edges_of(person_id) if r.person1_id != person_id
        )

    def _children(self, person_id: str) -> frozenset[str]:
        return frozenset(
            r.person2_id for r in self.accessor.child_edges_of(person_id) if r.person2_id != person_id
        )

    def _siblings(self, person_id: str, parents: Optional[frozenset[str]] = None) -> frozenset[str]:
        # Recorded sibling edges do not count; siblings are derived from shared parents only.
        ps = self._parents(person_id) if parents is None else parents
        return _union((self._children(q) for q in ps), exclude=person_id)

    def _spouses(self, person_id: str) -> tuple[SpouseLink, ...]:
        links = [
            SpouseLink(person_id=r.other(person_id), relationship=r)
            for r in self.accessor.store.edges_for_person(person_id, [RelationshipType.SPOUSE])
            if r.person1_id != r.person2_id
        ]
        # Earliest marriage first; undated unions last.
        links.sort(
            key=lambda s: (
                s.relationship.start_date is None,
                s.relationship.start_date,
                s.relationship.created_at,
                s.relationship.id,
            )
        )
        return tuple(links)

    # ------------------------------------------------------------------
    # Public primitives
    # ------------------------------------------------------------------

    def parents(self, person_id: str) -> frozenset[str]:
        self.accessor.person_by_id(person_id)
        return self._parents(person_id)

    def children(self, person_id: str) -> frozenset[str]:
        self.accessor.person_by_id(person_id)
        return self._children(person_id)

    def siblings(self, person_id: str) -> frozenset[str]:
        self.accessor.person_by_id(person_id)
        return self._siblings(person_id)

    def spouses(self, person_id: str) -> tuple[SpouseLink, ...]:
        self.accessor.person_by_id(person_id)
        return self._spouses(person_id)

    # ------------------------------------------------------------------
    # Second-order relatives
    # ------------------------------------------------------------------

    def grandparents(self, person_id: str) -> frozenset[str]:
        parents = self.parents(person_id)
        return _union((self._parents(q) for q in parents), exclude=person_id)

    def grandchildren(self, person_id: str) -> frozenset[str]:
        children = self.children(person_id)
        return _union((self._children(q) for q in children), exclude=person_id)

    def aunts_uncles(self, person_id: str) -> frozenset[str]:
        parents = self.parents(person_id)
        return self._aunts_uncles(person_id, parents)

    def nieces_nephews(self, person_id: str) -> frozenset[str]:
        siblings = self.siblings(person_id)
        return _union((self._children(q) for q in siblings), exclude=person_id)

    def cousins(self, person_id: str) -> frozenset[str]:
        parents = self.parents(person_id)
        return self._cousins(person_id, self._aunts_uncles(person_id, parents))

    def _aunts_uncles(self, person_id: str, parents: frozenset[str]) -> frozenset[str]:
        return _union((self._siblings(q) for q in parents), exclude=person_id)

    def _cousins(self, person_id: str, aunts_uncles: frozenset[str]) -> frozenset[str]:
        return _union((self._children(q) for q in aunts_uncles), exclude=person_id)

    def family_members(self, person_id: str) -> FamilyMembers:
        """All nine categories, sharing parents/children/siblings between them."""

        self.accessor.person_by_id(person_id)

        parents = self._parents(person_id)
        children = self._children(person_id)
        siblings = self._siblings(person_id, parents)
        spouses = self._spouses(person_id)

        grandparents_raw = _union((self._parents(q) for q in parents))
        grandchildren_raw = _union((self._children(q) for q in children))
        aunts_uncles = self._aunts_uncles(person_id, parents)

        issues: list[GraphInconsistency] = []
        if person_id in grandparents_raw or person_id in grandchildren_raw or parents & children:
            issues.append(
                GraphInconsistency(
                    kind="cycle",
                    person_ids=(person_id,),
                    message=f"person {person_id} appears among their own ancestors or descendants",
                )
            )
            log.warning("parent cycle through %s detected during family derivation", person_id)

        result = FamilyMembers(
            person_id=person_id,
            parents=parents,
            children=children,
            siblings=siblings,
            spouses=spouses,
            grandparents=grandparents_raw - {person_id},
            grandchildren=grandchildren_raw - {person_id},
            aunts_uncles=aunts_uncles,
            nieces_nephews=_union((self._children(q) for q in siblings), exclude=person_id),
            cousins=self._cousins(person_id, aunts_uncles),
            issues=tuple(issues),
        )
        log.debug(
            "family members for %s: %s",
            person_id,
            {k: len(v) for k, v in result.categories().items()},
        )
        return result

    # ------------------------------------------------------------------
    # Ancestors / descendants
    # ------------------------------------------------------------------

    def ancestors(self, person_id: str, max_generations: Optional[int] = None) -> Lineage:
        return self._lineage(person_id, max_generations, direction="ancestors", upward=True)

    def descendants(self, person_id: str, max_generations: Optional[int] = None) -> Lineage:
        return self._lineage(person_id, max_generations, direction="descendants", upward=False)

    def _lineage(
        self,
        person_id: str,
        max_generations: Optional[int],
        *,
        direction: str,
        upward: bool,
    ) -> Lineage:
        """Worklist BFS over parent edges with a visited set keyed by person id.

        Terminates on cyclic legacy data: an already-visited person is never
        expanded twice. Any parent cycle among the traversed edges is reported
        as a ``GraphInconsistency`` on the result.
        """

        if max_generations is not None and max_generations < 1:
            raise ValueError("max_generations must be >= 1")

        self.accessor.person_by_id(person_id)

        step: Callable[[list[str], list[Relationship]], dict[str, list[str]]] = (
            self._parents_of_frontier if upward else self._children_of_frontier
        )

        seen: set[str] = {person_id}
        frontier = [person_id]
        generations: list[Generation] = []
        traversed: list[Relationship] = []
        depth = 0

        while frontier:
            if max_generations is not None and depth >= max_generations:
                break
            depth += 1
            next_map = step(frontier, traversed)
            level: list[str] = []
            for node in frontier:
                for nb in next_map.get(node, []):
                    if nb in seen:
                        continue
                    seen.add(nb)
                    level.append(nb)
            if not level:
                break
            generations.append(Generation(depth=depth, person_ids=tuple(level)))
            frontier = level

        issues = tuple(
            GraphInconsistency(
                kind="cycle",
                person_ids=tuple(dict.fromkeys(cycle)),
                message=f"parent cycle: {format_cycle(cycle)}",
            )
            for cycle in find_cycles(parent_adjacency(traversed))
        )
        for issue in issues:
            log.warning("skipped cyclic branch while walking %s of %s: %s", direction, person_id, issue.message)

        log.debug("%s of %s: %d generations, %d persons", direction, person_id, len(generations), len(seen) - 1)
        return Lineage(
            person_id=person_id,
            direction=direction,
            generations=tuple(generations),
            issues=issues,
        )

    def _parents_of_frontier(self, frontier: list[str], traversed: list[Relationship]) -> dict[str, list[str]]:
        wanted = set(frontier)
        out: dict[str, list[str]] = {pid: [] for pid in frontier}
        for rel in self.accessor.store.edges_for_persons(frontier, _PARENT):
            if rel.person2_id in wanted:
                out[rel.person2_id].append(rel.person1_id)
                traversed.append(rel)
        return out

    def _children_of_frontier(self, frontier: list[str], traversed: list[Relationship]) -> dict[str, list[str]]:
        wanted = set(frontier)
        out: dict[str, list[str]] = {pid: [] for pid in frontier}
        for rel in self.accessor.store.edges_for_persons(frontier, _PARENT):
            if rel.person1_id in wanted:
                out[rel.person1_id].append(rel.person2_id)
                traversed.append(rel)
        return out
