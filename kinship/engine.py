from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .accessor import GraphAccessor
from .config import EngineSettings
from .deriver import KinshipDeriver
from .errors import InvalidEdge, RelationshipNotFound
from .models import (
    EdgeDraft,
    FamilyMembers,
    Lineage,
    Relationship,
    RelationshipPath,
    RelationshipQuery,
    RelationshipType,
)
from .pathfinder import PathFinder
from .store import RecordStore
from .validation import ConsistencyValidator, Issue, Verdict

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    relationship: Relationship
    warnings: tuple[Issue, ...] = ()


class KinshipEngine:
    """Single entry point for the service layer.

    Reads go straight to the deriver and path finder. Writes are the only
    place where a verdict turns into a decision: hard errors raise
    :class:`InvalidEdge`, warnings ride along on the result.
    """

    def __init__(
        self,
        store: RecordStore,
        settings: EngineSettings | None = None,
        *,
        validator: ConsistencyValidator | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or EngineSettings()
        self.accessor = GraphAccessor(store)
        self.deriver = KinshipDeriver(self.accessor)
        self.paths = PathFinder(self.accessor)
        self.validator = validator or ConsistencyValidator(self.settings)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_family_members(self, person_id: str) -> FamilyMembers:
        return self.deriver.family_members(person_id)

    def get_ancestors(self, person_id: str, max_generations: Optional[int] = None) -> Lineage:
        return self.deriver.ancestors(person_id, max_generations)

    def get_descendants(self, person_id: str, max_generations: Optional[int] = None) -> Lineage:
        return self.deriver.descendants(person_id, max_generations)

    def find_relationship_path(
        self,
        from_id: str,
        to_id: str,
        max_hops: Optional[int] = None,
    ) -> Optional[RelationshipPath]:
        hops = max_hops if max_hops is not None else self.settings.default_max_hops
        return self.paths.shortest_path(from_id, to_id, max_hops=hops)

    def list_relationships(self, query: RelationshipQuery | None = None) -> list[Relationship]:
        q = query or RelationshipQuery()
        rows = self.accessor.find_relationships(q)
        log.debug("listed %d relationships (sort=%s)", len(rows), q.sort_by.value)
        return rows

    # ------------------------------------------------------------------
    # Validation / writes
    # ------------------------------------------------------------------

    def validate_proposed_edge(self, draft: EdgeDraft) -> Verdict:
        """Run every rule against the current graph without writing."""
        return self._validate(draft)

    def _validate(self, draft: EdgeDraft) -> Verdict:
        persons = self.accessor.persons_by_ids([draft.person1_id, draft.person2_id])
        if draft.id is not None and self.store.get_edge(draft.id) is None:
            raise RelationshipNotFound(draft.id)

        # Every parent edge (cycles can close anywhere) plus whatever touches the endpoints.
        existing: dict[str, Relationship] = {
            r.id: r for r in self.accessor.all_edges([RelationshipType.PARENT])
        }
        for r in self.store.edges_for_persons([draft.person1_id, draft.person2_id]):
            existing.setdefault(r.id, r)

        return self.validator.validate_edge(
            draft,
            persons[draft.person1_id],
            persons[draft.person2_id],
            existing.values(),
        )

    def commit_edge(self, draft: EdgeDraft) -> CommitResult:
        """Validate and write one edge atomically.

        The store transaction spans the re-read, the validation and the
        write, so a concurrent commit cannot slip a conflicting edge in
        between.
        """

        with self.store.transaction():
            verdict = self._validate(draft)
            if not verdict.valid:
                log.info(
                    "rejected %s %s->%s: %s",
                    draft.relationship_type.value,
                    draft.person1_id,
                    draft.person2_id,
                    ", ".join(i.rule.value for i in verdict.errors),
                )
                raise InvalidEdge(verdict)

            if draft.id is not None:
                rel = self.store.update_edge(draft.id, draft)
                log.debug("updated relationship %s", rel.id)
            else:
                rel = self.store.create_edge(draft)
                log.debug("created relationship %s", rel.id)

        return CommitResult(relationship=rel, warnings=verdict.warnings)

    def delete_edge(self, relationship_id: str) -> None:
        with self.store.transaction():
            self.store.delete_edge(relationship_id)
        log.debug("deleted relationship %s", relationship_id)

    def audit_graph(self) -> Verdict:
        edges = self.accessor.all_edges()
        ids = {pid for r in edges for pid in (r.person1_id, r.person2_id)}
        persons = self.store.get_persons(ids)
        verdict = self.validator.validate_edge_set(edges, persons)
        log.debug(
            "audit of %d relationships: %d errors, %d warnings",
            len(edges),
            len(verdict.errors),
            len(verdict.warnings),
        )
        return verdict
