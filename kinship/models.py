"""Core records and result payloads for the relationship graph.

Persons and relationship edges are plain frozen dataclasses: the engine reads
them from a record store and never mutates them in place. Proposed edits
arrive as :class:`EdgeDraft` (pydantic) so type/qualifier strings are
normalized and checked before any rule runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from .errors import GraphInconsistency


class RelationshipType(str, Enum):
    PARENT = "parent"
    SPOUSE = "spouse"
    SIBLING = "sibling"


class Qualifier(str, Enum):
    BIOLOGICAL = "biological"
    ADOPTIVE = "adoptive"
    STEP = "step"
    FOSTER = "foster"
    HALF = "half"
    IN_LAW = "in-law"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Person:
    id: str
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    gender: Optional[Gender] = None
    display_name: Optional[str] = None

    def label(self) -> str:
        return self.display_name or self.id


@dataclass(frozen=True)
class Relationship:
    """A single recorded edge.

    For ``parent`` edges ``person1_id`` is the parent and ``person2_id`` the
    child. ``spouse`` and ``sibling`` edges are symmetric.
    """

    id: str
    person1_id: str
    person2_id: str
    relationship_type: RelationshipType
    relationship_qualifier: Optional[Qualifier] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow, compare=False)

    def other(self, person_id: str) -> str:
        """Return the endpoint opposite ``person_id``."""
        if person_id == self.person1_id:
            return self.person2_id
        if person_id == self.person2_id:
            return self.person1_id
        raise ValueError(f"person {person_id} is not an endpoint of relationship {self.id}")

    def touches(self, person_id: str) -> bool:
        return person_id in (self.person1_id, self.person2_id)

    def pair(self) -> frozenset[str]:
        return frozenset((self.person1_id, self.person2_id))


class EdgeDraft(BaseModel):
    """A proposed create/update coming from the service layer."""

    id: Optional[str] = None
    person1_id: str
    person2_id: str
    relationship_type: RelationshipType
    relationship_qualifier: Optional[Qualifier] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("relationship_type", mode="before")
    @classmethod
    def _lower_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("relationship_qualifier", mode="before")
    @classmethod
    def _lower_qualifier(cls, v: Any) -> Any:
        if isinstance(v, str):
            s = v.strip().lower()
            return s or None
        return v

    @classmethod
    def from_relationship(cls, rel: Relationship) -> "EdgeDraft":
        return cls(
            id=rel.id,
            person1_id=rel.person1_id,
            person2_id=rel.person2_id,
            relationship_type=rel.relationship_type,
            relationship_qualifier=rel.relationship_qualifier,
            start_date=rel.start_date,
            end_date=rel.end_date,
            notes=rel.notes,
        )

    def as_relationship(self, relationship_id: str | None = None) -> Relationship:
        """Materialize the draft as an edge (used for what-if graph checks)."""
        return Relationship(
            id=relationship_id or self.id or "__proposed__",
            person1_id=self.person1_id,
            person2_id=self.person2_id,
            relationship_type=self.relationship_type,
            relationship_qualifier=self.relationship_qualifier,
            start_date=self.start_date,
            end_date=self.end_date,
            notes=self.notes,
        )


# ---------------------------------------------------------------------------
# Typed query options
# ---------------------------------------------------------------------------


class RelationshipSortField(str, Enum):
    CREATED_AT = "created_at"
    RELATIONSHIP_TYPE = "relationship_type"
    RELATIONSHIP_QUALIFIER = "relationship_qualifier"
    START_DATE = "start_date"
    END_DATE = "end_date"


_MAX_PAGE_SIZE = 10_000


@dataclass(frozen=True)
class RelationshipQuery:
    relationship_type: Optional[RelationshipType] = None
    qualifier: Optional[Qualifier] = None
    start_date_from: Optional[date] = None
    start_date_to: Optional[date] = None
    end_date_from: Optional[date] = None
    end_date_to: Optional[date] = None
    # Edges with no end date, or ending after this day.
    active_on: Optional[date] = None
    sort_by: RelationshipSortField = RelationshipSortField.CREATED_AT
    descending: bool = False
    limit: int = 100
    offset: int = 0

    def __post_init__(self) -> None:
        if not 1 <= self.limit <= _MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {_MAX_PAGE_SIZE}")
        if self.offset < 0:
            raise ValueError("offset must be >= 0")

    def matches(self, rel: Relationship) -> bool:
        if self.relationship_type is not None and rel.relationship_type != self.relationship_type:
            return False
        if self.qualifier is not None and rel.relationship_qualifier != self.qualifier:
            return False
        if not _in_range(rel.start_date, self.start_date_from, self.start_date_to):
            return False
        if not _in_range(rel.end_date, self.end_date_from, self.end_date_to):
            return False
        if self.active_on is not None and rel.end_date is not None and rel.end_date <= self.active_on:
            return False
        return True


def _in_range(value: date | None, lo: date | None, hi: date | None) -> bool:
    if lo is None and hi is None:
        return True
    if value is None:
        return False
    if lo is not None and value < lo:
        return False
    if hi is not None and value > hi:
        return False
    return True


# ---------------------------------------------------------------------------
# Result payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpouseLink:
    person_id: str
    relationship: Relationship


@dataclass(frozen=True)
class FamilyMembers:
    person_id: str
    parents: frozenset[str] = frozenset()
    children: frozenset[str] = frozenset()
    siblings: frozenset[str] = frozenset()
    spouses: tuple[SpouseLink, ...] = ()
    grandparents: frozenset[str] = frozenset()
    grandchildren: frozenset[str] = frozenset()
    aunts_uncles: frozenset[str] = frozenset()
    nieces_nephews: frozenset[str] = frozenset()
    cousins: frozenset[str] = frozenset()
    issues: tuple[GraphInconsistency, ...] = ()

    def categories(self) -> dict[str, frozenset[str]]:
        return {
            "parents": self.parents,
            "children": self.children,
            "siblings": self.siblings,
            "spouses": frozenset(s.person_id for s in self.spouses),
            "grandparents": self.grandparents,
            "grandchildren": self.grandchildren,
            "aunts_uncles": self.aunts_uncles,
            "nieces_nephews": self.nieces_nephews,
            "cousins": self.cousins,
        }


@dataclass(frozen=True)
class Generation:
    depth: int
    person_ids: tuple[str, ...]


@dataclass(frozen=True)
class Lineage:
    person_id: str
    direction: str  # "ancestors" | "descendants"
    generations: tuple[Generation, ...] = ()
    issues: tuple[GraphInconsistency, ...] = ()

    def person_ids(self) -> set[str]:
        return {pid for g in self.generations for pid in g.person_ids}


@dataclass(frozen=True)
class PathStep:
    from_id: str
    to_id: str
    relationship: Relationship


@dataclass(frozen=True)
class RelationshipPath:
    from_id: str
    to_id: str
    steps: tuple[PathStep, ...] = ()

    @property
    def hops(self) -> int:
        return len(self.steps)

    def person_ids(self) -> list[str]:
        if not self.steps:
            return [self.from_id]
        return [self.from_id] + [s.to_id for s in self.steps]
