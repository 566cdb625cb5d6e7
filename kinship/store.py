"""Record store collaborators.

The engine only needs point lookups, edge lookups by person id, and atomic
single-edge writes inside a caller-held transaction. Two implementations ship:

- ``InMemoryStore``: dict-backed, used by tests and by callers that already
  materialized a tree in memory.
- ``PostgresStore``: psycopg-backed, using the schema in ``kinship.db``.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Optional, Protocol

import psycopg

from .errors import RelationshipNotFound
from .models import (
    EdgeDraft,
    Gender,
    Person,
    Qualifier,
    Relationship,
    RelationshipQuery,
    RelationshipSortField,
    RelationshipType,
)

log = logging.getLogger(__name__)


class RecordStore(Protocol):
    def get_person(self, person_id: str) -> Optional[Person]: ...

    def get_persons(self, person_ids: Iterable[str]) -> dict[str, Person]: ...

    def edges_for_person(
        self, person_id: str, types: Optional[Iterable[RelationshipType]] = None
    ) -> list[Relationship]: ...

    def edges_for_persons(
        self, person_ids: Iterable[str], types: Optional[Iterable[RelationshipType]] = None
    ) -> list[Relationship]: ...

    def all_edges(self, types: Optional[Iterable[RelationshipType]] = None) -> list[Relationship]: ...

    def get_edge(self, relationship_id: str) -> Optional[Relationship]: ...

    def find_relationships(self, query: RelationshipQuery) -> list[Relationship]: ...

    def create_edge(self, draft: EdgeDraft) -> Relationship: ...

    def update_edge(self, relationship_id: str, draft: EdgeDraft) -> Relationship: ...

    def delete_edge(self, relationship_id: str) -> None: ...

    def transaction(self) -> Any: ...


def _new_id() -> str:
    return str(uuid.uuid4())


def _type_set(types: Optional[Iterable[RelationshipType]]) -> Optional[frozenset[RelationshipType]]:
    if types is None:
        return None
    return frozenset(RelationshipType(t) for t in types)


def _sorted(rows: list[Relationship], field: RelationshipSortField, descending: bool) -> list[Relationship]:
    """Order by *field* with NULLs last in either direction, ties by creation order."""

    def value(rel: Relationship) -> Any:
        v = getattr(rel, field.value)
        if isinstance(v, (RelationshipType, Qualifier)):
            return v.value
        return v

    stable = sorted(rows, key=lambda r: (r.created_at, r.id))
    present = [r for r in stable if value(r) is not None]
    missing = [r for r in stable if value(r) is None]
    present.sort(key=value, reverse=descending)
    return present + missing


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemoryStore:
    def __init__(
        self,
        persons: Iterable[Person] = (),
        relationships: Iterable[Relationship] = (),
    ) -> None:
        self._persons: dict[str, Person] = {p.id: p for p in persons}
        self._edges: dict[str, Relationship] = {r.id: r for r in relationships}
        self._lock = threading.RLock()

    # -- persons (CRUD is owned by the caller; these helpers seed data) ------

    def add_person(self, person: Person) -> Person:
        with self._lock:
            self._persons[person.id] = person
        return person

    def get_person(self, person_id: str) -> Optional[Person]:
        with self._lock:
            return self._persons.get(person_id)

    def get_persons(self, person_ids: Iterable[str]) -> dict[str, Person]:
        with self._lock:
            return {pid: self._persons[pid] for pid in person_ids if pid in self._persons}

    # -- edges ---------------------------------------------------------------

    def edges_for_person(
        self, person_id: str, types: Optional[Iterable[RelationshipType]] = None
    ) -> list[Relationship]:
        return self.edges_for_persons([person_id], types)

    def edges_for_persons(
        self, person_ids: Iterable[str], types: Optional[Iterable[RelationshipType]] = None
    ) -> list[Relationship]:
        ids = set(person_ids)
        wanted = _type_set(types)
        with self._lock:
            return [
                r
                for r in self._edges.values()
                if (r.person1_id in ids or r.person2_id in ids)
                and (wanted is None or r.relationship_type in wanted)
            ]

    def all_edges(self, types: Optional[Iterable[RelationshipType]] = None) -> list[Relationship]:
        wanted = _type_set(types)
        with self._lock:
            return [r for r in self._edges.values() if wanted is None or r.relationship_type in wanted]

    def get_edge(self, relationship_id: str) -> Optional[Relationship]:
        with self._lock:
            return self._edges.get(relationship_id)

    def find_relationships(self, query: RelationshipQuery) -> list[Relationship]:
        with self._lock:
            rows = [r for r in self._edges.values() if query.matches(r)]
        rows = _sorted(rows, query.sort_by, query.descending)
        return rows[query.offset : query.offset + query.limit]

    def create_edge(self, draft: EdgeDraft) -> Relationship:
        rel = draft.as_relationship(relationship_id=draft.id or _new_id())
        with self._lock:
            self._edges[rel.id] = rel
        return rel

    def update_edge(self, relationship_id: str, draft: EdgeDraft) -> Relationship:
        with self._lock:
            current = self._edges.get(relationship_id)
            if current is None:
                raise RelationshipNotFound(relationship_id)
            rel = replace(draft.as_relationship(relationship_id=relationship_id), created_at=current.created_at)
            self._edges[relationship_id] = rel
        return rel

    def delete_edge(self, relationship_id: str) -> None:
        with self._lock:
            if self._edges.pop(relationship_id, None) is None:
                raise RelationshipNotFound(relationship_id)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStore"]:
        """Serialize a read-validate-write sequence; roll back on error."""
        with self._lock:
            snapshot = copy.copy(self._edges)
            try:
                yield self
            except BaseException:
                self._edges = snapshot
                raise


# ---------------------------------------------------------------------------
# PostgreSQL store
# ---------------------------------------------------------------------------

# Arbitrary constant key; all relationship writers serialize on it.
_RELATIONSHIP_WRITE_LOCK = 7_311_042

_EDGE_COLUMNS = (
    "id, person1_id, person2_id, relationship_type, relationship_qualifier, "
    "start_date, end_date, notes, created_at"
)

_SORT_COLUMNS: dict[RelationshipSortField, str] = {
    RelationshipSortField.CREATED_AT: "created_at",
    RelationshipSortField.RELATIONSHIP_TYPE: "relationship_type",
    RelationshipSortField.RELATIONSHIP_QUALIFIER: "relationship_qualifier",
    RelationshipSortField.START_DATE: "start_date",
    RelationshipSortField.END_DATE: "end_date",
}


def _row_to_person(r: tuple[Any, ...]) -> Person:
    pid, display_name, gender, birth_date, death_date = r
    return Person(
        id=str(pid),
        display_name=display_name,
        gender=Gender(gender) if gender else None,
        birth_date=birth_date,
        death_date=death_date,
    )


def _row_to_relationship(r: tuple[Any, ...]) -> Relationship:
    (
        rid,
        p1,
        p2,
        rtype,
        qualifier,
        start_date,
        end_date,
        notes,
        created_at,
    ) = r
    return Relationship(
        id=str(rid),
        person1_id=str(p1),
        person2_id=str(p2),
        relationship_type=RelationshipType(rtype),
        relationship_qualifier=Qualifier(qualifier) if qualifier else None,
        start_date=start_date,
        end_date=end_date,
        notes=notes,
        created_at=created_at or datetime.now(timezone.utc),
    )


def _type_values(types: Optional[Iterable[RelationshipType]]) -> Optional[list[str]]:
    wanted = _type_set(types)
    if wanted is None:
        return None
    return sorted(t.value for t in wanted)


class PostgresStore:
    """Record store over an open psycopg connection.

    The connection should be in autocommit mode (``kinship.db.db_conn``
    default) so :meth:`transaction` opens a real transaction.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def get_person(self, person_id: str) -> Optional[Person]:
        row = self._conn.execute(
            """
            SELECT id, display_name, gender, birth_date, death_date
            FROM person
            WHERE id = %s
            """.strip(),
            (person_id,),
        ).fetchone()
        return _row_to_person(tuple(row)) if row else None

    def get_persons(self, person_ids: Iterable[str]) -> dict[str, Person]:
        ids = list(dict.fromkeys(person_ids))
        if not ids:
            return {}
        rows = self._conn.execute(
            """
            SELECT id, display_name, gender, birth_date, death_date
            FROM person
            WHERE id = ANY(%s)
            """.strip(),
            (ids,),
        ).fetchall()
        out: dict[str, Person] = {}
        for r in rows:
            p = _row_to_person(tuple(r))
            out[p.id] = p
        return out

    def edges_for_person(
        self, person_id: str, types: Optional[Iterable[RelationshipType]] = None
    ) -> list[Relationship]:
        return self.edges_for_persons([person_id], types)

    def edges_for_persons(
        self, person_ids: Iterable[str], types: Optional[Iterable[RelationshipType]] = None
    ) -> list[Relationship]:
        ids = list(dict.fromkeys(person_ids))
        if not ids:
            return []
        type_values = _type_values(types)
        if type_values is None:
            rows = self._conn.execute(
                f"""
                SELECT {_EDGE_COLUMNS}
                FROM relationship
                WHERE person1_id = ANY(%s) OR person2_id = ANY(%s)
                ORDER BY created_at, id
                """.strip(),
                (ids, ids),
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"""
                SELECT {_EDGE_COLUMNS}
                FROM relationship
                WHERE (person1_id = ANY(%s) OR person2_id = ANY(%s))
                  AND relationship_type = ANY(%s)
                ORDER BY created_at, id
                """.strip(),
                (ids, ids, type_values),
            ).fetchall()
        return [_row_to_relationship(tuple(r)) for r in rows]

    def all_edges(self, types: Optional[Iterable[RelationshipType]] = None) -> list[Relationship]:
        type_values = _type_values(types)
        if type_values is None:
            rows = self._conn.execute(
                f"SELECT {_EDGE_COLUMNS} FROM relationship ORDER BY created_at, id"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_EDGE_COLUMNS} FROM relationship WHERE relationship_type = ANY(%s) ORDER BY created_at, id",
                (type_values,),
            ).fetchall()
        return [_row_to_relationship(tuple(r)) for r in rows]

    def get_edge(self, relationship_id: str) -> Optional[Relationship]:
        row = self._conn.execute(
            f"SELECT {_EDGE_COLUMNS} FROM relationship WHERE id = %s",
            (relationship_id,),
        ).fetchone()
        return _row_to_relationship(tuple(row)) if row else None

    def find_relationships(self, query: RelationshipQuery) -> list[Relationship]:
        clauses: list[str] = []
        params: list[Any] = []
        if query.relationship_type is not None:
            clauses.append("relationship_type = %s")
            params.append(query.relationship_type.value)
        if query.qualifier is not None:
            clauses.append("relationship_qualifier = %s")
            params.append(query.qualifier.value)
        if query.start_date_from is not None:
            clauses.append("start_date >= %s")
            params.append(query.start_date_from)
        if query.start_date_to is not None:
            clauses.append("start_date <= %s")
            params.append(query.start_date_to)
        if query.end_date_from is not None:
            clauses.append("end_date >= %s")
            params.append(query.end_date_from)
        if query.end_date_to is not None:
            clauses.append("end_date <= %s")
            params.append(query.end_date_to)
        if query.active_on is not None:
            clauses.append("(end_date IS NULL OR end_date > %s)")
            params.append(query.active_on)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        direction = "DESC" if query.descending else "ASC"
        order_col = _SORT_COLUMNS[query.sort_by]
        sql = (
            f"SELECT {_EDGE_COLUMNS} FROM relationship {where} "
            f"ORDER BY {order_col} {direction} NULLS LAST, created_at, id "
            "LIMIT %s OFFSET %s"
        )
        params.extend([query.limit, query.offset])
        rows = self._conn.execute(sql, tuple(params)).fetchall()
        return [_row_to_relationship(tuple(r)) for r in rows]

    def create_edge(self, draft: EdgeDraft) -> Relationship:
        rid = draft.id or _new_id()
        row = self._conn.execute(
            f"""
            INSERT INTO relationship (
                id, person1_id, person2_id, relationship_type, relationship_qualifier,
                start_date, end_date, notes
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_EDGE_COLUMNS}
            """.strip(),
            (
                rid,
                draft.person1_id,
                draft.person2_id,
                draft.relationship_type.value,
                draft.relationship_qualifier.value if draft.relationship_qualifier else None,
                draft.start_date,
                draft.end_date,
                draft.notes,
            ),
        ).fetchone()
        return _row_to_relationship(tuple(row))

    def update_edge(self, relationship_id: str, draft: EdgeDraft) -> Relationship:
        row = self._conn.execute(
            f"""
            UPDATE relationship
            SET person1_id = %s,
                person2_id = %s,
                relationship_type = %s,
                relationship_qualifier = %s,
                start_date = %s,
                end_date = %s,
                notes = %s
            WHERE id = %s
            RETURNING {_EDGE_COLUMNS}
            """.strip(),
            (
                draft.person1_id,
                draft.person2_id,
                draft.relationship_type.value,
                draft.relationship_qualifier.value if draft.relationship_qualifier else None,
                draft.start_date,
                draft.end_date,
                draft.notes,
                relationship_id,
            ),
        ).fetchone()
        if not row:
            raise RelationshipNotFound(relationship_id)
        return _row_to_relationship(tuple(row))

    def delete_edge(self, relationship_id: str) -> None:
        row = self._conn.execute(
            "DELETE FROM relationship WHERE id = %s RETURNING id",
            (relationship_id,),
        ).fetchone()
        if not row:
            raise RelationshipNotFound(relationship_id)

    @contextmanager
    def transaction(self) -> Iterator["PostgresStore"]:
        with self._conn.transaction():
            self._conn.execute("SELECT pg_advisory_xact_lock(%s)", (_RELATIONSHIP_WRITE_LOCK,))
            log.debug("relationship write lock acquired")
            yield self
