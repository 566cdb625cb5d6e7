from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from .engine import KinshipEngine
from .errors import InvalidEdge, NotFound
from .models import (
    EdgeDraft,
    Qualifier,
    RelationshipQuery,
    RelationshipSortField,
    RelationshipType,
)
from .serialize import (
    family_to_public,
    issue_to_public,
    lineage_to_public,
    path_to_public,
    relationship_to_public,
    verdict_to_public,
)

router = APIRouter()


class RelationshipIn(BaseModel):
    person1_id: str
    person2_id: str
    relationship_type: str
    relationship_qualifier: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None

    def to_draft(self, relationship_id: str | None = None) -> EdgeDraft:
        return EdgeDraft(id=relationship_id, **self.model_dump())


def _engine(request: Request) -> KinshipEngine:
    # Per-request engine (database mode) wins over the app-wide one.
    engine = getattr(request.state, "engine", None)
    return engine if engine is not None else request.app.state.engine


@contextmanager
def _engine_errors() -> Iterator[None]:
    try:
        yield
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidEdge as e:
        raise HTTPException(
            status_code=422,
            detail={"message": str(e), **verdict_to_public(e.verdict)},
        ) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _draft(body: RelationshipIn, relationship_id: str | None = None) -> EdgeDraft:
    # Bad type/qualifier strings are a client error, not a rule violation.
    try:
        return body.to_draft(relationship_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/people/{person_id}/family")
def get_family(person_id: str, request: Request) -> dict[str, Any]:
    with _engine_errors():
        fam = _engine(request).get_family_members(person_id)
    return family_to_public(fam)


@router.get("/people/{person_id}/ancestors")
def get_ancestors(
    person_id: str,
    request: Request,
    generations: Optional[int] = Query(default=None, ge=1, le=100),
) -> dict[str, Any]:
    with _engine_errors():
        lin = _engine(request).get_ancestors(person_id, generations)
    return lineage_to_public(lin)


@router.get("/people/{person_id}/descendants")
def get_descendants(
    person_id: str,
    request: Request,
    generations: Optional[int] = Query(default=None, ge=1, le=100),
) -> dict[str, Any]:
    with _engine_errors():
        lin = _engine(request).get_descendants(person_id, generations)
    return lineage_to_public(lin)


@router.get("/relationship/path")
def relationship_path(
    request: Request,
    from_id: str = Query(min_length=1, max_length=64),
    to_id: str = Query(min_length=1, max_length=64),
    max_hops: Optional[int] = Query(default=None, ge=1, le=50),
) -> dict[str, Any]:
    engine = _engine(request)
    with _engine_errors():
        path = engine.find_relationship_path(from_id, to_id, max_hops)
        persons = engine.accessor.persons_by_ids(path.person_ids()) if path else None
    return path_to_public(from_id, to_id, path, persons)


@router.get("/relationships")
def list_relationships(
    request: Request,
    relationship_type: Optional[RelationshipType] = None,
    qualifier: Optional[Qualifier] = None,
    active_on: Optional[date] = None,
    sort_by: RelationshipSortField = RelationshipSortField.CREATED_AT,
    descending: bool = False,
    limit: int = Query(default=100, ge=1, le=10_000),
    offset: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    with _engine_errors():
        query = RelationshipQuery(
            relationship_type=relationship_type,
            qualifier=qualifier,
            active_on=active_on,
            sort_by=sort_by,
            descending=descending,
            limit=limit,
            offset=offset,
        )
        rows = _engine(request).list_relationships(query)
    return {
        "results": [relationship_to_public(r) for r in rows],
        "limit": limit,
        "offset": offset,
    }


@router.get("/relationships/audit")
def audit_relationships(request: Request) -> dict[str, Any]:
    with _engine_errors():
        verdict = _engine(request).audit_graph()
    return verdict_to_public(verdict)


@router.post("/relationships/validate")
def validate_relationship(body: RelationshipIn, request: Request) -> dict[str, Any]:
    draft = _draft(body)
    with _engine_errors():
        verdict = _engine(request).validate_proposed_edge(draft)
    return verdict_to_public(verdict)


@router.post("/relationships", status_code=201)
def create_relationship(body: RelationshipIn, request: Request) -> dict[str, Any]:
    draft = _draft(body)
    with _engine_errors():
        result = _engine(request).commit_edge(draft)
    return {
        "relationship": relationship_to_public(result.relationship),
        "warnings": [issue_to_public(i) for i in result.warnings],
    }


@router.put("/relationships/{relationship_id}")
def update_relationship(relationship_id: str, body: RelationshipIn, request: Request) -> dict[str, Any]:
    draft = _draft(body, relationship_id)
    with _engine_errors():
        result = _engine(request).commit_edge(draft)
    return {
        "relationship": relationship_to_public(result.relationship),
        "warnings": [issue_to_public(i) for i in result.warnings],
    }


@router.delete("/relationships/{relationship_id}")
def delete_relationship(relationship_id: str, request: Request) -> dict[str, Any]:
    with _engine_errors():
        _engine(request).delete_edge(relationship_id)
    return {"deleted": relationship_id}
