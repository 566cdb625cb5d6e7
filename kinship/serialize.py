from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional

from .errors import GraphInconsistency
from .models import FamilyMembers, Lineage, Person, Relationship, RelationshipPath
from .validation import Issue, Verdict


def _iso(d: date | None) -> str | None:
    return d.isoformat() if d else None


def _ids(values: frozenset[str]) -> list[str]:
    # Sets have no order; sort so responses are stable.
    return sorted(values)


def person_to_public(p: Person) -> dict[str, Any]:
    return {
        "id": p.id,
        "type": "person",
        "display_name": p.display_name,
        "gender": p.gender.value if p.gender else None,
        "birth_date": _iso(p.birth_date),
        "death_date": _iso(p.death_date),
    }


def relationship_to_public(r: Relationship) -> dict[str, Any]:
    return {
        "id": r.id,
        "person1_id": r.person1_id,
        "person2_id": r.person2_id,
        "relationship_type": r.relationship_type.value,
        "relationship_qualifier": r.relationship_qualifier.value if r.relationship_qualifier else None,
        "start_date": _iso(r.start_date),
        "end_date": _iso(r.end_date),
        "notes": r.notes,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


def issue_to_public(i: Issue) -> dict[str, Any]:
    out: dict[str, Any] = {
        "severity": i.severity.value,
        "rule": i.rule.value,
        "message": i.message,
        "person_ids": list(i.person_ids),
    }
    if i.relationship_id is not None:
        out["relationship_id"] = i.relationship_id
    return out


def inconsistency_to_public(g: GraphInconsistency) -> dict[str, Any]:
    return {"kind": g.kind, "person_ids": list(g.person_ids), "message": g.message}


def verdict_to_public(v: Verdict) -> dict[str, Any]:
    return {
        "valid": v.valid,
        "errors": [issue_to_public(i) for i in v.errors],
        "warnings": [issue_to_public(i) for i in v.warnings],
        "inconsistencies": [inconsistency_to_public(g) for g in v.inconsistencies],
    }


def family_to_public(f: FamilyMembers) -> dict[str, Any]:
    out: dict[str, Any] = {"person_id": f.person_id}
    for name, members in f.categories().items():
        if name == "spouses":
            continue
        out[name] = _ids(members)
    out["spouses"] = [
        {"person_id": s.person_id, "relationship": relationship_to_public(s.relationship)}
        for s in f.spouses
    ]
    out["issues"] = [inconsistency_to_public(g) for g in f.issues]
    return out


def lineage_to_public(lin: Lineage) -> dict[str, Any]:
    return {
        "person_id": lin.person_id,
        "direction": lin.direction,
        "generations": [
            {"depth": g.depth, "person_ids": list(g.person_ids)} for g in lin.generations
        ],
        "issues": [inconsistency_to_public(g) for g in lin.issues],
    }


def path_to_public(
    from_id: str,
    to_id: str,
    path: Optional[RelationshipPath],
    persons: Optional[Mapping[str, Person]] = None,
) -> dict[str, Any]:
    if path is None:
        return {"from": from_id, "to": to_id, "path": [], "steps": [], "hops": None}

    people = persons or {}
    return {
        "from": from_id,
        "to": to_id,
        "path": [
            person_to_public(people[pid]) if pid in people else {"id": pid, "display_name": None}
            for pid in path.person_ids()
        ],
        "steps": [
            {
                "from_id": s.from_id,
                "to_id": s.to_id,
                "relationship": relationship_to_public(s.relationship),
            }
            for s in path.steps
        ],
        "hops": path.hops,
    }
