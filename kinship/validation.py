"""Consistency rules for relationship edges.

Every rule is a pure function of the edge, the two persons it joins, and (for
structural rules) the rest of the edge-set. Rules never write and never decide
whether a write happens; they only grade what they find:

- ``error``: hard reject. The façade refuses to commit.
- ``warning``: genealogical records are often approximate, so plausibility
  concerns travel alongside a successful write instead of blocking it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Mapping, Optional, Union

from .chronology import age_on, is_younger_than, year_from_text, years_between
from .config import EngineSettings
from .errors import GraphInconsistency
from .graph import find_cycles, find_parent_cycle, format_cycle, parent_adjacency
from .models import (
    EdgeDraft,
    Gender,
    Person,
    Qualifier,
    Relationship,
    RelationshipType,
)

log = logging.getLogger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Rule(str, Enum):
    SELF_RELATIONSHIP = "self_relationship"
    DATE_ORDER = "date_order"
    QUALIFIER_MISMATCH = "qualifier_mismatch"
    PARENT_CHRONOLOGY = "parent_chronology"
    PARENT_DEATH_BEFORE_BIRTH = "parent_death_before_birth"
    PARENT_AGE_GAP = "parent_age_gap"
    EXTRA_PARENT = "extra_parent"
    MARRIAGE_BEFORE_BIRTH = "marriage_before_birth"
    MARRIAGE_AFTER_DEATH = "marriage_after_death"
    YOUNG_MARRIAGE = "young_marriage"
    DIVORCE_AFTER_DEATH = "divorce_after_death"
    SIBLING_AGE_GAP = "sibling_age_gap"
    CYCLE = "cycle"
    DUPLICATE_EDGE = "duplicate_edge"
    UNKNOWN_PERSON = "unknown_person"
    HISTORICAL_PLAUSIBILITY = "historical_plausibility"
    LIFESPAN = "lifespan"


@dataclass(frozen=True)
class Issue:
    severity: Severity
    rule: Rule
    message: str
    person_ids: tuple[str, ...] = ()
    relationship_id: Optional[str] = None


def _error(rule: Rule, message: str, *person_ids: str, relationship_id: Optional[str] = None) -> Issue:
    return Issue(Severity.ERROR, rule, message, tuple(person_ids), relationship_id)


def _warning(rule: Rule, message: str, *person_ids: str, relationship_id: Optional[str] = None) -> Issue:
    return Issue(Severity.WARNING, rule, message, tuple(person_ids), relationship_id)


@dataclass(frozen=True)
class Verdict:
    issues: tuple[Issue, ...] = ()
    # Latent bad data already in the store, reported apart from the new edit.
    inconsistencies: tuple[GraphInconsistency, ...] = field(default=())

    @property
    def errors(self) -> tuple[Issue, ...]:
        return tuple(i for i in self.issues if i.severity == Severity.ERROR)

    @property
    def warnings(self) -> tuple[Issue, ...]:
        return tuple(i for i in self.issues if i.severity == Severity.WARNING)

    @property
    def valid(self) -> bool:
        return not self.errors

    def rules(self) -> set[Rule]:
        return {i.rule for i in self.issues}


# Qualifiers allowed per edge type. Anything else is a type/qualifier mismatch.
_ALLOWED_QUALIFIERS: dict[RelationshipType, frozenset[Qualifier]] = {
    RelationshipType.PARENT: frozenset(
        {Qualifier.BIOLOGICAL, Qualifier.ADOPTIVE, Qualifier.STEP, Qualifier.FOSTER}
    ),
    RelationshipType.SPOUSE: frozenset({Qualifier.STEP, Qualifier.IN_LAW}),
    RelationshipType.SIBLING: frozenset(
        {Qualifier.BIOLOGICAL, Qualifier.HALF, Qualifier.STEP, Qualifier.ADOPTIVE, Qualifier.FOSTER}
    ),
}

# Rules about bodies (ages, gestation) only make sense for blood links.
_BLOOD_QUALIFIERS = frozenset({None, Qualifier.BIOLOGICAL})

_MAX_BIOLOGICAL_PARENTS = 2

_US_CENSUS_YEARS = frozenset(range(1790, 2021, 10))
# England & Wales / UK: decennial from 1801; no census was taken in 1941.
_UK_CENSUS_YEARS = frozenset(y for y in range(1801, 2022, 10) if y != 1941)

_CENSUS_YEARS_BY_JURISDICTION: dict[str, frozenset[int]] = {
    "united states": _US_CENSUS_YEARS,
    "usa": _US_CENSUS_YEARS,
    "us": _US_CENSUS_YEARS,
    "united kingdom": _UK_CENSUS_YEARS,
    "uk": _UK_CENSUS_YEARS,
    "england": _UK_CENSUS_YEARS,
    "wales": _UK_CENSUS_YEARS,
}


def _census_years_for(jurisdiction: str | None) -> frozenset[int] | None:
    if not jurisdiction:
        return None
    j = jurisdiction.strip().lower()
    if j in _CENSUS_YEARS_BY_JURISDICTION:
        return _CENSUS_YEARS_BY_JURISDICTION[j]
    # Free-text places such as "Boston, Massachusetts, United States".
    for key, years in _CENSUS_YEARS_BY_JURISDICTION.items():
        if len(key) > 3 and key in j:
            return years
    return None


EdgeLike = Union[EdgeDraft, Relationship]


class ConsistencyValidator:
    def __init__(self, settings: EngineSettings | None = None, *, today: date | None = None) -> None:
        self.settings = settings or EngineSettings()
        self._today_override = today

    def _today(self) -> date:
        return self._today_override or date.today()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def validate_edge(
        self,
        draft: EdgeDraft,
        person1: Person,
        person2: Person,
        existing_edges: Iterable[Relationship] = (),
    ) -> Verdict:
        """Check one proposed edge against its endpoints and the current graph.

        ``existing_edges`` should hold every committed edge that can close a
        cycle (in practice: all ``parent`` edges) plus the edges touching the
        two endpoints. An edge whose ``id`` equals ``draft.id`` is treated as
        the version being replaced.
        """

        existing = [r for r in existing_edges if draft.id is None or r.id != draft.id]
        issues = self._edge_issues(draft, person1, person2)

        inconsistencies: tuple[GraphInconsistency, ...] = ()
        if draft.person1_id != draft.person2_id:
            issues.extend(self._duplicate_issues(draft, existing))
            if draft.relationship_type == RelationshipType.PARENT:
                issues.extend(self._extra_parent_issues(draft, existing))
                cycle_issues, inconsistencies = self._cycle_issues(draft, existing)
                issues.extend(cycle_issues)

        verdict = Verdict(issues=tuple(issues), inconsistencies=inconsistencies)
        log.debug(
            "validated %s %s->%s: %d errors, %d warnings",
            draft.relationship_type.value,
            draft.person1_id,
            draft.person2_id,
            len(verdict.errors),
            len(verdict.warnings),
        )
        return verdict

    def validate_edge_set(
        self,
        edges: Iterable[Relationship],
        persons: Mapping[str, Person],
    ) -> Verdict:
        """Audit a whole committed edge-set: per-edge rules, duplicates, and one cycle pass."""

        edge_list = list(edges)
        issues: list[Issue] = []

        for rel in edge_list:
            p1 = persons.get(rel.person1_id)
            p2 = persons.get(rel.person2_id)
            missing = [pid for pid, p in ((rel.person1_id, p1), (rel.person2_id, p2)) if p is None]
            if missing:
                issues.append(
                    _error(
                        Rule.UNKNOWN_PERSON,
                        f"relationship {rel.id} references unknown person(s): {', '.join(missing)}",
                        *missing,
                        relationship_id=rel.id,
                    )
                )
                continue
            for issue in self._edge_issues(EdgeDraft.from_relationship(rel), p1, p2):
                issues.append(
                    Issue(issue.severity, issue.rule, issue.message, issue.person_ids, rel.id)
                )

        seen: dict[tuple[RelationshipType, tuple[str, ...]], str] = {}
        for rel in edge_list:
            key = (rel.relationship_type, _pair_key(rel))
            first = seen.setdefault(key, rel.id)
            if first != rel.id:
                issues.append(
                    _error(
                        Rule.DUPLICATE_EDGE,
                        f"relationship {rel.id} duplicates {first} ({rel.relationship_type.value})",
                        rel.person1_id,
                        rel.person2_id,
                        relationship_id=rel.id,
                    )
                )

        for cycle in find_cycles(parent_adjacency(edge_list)):
            issues.append(
                _error(Rule.CYCLE, f"parent cycle: {format_cycle(cycle)}", *dict.fromkeys(cycle))
            )

        for p in persons.values():
            issues.extend(self.check_person(p))

        return Verdict(issues=tuple(issues))

    # ------------------------------------------------------------------
    # Per-edge rules
    # ------------------------------------------------------------------

    def _edge_issues(self, edge: EdgeDraft, person1: Person, person2: Person) -> list[Issue]:
        issues: list[Issue] = []

        if edge.person1_id == edge.person2_id:
            issues.append(
                _error(
                    Rule.SELF_RELATIONSHIP,
                    "a person cannot be related to themselves",
                    edge.person1_id,
                )
            )

        issues.extend(self.check_date_order(edge))
        issues.extend(self.check_qualifier(edge))

        if edge.person1_id != edge.person2_id:
            if edge.relationship_type == RelationshipType.PARENT:
                issues.extend(self.check_parent_chronology(person1, person2, edge.relationship_qualifier))
            elif edge.relationship_type == RelationshipType.SPOUSE:
                issues.extend(self.check_marriage(person1, person2, edge))
            elif edge.relationship_type == RelationshipType.SIBLING:
                issues.extend(self.check_sibling_gap(person1, person2))

        for label, d in (("start date", edge.start_date), ("end date", edge.end_date)):
            if d is not None:
                issues.extend(self.check_event_date(d, label=label))

        return issues

    def check_date_order(self, edge: EdgeLike) -> list[Issue]:
        if edge.start_date and edge.end_date and edge.start_date > edge.end_date:
            return [
                _error(
                    Rule.DATE_ORDER,
                    f"start date {edge.start_date.isoformat()} is after end date {edge.end_date.isoformat()}",
                    edge.person1_id,
                    edge.person2_id,
                )
            ]
        return []

    def check_qualifier(self, edge: EdgeLike) -> list[Issue]:
        q = edge.relationship_qualifier
        if q is None:
            return []
        t = edge.relationship_type
        if q not in _ALLOWED_QUALIFIERS[t]:
            return [
                _error(
                    Rule.QUALIFIER_MISMATCH,
                    f"'{q.value}' is not a valid qualifier for {t.value} relationships",
                    edge.person1_id,
                    edge.person2_id,
                )
            ]
        return []

    def check_parent_chronology(
        self,
        parent: Person,
        child: Person,
        qualifier: Optional[Qualifier] = None,
    ) -> list[Issue]:
        issues: list[Issue] = []
        s = self.settings
        pb, cb = parent.birth_date, child.birth_date

        if pb and cb:
            if pb >= cb:
                return [
                    _error(
                        Rule.PARENT_CHRONOLOGY,
                        f"parent {parent.label()} (born {pb.isoformat()}) must be born before "
                        f"child {child.label()} (born {cb.isoformat()})",
                        parent.id,
                        child.id,
                    )
                ]
            if qualifier in _BLOOD_QUALIFIERS:
                if is_younger_than(pb, s.min_parent_age, on=cb):
                    issues.append(
                        _warning(
                            Rule.PARENT_AGE_GAP,
                            f"{parent.label()} would have been {age_on(pb, cb)} at the birth of "
                            f"{child.label()} (under {s.min_parent_age})",
                            parent.id,
                            child.id,
                        )
                    )
                else:
                    age = age_on(pb, cb)
                    max_age = s.max_parent_age
                    if parent.gender == Gender.FEMALE:
                        max_age = min(max_age, s.max_maternal_age)
                    if age > max_age:
                        issues.append(
                            _warning(
                                Rule.PARENT_AGE_GAP,
                                f"{parent.label()} would have been {age} at the birth of "
                                f"{child.label()} (over {max_age})",
                                parent.id,
                                child.id,
                            )
                        )

        pd = parent.death_date
        if pd and cb and cb - pd > timedelta(days=s.gestation_buffer_days):
            issues.append(
                _warning(
                    Rule.PARENT_DEATH_BEFORE_BIRTH,
                    f"parent {parent.label()} died {pd.isoformat()}, more than "
                    f"{s.gestation_buffer_days} days before {child.label()} was born ({cb.isoformat()})",
                    parent.id,
                    child.id,
                )
            )

        return issues

    def check_marriage(self, person1: Person, person2: Person, edge: EdgeLike) -> list[Issue]:
        issues: list[Issue] = []
        s = self.settings
        married = edge.start_date
        ended = edge.end_date

        for spouse in (person1, person2):
            if married is not None:
                if spouse.birth_date and married < spouse.birth_date:
                    issues.append(
                        _error(
                            Rule.MARRIAGE_BEFORE_BIRTH,
                            f"marriage date {married.isoformat()} is before {spouse.label()}'s "
                            f"birth date {spouse.birth_date.isoformat()}",
                            spouse.id,
                        )
                    )
                elif spouse.death_date and married > spouse.death_date:
                    issues.append(
                        _error(
                            Rule.MARRIAGE_AFTER_DEATH,
                            f"marriage date {married.isoformat()} is after {spouse.label()}'s "
                            f"death date {spouse.death_date.isoformat()}",
                            spouse.id,
                        )
                    )
                elif spouse.birth_date and is_younger_than(spouse.birth_date, s.min_marriage_age, on=married):
                    issues.append(
                        _warning(
                            Rule.YOUNG_MARRIAGE,
                            f"{spouse.label()}'s age at marriage ({age_on(spouse.birth_date, married)}) "
                            f"is under {s.min_marriage_age}",
                            spouse.id,
                        )
                    )
            if ended is not None and spouse.death_date and ended > spouse.death_date:
                issues.append(
                    _warning(
                        Rule.DIVORCE_AFTER_DEATH,
                        f"union end date {ended.isoformat()} is after {spouse.label()}'s "
                        f"death date {spouse.death_date.isoformat()}",
                        spouse.id,
                    )
                )

        return issues

    def check_sibling_gap(self, person1: Person, person2: Person) -> list[Issue]:
        b1, b2 = person1.birth_date, person2.birth_date
        if not (b1 and b2):
            return []
        gap = abs(years_between(b1, b2))
        if gap > self.settings.max_sibling_gap_years:
            return [
                _warning(
                    Rule.SIBLING_AGE_GAP,
                    f"siblings {person1.label()} and {person2.label()} were born {round(gap)} years apart",
                    person1.id,
                    person2.id,
                )
            ]
        return []

    # ------------------------------------------------------------------
    # Structural rules
    # ------------------------------------------------------------------

    def _duplicate_issues(self, draft: EdgeDraft, existing: list[Relationship]) -> list[Issue]:
        key = _pair_key(draft)
        for rel in existing:
            if rel.relationship_type == draft.relationship_type and _pair_key(rel) == key:
                return [
                    _error(
                        Rule.DUPLICATE_EDGE,
                        f"a {draft.relationship_type.value} relationship already exists between "
                        f"{draft.person1_id} and {draft.person2_id} ({rel.id})",
                        draft.person1_id,
                        draft.person2_id,
                    )
                ]
        return []

    def _extra_parent_issues(self, draft: EdgeDraft, existing: list[Relationship]) -> list[Issue]:
        if draft.relationship_qualifier not in _BLOOD_QUALIFIERS:
            return []
        bio_parents = {
            r.person1_id
            for r in existing
            if r.relationship_type == RelationshipType.PARENT
            and r.person2_id == draft.person2_id
            and r.relationship_qualifier in _BLOOD_QUALIFIERS
        }
        bio_parents.discard(draft.person1_id)
        if len(bio_parents) >= _MAX_BIOLOGICAL_PARENTS:
            return [
                _warning(
                    Rule.EXTRA_PARENT,
                    f"{draft.person2_id} already has {len(bio_parents)} biological parents recorded",
                    draft.person2_id,
                )
            ]
        return []

    def _cycle_issues(
        self,
        draft: EdgeDraft,
        existing: list[Relationship],
    ) -> tuple[list[Issue], tuple[GraphInconsistency, ...]]:
        """Reject a parent edge that would make someone their own ancestor.

        When the committed graph is a DAG every cycle in ``existing + draft``
        must pass through the draft, so one coloring DFS over the combined set
        decides. Legacy data that is already cyclic is reported separately,
        and the draft is then judged by whether its child already reaches its
        parent.
        """

        parent_edges = [r for r in existing if r.relationship_type == RelationshipType.PARENT]
        adj = parent_adjacency(parent_edges)
        latent = find_cycles(adj)

        if not latent:
            combined = parent_adjacency([*parent_edges, draft.as_relationship()])
            cycles = find_cycles(combined, limit=1)
            if not cycles:
                return [], ()
            cycle = cycles[0]
        else:
            trail = _descent_trail(adj, draft.person2_id, draft.person1_id)
            cycle = [draft.person1_id, *trail] if trail else []

        inconsistencies = tuple(
            GraphInconsistency(
                kind="cycle",
                person_ids=tuple(dict.fromkeys(c)),
                message=f"existing parent cycle: {format_cycle(c)}",
            )
            for c in latent
        )
        for inc in inconsistencies:
            log.warning("latent graph inconsistency: %s", inc.message)

        if not cycle:
            return [], inconsistencies
        return (
            [
                _error(
                    Rule.CYCLE,
                    f"{draft.person1_id} would become their own ancestor: {format_cycle(cycle)}",
                    *dict.fromkeys(cycle),
                )
            ],
            inconsistencies,
        )

    def detect_cycle(self, parent_edges: Iterable[Relationship]) -> list[str] | None:
        """Return one parent cycle as a node sequence, or None."""
        return find_parent_cycle(parent_edges)

    # ------------------------------------------------------------------
    # Advisory checks usable outside relationship edits
    # ------------------------------------------------------------------

    def check_event_date(
        self,
        when: Union[date, str, None],
        *,
        event_type: str | None = None,
        jurisdiction: str | None = None,
        label: str = "date",
    ) -> list[Issue]:
        """Historical plausibility of any event date (warnings only).

        *when* may be a ``date`` or free text such as ``"abt 1851"``.
        """

        if when is None:
            return []
        today = self._today()
        if isinstance(when, date):
            year = when.year
            in_future = when > today
            shown = when.isoformat()
        else:
            parsed = year_from_text(when, today=today)
            if parsed is None:
                return []
            year = parsed
            in_future = year > today.year
            shown = str(when)

        issues: list[Issue] = []
        if in_future:
            issues.append(_warning(Rule.HISTORICAL_PLAUSIBILITY, f"{label} {shown} is in the future"))
        if year < self.settings.earliest_record_year:
            issues.append(
                _warning(
                    Rule.HISTORICAL_PLAUSIBILITY,
                    f"{label} {shown} is before {self.settings.earliest_record_year}; "
                    "reliable records are rare this early",
                )
            )
        if (event_type or "").strip().lower() == "census":
            years = _census_years_for(jurisdiction)
            if years is not None and year not in years:
                issues.append(
                    _warning(
                        Rule.HISTORICAL_PLAUSIBILITY,
                        f"{year} is not a census year for {jurisdiction}",
                    )
                )
        return issues

    def check_person(self, person: Person) -> list[Issue]:
        """Lifespan sanity for a single person (warnings only)."""

        issues: list[Issue] = []
        s = self.settings
        b, d = person.birth_date, person.death_date

        if b and d:
            if d < b:
                issues.append(
                    _warning(Rule.LIFESPAN, f"{person.label()} died before being born", person.id)
                )
            elif age_on(b, d) > s.max_lifespan_years:
                issues.append(
                    _warning(
                        Rule.LIFESPAN,
                        f"{person.label()}'s age at death ({age_on(b, d)}) exceeds {s.max_lifespan_years}",
                        person.id,
                    )
                )
        elif b and not d:
            age = age_on(b, self._today())
            if age > s.max_living_age_years:
                issues.append(
                    _warning(
                        Rule.LIFESPAN,
                        f"{person.label()} would be {age} today; consider recording a death date",
                        person.id,
                    )
                )

        for label, when in (("birth date", b), ("death date", d)):
            for issue in self.check_event_date(when, label=label):
                issues.append(Issue(issue.severity, issue.rule, issue.message, (person.id,)))

        return issues


def _pair_key(edge: EdgeLike) -> tuple[str, ...]:
    """Identity of an edge's endpoints: ordered for parent, unordered otherwise."""
    if edge.relationship_type == RelationshipType.PARENT:
        return (edge.person1_id, edge.person2_id)
    return tuple(sorted((edge.person1_id, edge.person2_id)))


def _descent_trail(adj: dict[str, list[str]], start: str, target: str) -> list[str]:
    """Return [start, ..., target] following parent->child links, or [] if unreachable."""

    came_from: dict[str, Optional[str]] = {start: None}
    frontier = [start]
    while frontier:
        next_frontier: list[str] = []
        for node in frontier:
            for child in adj.get(node, ()):
                if child in came_from:
                    continue
                came_from[child] = node
                if child == target:
                    trail = [child]
                    cur = came_from[child]
                    while cur is not None:
                        trail.append(cur)
                        cur = came_from[cur]
                    trail.reverse()
                    return trail
                next_frontier.append(child)
        frontier = next_frontier
    return []
