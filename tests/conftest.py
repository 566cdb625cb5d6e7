from __future__ import annotations

from datetime import date

import pytest

from kinship.config import EngineSettings
from kinship.engine import KinshipEngine
from kinship.models import Gender, Person, Qualifier, Relationship, RelationshipType
from kinship.store import InMemoryStore
from kinship.validation import ConsistencyValidator


@pytest.fixture()
def fixed_today() -> date:
    # Keep tests deterministic.
    return date(2026, 1, 20)


def _parent(rid: str, parent: str, child: str) -> Relationship:
    return Relationship(
        id=rid,
        person1_id=parent,
        person2_id=child,
        relationship_type=RelationshipType.PARENT,
        relationship_qualifier=Qualifier.BIOLOGICAL,
    )


def _spouse(rid: str, a: str, b: str, married: date) -> Relationship:
    return Relationship(
        id=rid,
        person1_id=a,
        person2_id=b,
        relationship_type=RelationshipType.SPOUSE,
        start_date=married,
    )


@pytest.fixture()
def family_store() -> InMemoryStore:
    """Three generations around ``me``.

    gf1+gm1 -> dad, uncle        gf2+gm2 -> mom, aunt
    dad+mom -> me, sis           uncle+uwife -> cousin
    me -> kid                    sis -> niece
    me married partner
    """

    persons = [
        Person("gf1", date(1900, 3, 1), date(1970, 1, 1), Gender.MALE, "Grandfather One"),
        Person("gm1", date(1902, 5, 1), date(1980, 1, 1), Gender.FEMALE, "Grandmother One"),
        Person("gf2", date(1905, 1, 1), date(1975, 1, 1), Gender.MALE, "Grandfather Two"),
        Person("gm2", date(1907, 1, 1), date(1990, 1, 1), Gender.FEMALE, "Grandmother Two"),
        Person("dad", date(1930, 4, 2), None, Gender.MALE, "Dad"),
        Person("uncle", date(1932, 6, 1), None, Gender.MALE, "Uncle"),
        Person("uwife", date(1934, 1, 1), None, Gender.FEMALE, "Uncle's Wife"),
        Person("mom", date(1933, 8, 9), None, Gender.FEMALE, "Mom"),
        Person("aunt", date(1935, 2, 2), None, Gender.FEMALE, "Aunt"),
        Person("me", date(1960, 7, 7), None, Gender.MALE, "Me"),
        Person("sis", date(1962, 9, 9), None, Gender.FEMALE, "Sis"),
        Person("cousin", date(1961, 1, 1), None, Gender.OTHER, "Cousin"),
        Person("partner", date(1961, 3, 3), None, Gender.FEMALE, "Partner"),
        Person("kid", date(1990, 1, 1), None, Gender.MALE, "Kid"),
        Person("niece", date(1992, 1, 1), None, Gender.FEMALE, "Niece"),
    ]
    relationships = [
        _parent("r1", "gf1", "dad"),
        _parent("r2", "gm1", "dad"),
        _parent("r3", "gf1", "uncle"),
        _parent("r4", "gm1", "uncle"),
        _parent("r5", "gf2", "mom"),
        _parent("r6", "gm2", "mom"),
        _parent("r7", "gf2", "aunt"),
        _parent("r8", "gm2", "aunt"),
        _parent("r9", "dad", "me"),
        _parent("r10", "mom", "me"),
        _parent("r11", "dad", "sis"),
        _parent("r12", "mom", "sis"),
        _parent("r13", "uncle", "cousin"),
        _parent("r14", "uwife", "cousin"),
        _parent("r15", "me", "kid"),
        _parent("r16", "sis", "niece"),
        _spouse("s1", "gf1", "gm1", date(1925, 6, 1)),
        _spouse("s2", "gf2", "gm2", date(1929, 6, 1)),
        _spouse("s3", "dad", "mom", date(1955, 6, 1)),
        _spouse("s4", "uncle", "uwife", date(1958, 6, 1)),
        _spouse("s5", "me", "partner", date(1985, 6, 1)),
    ]
    return InMemoryStore(persons, relationships)


@pytest.fixture()
def engine(family_store: InMemoryStore, fixed_today: date) -> KinshipEngine:
    settings = EngineSettings()
    return KinshipEngine(
        family_store,
        settings,
        validator=ConsistencyValidator(settings, today=fixed_today),
    )
