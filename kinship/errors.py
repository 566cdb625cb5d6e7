from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:  # pragma: no cover
    from .validation import Verdict


class KinshipError(Exception):
    """Base class for engine errors."""


class NotFound(KinshipError):
    pass


class PersonNotFound(NotFound):
    def __init__(self, person_ids: Iterable[str]) -> None:
        self.person_ids = tuple(sorted(set(person_ids)))
        super().__init__(f"person not found: {', '.join(self.person_ids)}")


class RelationshipNotFound(NotFound):
    def __init__(self, relationship_id: str) -> None:
        self.relationship_id = relationship_id
        super().__init__(f"relationship not found: {relationship_id}")


class InvalidEdge(KinshipError):
    """A proposed edge failed one or more hard validation rules.

    The full verdict (errors and any warnings gathered alongside them) is kept
    so callers can show every reason at once.
    """

    def __init__(self, verdict: Verdict) -> None:
        self.verdict = verdict
        rules = sorted({issue.rule.value for issue in verdict.errors})
        super().__init__(f"invalid relationship ({', '.join(rules)})")


@dataclass(frozen=True)
class GraphInconsistency:
    """Latent bad data found while traversing (not raised).

    ``kind`` is a short tag such as ``"cycle"``.
    """

    kind: str
    person_ids: tuple[str, ...]
    message: str
