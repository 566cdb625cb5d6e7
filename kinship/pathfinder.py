from __future__ import annotations

import logging
from typing import Optional

from .accessor import GraphAccessor
from .models import PathStep, Relationship, RelationshipPath

log = logging.getLogger(__name__)


class PathFinder:
    """Shortest (fewest-edges) path between two persons.

    Every edge type is an undirected connection: a spouse hop costs the same
    as a parent hop. The result is therefore not necessarily the most
    "meaningful" kinship route, only the shortest one.
    """

    def __init__(self, accessor: GraphAccessor) -> None:
        self.accessor = accessor

    def shortest_path(
        self,
        start: str,
        goal: str,
        *,
        max_hops: Optional[int] = None,
    ) -> Optional[RelationshipPath]:
        if max_hops is not None and max_hops < 1:
            raise ValueError("max_hops must be >= 1")

        # Unknown ids are NotFound, never "no path".
        self.accessor.require(start, goal)

        if start == goal:
            return RelationshipPath(from_id=start, to_id=goal, steps=())

        came_from: dict[str, tuple[str, Relationship] | None] = {start: None}
        frontier = [start]
        depth = 0

        while frontier:
            if max_hops is not None and depth >= max_hops:
                break
            depth += 1

            neigh = self.accessor.neighbors(frontier)
            next_frontier: list[str] = []

            for node in frontier:
                for nb, rel in neigh.get(node, []):
                    if nb in came_from:
                        continue
                    came_from[nb] = (node, rel)

                    if nb == goal:
                        path = _reconstruct(came_from, start, goal)
                        log.debug("path %s -> %s found in %d hops", start, goal, path.hops)
                        return path

                    next_frontier.append(nb)

            frontier = next_frontier

        log.debug("no path %s -> %s (visited %d persons)", start, goal, len(came_from))
        return None


def _reconstruct(
    came_from: dict[str, tuple[str, Relationship] | None],
    start: str,
    goal: str,
) -> RelationshipPath:
    steps: list[PathStep] = []
    cur = goal
    while True:
        link = came_from[cur]
        if link is None:
            break
        prev, rel = link
        steps.append(PathStep(from_id=prev, to_id=cur, relationship=rel))
        cur = prev
    steps.reverse()
    return RelationshipPath(from_id=start, to_id=goal, steps=tuple(steps))
