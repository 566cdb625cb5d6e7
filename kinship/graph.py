from __future__ import annotations

from typing import Iterable

from .models import Relationship, RelationshipType

_WHITE, _GRAY, _BLACK = 0, 1, 2


def parent_adjacency(edges: Iterable[Relationship]) -> dict[str, list[str]]:
    """Return parent -> [children] for the ``parent`` edges in *edges*.

    Node order follows first appearance so cycle reports are deterministic.
    """

    adj: dict[str, list[str]] = {}
    for rel in edges:
        if rel.relationship_type != RelationshipType.PARENT:
            continue
        adj.setdefault(rel.person1_id, []).append(rel.person2_id)
        adj.setdefault(rel.person2_id, [])
    return adj


def find_cycles(adj: dict[str, list[str]], *, limit: int | None = None) -> list[list[str]]:
    """Find directed cycles with an iterative white/gray/black DFS.

    Runs in O(V+E). Each back-edge yields one cycle, reported as the node
    sequence from the re-entered node around to itself, e.g. ``["A", "B", "C", "A"]``.
    A self-loop is reported as ``["A", "A"]``.
    """

    color: dict[str, int] = {}
    cycles: list[list[str]] = []

    for root in adj:
        if color.get(root, _WHITE) != _WHITE:
            continue

        path: list[str] = [root]
        pos: dict[str, int] = {root: 0}
        stack = [iter(adj.get(root, ()))]
        color[root] = _GRAY

        while stack:
            node = path[-1]
            advanced = False
            for nb in stack[-1]:
                c = color.get(nb, _WHITE)
                if c == _WHITE:
                    color[nb] = _GRAY
                    pos[nb] = len(path)
                    path.append(nb)
                    stack.append(iter(adj.get(nb, ())))
                    advanced = True
                    break
                if c == _GRAY:
                    cycles.append(path[pos[nb] :] + [nb])
                    if limit is not None and len(cycles) >= limit:
                        return cycles
            if advanced:
                continue
            color[node] = _BLACK
            del pos[node]
            path.pop()
            stack.pop()

    return cycles


def find_parent_cycle(edges: Iterable[Relationship]) -> list[str] | None:
    """Return one ``parent`` cycle in *edges*, or None if they form a DAG."""
    cycles = find_cycles(parent_adjacency(edges), limit=1)
    return cycles[0] if cycles else None


def format_cycle(cycle: list[str]) -> str:
    return " -> ".join(cycle)
