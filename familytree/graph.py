from __future__ import annotations

from typing import Any, Iterable


def _children_by_parent(people: Iterable[dict[str, Any]]) -> dict[int, list[int]]:
    """Return parent id -> child ids, keeping the order of ``people``."""

    out: dict[int, list[int]] = {}
    for p in people:
        for parent_id in (p.get("father_id"), p.get("mother_id")):
            if not parent_id:
                continue
            kids = out.setdefault(parent_id, [])
            # Both parent columns may name the same person on malformed rows.
            if not kids or kids[-1] != p["id"]:
                kids.append(p["id"])
    return out


def with_children_ids(people: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Copy each person and attach the derived ``children_ids`` list."""

    children = _children_by_parent(people)
    return [{**p, "children_ids": list(children.get(p["id"], []))} for p in people]


def collect_subgraph(
    people: Iterable[dict[str, Any]],
    root_id: int,
    *,
    depth: int = 3,
) -> list[dict[str, Any]]:
    """Walk outward from ``root_id`` and return everyone reached, in visit order.

    ``depth`` is a budget spent on the way up and refunded on the way down:
    parents are followed only while the budget is positive (budget - 1),
    children are always followed (budget + 1) and a spouse is followed at the
    same budget. The ancestor side is therefore bounded by ``depth`` while the
    descendant side is not. Each person is visited at most once.

    Visit order matches a recursive walk (father subtree, mother subtree,
    each child subtree, then spouse); an explicit stack keeps long lines of
    descent from hitting the interpreter's recursion limit.
    """

    by_id: dict[int, dict[str, Any]] = {}
    for p in people:
        by_id[p["id"]] = p
    children = _children_by_parent(by_id.values())

    visited: set[int] = set()
    result: list[dict[str, Any]] = []
    stack: list[tuple[int | None, int]] = [(root_id, depth)]

    while stack:
        pid, budget = stack.pop()
        if not pid or pid in visited:
            continue
        person = by_id.get(pid)
        if person is None:
            continue

        visited.add(pid)
        result.append(person)

        pending: list[tuple[int | None, int]] = []
        if budget > 0:
            pending.append((person.get("father_id"), budget - 1))
            pending.append((person.get("mother_id"), budget - 1))
        for cid in children.get(pid, []):
            pending.append((cid, budget + 1))
        spouse_id = person.get("spouse_id")
        if spouse_id and spouse_id not in visited:
            pending.append((spouse_id, budget))

        # Reversed so the first pending entry is explored first.
        stack.extend(reversed(pending))

    return result
