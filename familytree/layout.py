"""Generational chart layout.

Turns a flat list of people into the nested structure the chart is drawn from:

    generation level -> couple units -> children container -> child wrappers
                     -> (each wrapper holds the child's own couple unit) -> ...

Couples are grouped husband/wife by ``spouse_id``. A couple's children are
everyone whose ``father_id`` or ``mother_id`` names either partner, wherever
they sit generation-wise. Every person is emitted as a node at most once
across the whole structure; the ``rendered`` set shared by the builders
enforces that and also guarantees termination on malformed input
(for example someone recorded as their own ancestor).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

_YEAR_RE = re.compile(r"\b(\d{4})\b")


@dataclass
class PersonNode:
    person: dict[str, Any]
    is_root: bool = False

    @property
    def css_class(self) -> str:
        classes: list[str] = []
        if self.person.get("gender"):
            classes.append(str(self.person["gender"]))
        if not self.person.get("is_alive"):
            classes.append("deceased")
        if self.is_root:
            classes.append("root")
        return " ".join(classes)

    def to_dict(self) -> dict[str, Any]:
        p = self.person
        return {
            "id": p["id"],
            "name": p.get("name"),
            "gender": p.get("gender"),
            "generation": p.get("generation"),
            "birth_year": _birth_year(p.get("birth_date")),
            "is_alive": p.get("is_alive"),
            "photo": p.get("photo"),
            "is_root": self.is_root,
            "css_class": self.css_class,
        }


@dataclass
class ChildWrapper:
    unit: CoupleUnit


@dataclass
class ChildrenContainer:
    multiple: bool
    wrappers: list[ChildWrapper] = field(default_factory=list)


@dataclass
class CoupleUnit:
    husband_id: Optional[int]
    wife_id: Optional[int]
    has_children: bool = False
    # Only the partners emitted here; someone already drawn elsewhere is left out.
    members: list[PersonNode] = field(default_factory=list)
    children: Optional[ChildrenContainer] = None

    @property
    def couple_class(self) -> str:
        return "has-children" if self.has_children else "no-children"

    def _own_dict(self) -> dict[str, Any]:
        return {
            "husband_id": self.husband_id,
            "wife_id": self.wife_id,
            "couple_class": self.couple_class,
            "members": [m.to_dict() for m in self.members],
            "children": None,
        }

    def to_dict(self) -> dict[str, Any]:
        # Iterative so a long single line of descent does not hit the recursion limit.
        out = self._own_dict()
        stack: list[tuple[CoupleUnit, dict[str, Any]]] = [(self, out)]
        while stack:
            unit, d = stack.pop()
            if unit.children is None:
                continue
            wrappers: list[dict[str, Any]] = []
            for w in unit.children.wrappers:
                child = w.unit._own_dict()
                wrappers.append({"unit": child})
                stack.append((w.unit, child))
            d["children"] = {"multiple": unit.children.multiple, "wrappers": wrappers}
        return out


@dataclass
class GenerationLevel:
    generation: int
    units: list[CoupleUnit] = field(default_factory=list)
    detached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "detached": self.detached,
            "units": [u.to_dict() for u in self.units],
        }


@dataclass
class TreeLayout:
    root_id: Optional[int] = None
    generations: list[GenerationLevel] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_id": self.root_id,
            "generations": [g.to_dict() for g in self.generations],
        }


def _birth_year(birth_date: Any) -> int | None:
    if not birth_date:
        return None
    m = _YEAR_RE.search(str(birth_date))
    return int(m.group(1)) if m else None


def _generation(p: dict[str, Any]) -> int:
    return int(p.get("generation") or 1)


class _Arena:
    """People indexed by id, plus a parent -> children index in input order."""

    def __init__(self, people: Iterable[dict[str, Any]]) -> None:
        self.order: list[dict[str, Any]] = list(people)
        self.by_id: dict[int, dict[str, Any]] = {p["id"]: p for p in self.order}
        self.position: dict[int, int] = {p["id"]: i for i, p in enumerate(self.order)}
        self.kids: dict[int, set[int]] = {}
        for p in self.order:
            for parent_id in (p.get("father_id"), p.get("mother_id")):
                if parent_id:
                    self.kids.setdefault(parent_id, set()).add(p["id"])

    def spouse_of(self, person: dict[str, Any]) -> dict[str, Any] | None:
        spouse_id = person.get("spouse_id")
        if not spouse_id:
            return None
        return self.by_id.get(spouse_id)

    def children_of(self, parent_ids: list[int]) -> list[dict[str, Any]]:
        ids: set[int] = set()
        for pid in parent_ids:
            ids |= self.kids.get(pid, set())
        return [self.by_id[cid] for cid in sorted(ids, key=self.position.__getitem__)]


def _seat(
    person: dict[str, Any],
    spouse: dict[str, Any] | None,
) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    # Anyone who is not male takes the wife slot.
    if person.get("gender") == "male":
        return person, spouse
    return spouse, person


def _group_couples(
    people: list[dict[str, Any]],
    arena: _Arena,
    rendered: set[int],
) -> list[tuple[dict[str, Any] | None, dict[str, Any] | None]]:
    couples: list[tuple[dict[str, Any] | None, dict[str, Any] | None]] = []
    processed: set[int] = set()

    for person in people:
        if person["id"] in processed or person["id"] in rendered:
            continue
        spouse = arena.spouse_of(person)
        if spouse is not None:
            processed.add(spouse["id"])
        processed.add(person["id"])
        couples.append(_seat(person, spouse))

    return couples


def _open_unit(
    husband: dict[str, Any] | None,
    wife: dict[str, Any] | None,
    arena: _Arena,
    rendered: set[int],
    root_id: int | None,
) -> tuple[CoupleUnit, list[dict[str, Any]]]:
    """Create a couple unit and emit its not-yet-rendered partners.

    Returns the unit and the children still to be placed under it.
    """

    parent_ids = [p["id"] for p in (husband, wife) if p is not None]
    children = arena.children_of(parent_ids)

    unit = CoupleUnit(
        husband_id=husband["id"] if husband is not None else None,
        wife_id=wife["id"] if wife is not None else None,
        has_children=bool(children),
    )

    for member in (husband, wife):
        if member is None or member["id"] in rendered:
            continue
        unit.members.append(PersonNode(member, is_root=(root_id is not None and member["id"] == root_id)))
        rendered.add(member["id"])

    if children:
        unit.children = ChildrenContainer(multiple=len(children) > 1)
    return unit, children


def _build_unit(
    husband: dict[str, Any] | None,
    wife: dict[str, Any] | None,
    arena: _Arena,
    rendered: set[int],
    root_id: int | None,
) -> CoupleUnit:
    """Build a couple unit and every descendant unit beneath it, depth first."""

    top, children = _open_unit(husband, wife, arena, rendered, root_id)
    # Siblings are pushed in reverse so each one is popped only after the
    # previous sibling's whole subtree has been placed.
    stack: list[tuple[dict[str, Any], ChildrenContainer]] = [(c, top.children) for c in reversed(children)]
    while stack:
        child, container = stack.pop()
        # Checked on pop: an earlier sibling's subtree may already have drawn this one.
        if child["id"] in rendered:
            continue
        child_husband, child_wife = _seat(child, arena.spouse_of(child))
        unit, grandchildren = _open_unit(child_husband, child_wife, arena, rendered, root_id)
        container.wrappers.append(ChildWrapper(unit))
        stack.extend((g, unit.children) for g in reversed(grandchildren))

    return top


def _build_level(
    generation: int,
    people: list[dict[str, Any]],
    arena: _Arena,
    rendered: set[int],
    root_id: int | None,
    *,
    detached: bool = False,
) -> GenerationLevel:
    level = GenerationLevel(generation=generation, detached=detached)
    for husband, wife in _group_couples(people, arena, rendered):
        level.units.append(_build_unit(husband, wife, arena, rendered, root_id))
    return level


def build_layout(
    people: Iterable[dict[str, Any]],
    *,
    root_id: int | None = None,
    include_detached: bool = False,
) -> TreeLayout:
    """Lay out ``people`` starting from the lowest generation number present.

    ``root_id`` only tags that person's node for emphasis. With
    ``include_detached`` anyone not reached from the top generation is laid
    out in further levels, lowest remaining generation first.
    """

    arena = _Arena(people)
    layout = TreeLayout(root_id=root_id)
    if not arena.order:
        return layout

    rendered: set[int] = set()
    top = min(_generation(p) for p in arena.order)
    roots = [p for p in arena.order if _generation(p) == top]
    layout.generations.append(_build_level(top, roots, arena, rendered, root_id))

    if include_detached:
        while True:
            remaining = [p for p in arena.order if p["id"] not in rendered]
            if not remaining:
                break
            gen = min(_generation(p) for p in remaining)
            batch = [p for p in remaining if _generation(p) == gen]
            layout.generations.append(
                _build_level(gen, batch, arena, rendered, root_id, detached=True)
            )

    return layout
