from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Query

try:
    from ..db import db_conn
    from ..errors import NotFound
    from ..layout import build_layout
    from ..models import PersonFilter
    from ..persons import get_tree_data, get_tree_data_by_root, list_persons, require_person
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from db import db_conn
    from errors import NotFound
    from layout import build_layout
    from models import PersonFilter
    from persons import get_tree_data, get_tree_data_by_root, list_persons, require_person

router = APIRouter(tags=["tree"])


@router.get("/tree")
def tree_all(family_tree_id: Optional[int] = None) -> dict[str, Any]:
    with db_conn() as conn:
        people = get_tree_data(conn, family_tree_id)
    return {"success": True, "count": len(people), "data": people}


@router.get("/tree/layout")
def tree_layout(
    family_tree_id: Optional[int] = None,
    root_id: Optional[int] = None,
    depth: int = Query(default=4, ge=0, le=50),
    include_detached: bool = False,
) -> dict[str, Any]:
    """Nested generation/couple/children structure for drawing the chart.

    Without ``root_id`` the whole scope is laid out. With it, only the
    people reachable from that root within ``depth`` are, and the root's node
    is tagged.
    """

    with db_conn() as conn:
        if root_id is not None:
            require_person(conn, root_id)
            people = get_tree_data_by_root(conn, root_id, depth)
        else:
            people = list_persons(conn, PersonFilter(family_tree_id=family_tree_id))

    layout = build_layout(people, root_id=root_id, include_detached=include_detached)
    return {"success": True, "count": len(people), "data": layout.to_dict()}


@router.get("/tree/generation/{generation}")
def tree_generation(generation: int, family_tree_id: Optional[int] = None) -> dict[str, Any]:
    with db_conn() as conn:
        people = list_persons(conn, PersonFilter(family_tree_id=family_tree_id, generation=generation))
    return {"success": True, "generation": generation, "count": len(people), "data": people}


@router.get("/tree/{root_id}")
def tree_by_root(
    root_id: int,
    depth: int = Query(default=3, ge=0, le=50),
) -> dict[str, Any]:
    with db_conn() as conn:
        people = get_tree_data_by_root(conn, root_id, depth)
    if not people:
        raise NotFound("Person not found")
    return {"success": True, "root_id": root_id, "depth": depth, "count": len(people), "data": people}
