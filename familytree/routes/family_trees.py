from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Query

try:
    from ..db import DEFAULT_TREE_ID, db_conn
    from ..errors import Forbidden, NotFound
    from ..family_trees import (
        clone_tree,
        create_tree,
        delete_tree,
        get_members,
        list_trees,
        require_tree,
        tree_statistics,
        update_tree,
    )
    from ..models import CloneBody, FamilyTreeBody, PersonFilter
    from ..persons import get_tree_data
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from db import DEFAULT_TREE_ID, db_conn
    from errors import Forbidden, NotFound
    from family_trees import (
        clone_tree,
        create_tree,
        delete_tree,
        get_members,
        list_trees,
        require_tree,
        tree_statistics,
        update_tree,
    )
    from models import CloneBody, FamilyTreeBody, PersonFilter
    from persons import get_tree_data

router = APIRouter(tags=["familytrees"])


@router.get("/familytrees")
def trees_list() -> dict[str, Any]:
    with db_conn() as conn:
        trees = list_trees(conn)
    return {"success": True, "count": len(trees), "data": trees}


@router.get("/familytrees/{tree_id}")
def trees_get(tree_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        tree = require_tree(conn, tree_id)
    return {"success": True, "data": tree}


@router.get("/familytrees/{tree_id}/members")
def trees_members(
    tree_id: int,
    generation: Optional[int] = Query(default=None, ge=1),
    is_alive: Optional[bool] = None,
    gender: Optional[str] = None,
    search: Optional[str] = Query(default=None, max_length=200),
) -> dict[str, Any]:
    f = PersonFilter(generation=generation, is_alive=is_alive, gender=gender, search=search)
    with db_conn() as conn:
        members = get_members(conn, tree_id, f)
    return {"success": True, "count": len(members), "data": members}


@router.get("/familytrees/{tree_id}/statistics")
def trees_statistics(tree_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        stats = tree_statistics(conn, tree_id)
    return {"success": True, "data": stats}


@router.get("/familytrees/{tree_id}/tree")
def trees_tree_data(tree_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        require_tree(conn, tree_id)
        people = get_tree_data(conn, tree_id)
    return {"success": True, "count": len(people), "data": people}


@router.post("/familytrees", status_code=201)
def trees_create(body: FamilyTreeBody) -> dict[str, Any]:
    with db_conn() as conn:
        tree = create_tree(conn, body.model_dump(exclude_unset=True))
        conn.commit()
    return {"success": True, "data": tree, "message": "Family tree created"}


@router.put("/familytrees/{tree_id}")
def trees_update(tree_id: int, body: FamilyTreeBody) -> dict[str, Any]:
    with db_conn() as conn:
        tree = update_tree(conn, tree_id, body.model_dump(exclude_unset=True))
        conn.commit()
    return {"success": True, "data": tree, "message": "Family tree updated"}


@router.delete("/familytrees/{tree_id}")
def trees_delete(tree_id: int) -> dict[str, Any]:
    if tree_id == DEFAULT_TREE_ID:
        raise Forbidden("The default family tree cannot be deleted")

    with db_conn() as conn:
        if not delete_tree(conn, tree_id):
            raise NotFound("Family tree not found")
        conn.commit()
    return {"success": True, "message": "Family tree deleted"}


@router.post("/familytrees/{tree_id}/clone", status_code=201)
def trees_clone(tree_id: int, body: Optional[CloneBody] = None) -> dict[str, Any]:
    with db_conn() as conn:
        tree = clone_tree(conn, tree_id, body.name if body else None)
        conn.commit()
    return {"success": True, "data": tree, "message": "Family tree cloned"}
