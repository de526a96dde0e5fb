from __future__ import annotations

from typing import Any

import psycopg
from fastapi import APIRouter

try:
    from ..db import db_conn
    from ..errors import NotFound, ValidationError
    from ..models import ParentChildBody, PersonPairBody, RelationBody
    from ..persons import require_person
    from ..relations import (
        create_parent_child,
        create_relationship,
        create_sibling,
        create_spouse,
        delete_relationship,
        delete_relationship_by_details,
        delete_relationships_for_person,
        get_relationship,
        list_relationships,
        related_persons,
        relationship_statistics,
        relationships_by_type,
        relationships_for_person,
    )
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from db import db_conn
    from errors import NotFound, ValidationError
    from models import ParentChildBody, PersonPairBody, RelationBody
    from persons import require_person
    from relations import (
        create_parent_child,
        create_relationship,
        create_sibling,
        create_spouse,
        delete_relationship,
        delete_relationship_by_details,
        delete_relationships_for_person,
        get_relationship,
        list_relationships,
        related_persons,
        relationship_statistics,
        relationships_by_type,
        relationships_for_person,
    )

router = APIRouter(tags=["relations"])


def _require_pair(conn: psycopg.Connection, a: int | None, b: int | None, names: str) -> tuple[int, int]:
    if not a or not b:
        raise ValidationError(f"{names} are required")
    require_person(conn, a)
    require_person(conn, b)
    return a, b


@router.get("/relations")
def relations_list() -> dict[str, Any]:
    with db_conn() as conn:
        facts = list_relationships(conn)
    return {"success": True, "count": len(facts), "data": facts}


@router.get("/relations/stats")
def relations_stats() -> dict[str, Any]:
    with db_conn() as conn:
        stats = relationship_statistics(conn)
    return {"success": True, "data": stats}


@router.get("/relations/person/{person_id}")
def relations_for_person(person_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        facts = relationships_for_person(conn, person_id)
    return {"success": True, "count": len(facts), "data": facts}


@router.get("/relations/person/{person_id}/detailed")
def relations_for_person_detailed(person_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        facts = related_persons(conn, person_id)
    return {"success": True, "count": len(facts), "data": facts}


@router.get("/relations/person/{person_id}/type/{relationship_type}")
def relations_for_person_by_type(person_id: int, relationship_type: str) -> dict[str, Any]:
    with db_conn() as conn:
        facts = relationships_by_type(conn, person_id, relationship_type)
    return {"success": True, "count": len(facts), "data": facts}


@router.post("/relations", status_code=201)
def relations_create(body: RelationBody) -> dict[str, Any]:
    if not body.person_id or not body.related_person_id or not body.relationship_type:
        raise ValidationError("person_id, related_person_id and relationship_type are required")

    with db_conn() as conn:
        _require_pair(conn, body.person_id, body.related_person_id, "person_id and related_person_id")
        fact = create_relationship(conn, body.person_id, body.related_person_id, body.relationship_type)
        conn.commit()
    return {"success": True, "data": fact, "message": "Relationship created"}


@router.post("/relations/parent-child", status_code=201)
def relations_create_parent_child(body: ParentChildBody) -> dict[str, Any]:
    with db_conn() as conn:
        parent_id, child_id = _require_pair(conn, body.parent_id, body.child_id, "parent_id and child_id")
        facts = create_parent_child(conn, parent_id, child_id)
        conn.commit()
    return {"success": True, "data": facts, "message": "Parent-child relationship created"}


@router.post("/relations/sibling", status_code=201)
def relations_create_sibling(body: PersonPairBody) -> dict[str, Any]:
    with db_conn() as conn:
        a, b = _require_pair(conn, body.person_id_1, body.person_id_2, "person_id_1 and person_id_2")
        facts = create_sibling(conn, a, b)
        conn.commit()
    return {"success": True, "data": facts, "message": "Sibling relationship created"}


@router.post("/relations/spouse", status_code=201)
def relations_create_spouse(body: PersonPairBody) -> dict[str, Any]:
    with db_conn() as conn:
        a, b = _require_pair(conn, body.person_id_1, body.person_id_2, "person_id_1 and person_id_2")
        facts = create_spouse(conn, a, b)
        conn.commit()
    return {"success": True, "data": facts, "message": "Spouse relationship created"}


@router.delete("/relations/person/{person_id}")
def relations_delete_for_person(person_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        count = delete_relationships_for_person(conn, person_id)
        conn.commit()
    return {"success": True, "count": count, "message": f"{count} relationships deleted"}


@router.delete("/relations/{relationship_id}")
def relations_delete(relationship_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        if not delete_relationship(conn, relationship_id):
            raise NotFound("Relationship not found")
        conn.commit()
    return {"success": True, "message": "Relationship deleted"}


@router.get("/relations/{relationship_id}")
def relations_get(relationship_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        fact = get_relationship(conn, relationship_id)
    if fact is None:
        raise NotFound("Relationship not found")
    return {"success": True, "data": fact}


@router.delete("/relations")
def relations_delete_by_details(
    person_id: int,
    related_person_id: int,
    relationship_type: str,
) -> dict[str, Any]:
    with db_conn() as conn:
        if not delete_relationship_by_details(conn, person_id, related_person_id, relationship_type):
            raise NotFound("Relationship not found")
        conn.commit()
    return {"success": True, "message": "Relationship deleted"}
