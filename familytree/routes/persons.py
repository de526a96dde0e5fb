from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Query

try:
    from ..db import db_conn
    from ..errors import NotFound, ValidationError
    from ..models import ParentsBody, PersonBody, PersonFilter, SpouseBody
    from ..persons import (
        create_person,
        delete_person,
        get_family,
        get_statistics,
        list_persons,
        require_person,
        set_parents,
        update_person,
    )
    from ..relations import remove_spouse, set_spouse
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from db import db_conn
    from errors import NotFound, ValidationError
    from models import ParentsBody, PersonBody, PersonFilter, SpouseBody
    from persons import (
        create_person,
        delete_person,
        get_family,
        get_statistics,
        list_persons,
        require_person,
        set_parents,
        update_person,
    )
    from relations import remove_spouse, set_spouse

router = APIRouter(tags=["persons"])


@router.get("/persons")
def persons_list(
    family_tree_id: Optional[int] = None,
    generation: Optional[int] = Query(default=None, ge=1),
    is_alive: Optional[bool] = None,
    gender: Optional[str] = None,
    search: Optional[str] = Query(default=None, max_length=200),
) -> dict[str, Any]:
    f = PersonFilter(
        family_tree_id=family_tree_id,
        generation=generation,
        is_alive=is_alive,
        gender=gender,
        search=search,
    )
    with db_conn() as conn:
        people = list_persons(conn, f)
    return {"success": True, "count": len(people), "data": people}


# Declared before /persons/{person_id} so "stats" is not parsed as an id.
@router.get("/persons/stats")
def persons_stats(family_tree_id: Optional[int] = None) -> dict[str, Any]:
    with db_conn() as conn:
        stats = get_statistics(conn, family_tree_id)
    return {"success": True, "data": stats}


@router.get("/persons/{person_id}")
def persons_get(person_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        person = require_person(conn, person_id)
    return {"success": True, "data": person}


@router.get("/persons/{person_id}/family")
def persons_family(person_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        family = get_family(conn, person_id)
    return {"success": True, "data": family}


@router.post("/persons", status_code=201)
def persons_create(body: PersonBody) -> dict[str, Any]:
    with db_conn() as conn:
        person = create_person(conn, body.model_dump(exclude_unset=True))
        conn.commit()
    return {"success": True, "data": person, "message": "Person created"}


@router.put("/persons/{person_id}")
def persons_update(person_id: int, body: PersonBody) -> dict[str, Any]:
    with db_conn() as conn:
        person = update_person(conn, person_id, body.model_dump(exclude_unset=True))
        conn.commit()
    return {"success": True, "data": person, "message": "Person updated"}


@router.delete("/persons/{person_id}")
def persons_delete(person_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        if not delete_person(conn, person_id):
            raise NotFound("Person not found")
        conn.commit()
    return {"success": True, "message": "Person deleted"}


@router.post("/persons/{person_id}/spouse")
def persons_link_spouse(person_id: int, body: SpouseBody) -> dict[str, Any]:
    if not body.spouse_id:
        raise ValidationError("spouse_id is required")
    if body.spouse_id == person_id:
        raise ValidationError("a person cannot be their own spouse")

    with db_conn() as conn:
        require_person(conn, person_id)
        require_person(conn, body.spouse_id, label="Spouse")
        set_spouse(conn, person_id, body.spouse_id)
        conn.commit()
        person = require_person(conn, person_id)
    return {"success": True, "data": person, "message": "Spouse linked"}


@router.delete("/persons/{person_id}/spouse")
def persons_unlink_spouse(person_id: int) -> dict[str, Any]:
    with db_conn() as conn:
        require_person(conn, person_id)
        remove_spouse(conn, person_id)
        conn.commit()
        person = require_person(conn, person_id)
    return {"success": True, "data": person, "message": "Spouse unlinked"}


@router.post("/persons/{person_id}/parents")
def persons_set_parents(person_id: int, body: ParentsBody) -> dict[str, Any]:
    with db_conn() as conn:
        person = set_parents(conn, person_id, body.model_dump(exclude_unset=True))
        conn.commit()
    return {"success": True, "data": person, "message": "Parents updated"}
