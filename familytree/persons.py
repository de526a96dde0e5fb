"""Person repository.

All functions take an open psycopg connection; callers own commit. Partial
updates receive a plain dict built with ``model_dump(exclude_unset=True)``:
a key that is absent leaves the column untouched, a key mapped to ``None``
clears it.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg

try:
    from .db import DEFAULT_TREE_ID
    from .errors import NotFound, ValidationError
    from .graph import collect_subgraph, with_children_ids
    from .models import PERSON_SCALAR_FIELDS, PersonFilter
    from .relations import remove_spouse, set_spouse
    from .serialize import PERSON_SELECT, _person_row_to_dict
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from db import DEFAULT_TREE_ID
    from errors import NotFound, ValidationError
    from graph import collect_subgraph, with_children_ids
    from models import PERSON_SCALAR_FIELDS, PersonFilter
    from relations import remove_spouse, set_spouse
    from serialize import PERSON_SELECT, _person_row_to_dict

log = logging.getLogger(__name__)

_GENDERS = ("male", "female", "other")
# Columns that an update may change but never clear.
_NOT_NULL_FIELDS = ("is_alive", "generation")


def _person_filter_clause(f: PersonFilter) -> tuple[str, list[Any]]:
    """Build `` WHERE ...`` (or an empty string) and its params for a filter."""

    where: list[str] = []
    params: list[Any] = []

    if f.family_tree_id is not None:
        where.append("family_tree_id = %s")
        params.append(f.family_tree_id)
    if f.generation is not None:
        where.append("generation = %s")
        params.append(f.generation)
    if f.is_alive is not None:
        where.append("is_alive = %s")
        params.append(bool(f.is_alive))
    if f.gender:
        where.append("gender = %s")
        params.append(f.gender)
    if f.search:
        where.append("(name ILIKE %s OR phone_number ILIKE %s OR email ILIKE %s)")
        pattern = f"%{f.search}%"
        params.extend([pattern, pattern, pattern])

    if not where:
        return "", params
    return " WHERE " + " AND ".join(where), params


def list_persons(conn: psycopg.Connection, f: PersonFilter | None = None) -> list[dict[str, Any]]:
    clause, params = _person_filter_clause(f or PersonFilter())
    rows = conn.execute(
        f"SELECT {PERSON_SELECT} FROM persons{clause} ORDER BY generation ASC, birth_date ASC",
        tuple(params),
    ).fetchall()
    return [_person_row_to_dict(tuple(r)) for r in rows]


def get_person(conn: psycopg.Connection, person_id: int) -> dict[str, Any] | None:
    row = conn.execute(
        f"SELECT {PERSON_SELECT} FROM persons WHERE id = %s",
        (person_id,),
    ).fetchone()
    return _person_row_to_dict(tuple(row)) if row else None


def require_person(conn: psycopg.Connection, person_id: int, *, label: str = "Person") -> dict[str, Any]:
    person = get_person(conn, person_id)
    if person is None:
        raise NotFound(f"{label} not found")
    return person


def get_family(conn: psycopg.Connection, person_id: int) -> dict[str, Any]:
    person = require_person(conn, person_id)

    def _ref(pid: int | None) -> dict[str, Any] | None:
        return get_person(conn, pid) if pid else None

    children_rows = conn.execute(
        f"""
        SELECT {PERSON_SELECT}
        FROM persons
        WHERE father_id = %s OR mother_id = %s
        ORDER BY birth_date
        """.strip(),
        (person_id, person_id),
    ).fetchall()

    # Each parent is matched in its own slot only; an unset slot matches nobody.
    slots = [(key, person[key]) for key in ("father_id", "mother_id") if person.get(key)]
    siblings: list[dict[str, Any]] = []
    if slots:
        sibling_rows = conn.execute(
            f"""
            SELECT {PERSON_SELECT}
            FROM persons
            WHERE id <> %s AND ({" OR ".join(f"{key} = %s" for key, _ in slots)})
            ORDER BY birth_date
            """.strip(),
            (person_id, *(pid for _, pid in slots)),
        ).fetchall()
        siblings = [_person_row_to_dict(tuple(r)) for r in sibling_rows]

    return {
        "person": person,
        "father": _ref(person.get("father_id")),
        "mother": _ref(person.get("mother_id")),
        "spouse": _ref(person.get("spouse_id")),
        "children": [_person_row_to_dict(tuple(r)) for r in children_rows],
        "siblings": siblings,
    }


def _check_fields(conn: psycopg.Connection, data: dict[str, Any], person_id: int | None = None) -> None:
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("name is required")
    if data.get("gender") is not None and data["gender"] not in _GENDERS:
        raise ValidationError(f"gender must be one of: {', '.join(_GENDERS)}")
    if data.get("generation") is not None and int(data["generation"]) < 1:
        raise ValidationError("generation must be >= 1")
    for key in _NOT_NULL_FIELDS:
        if key in data and data[key] is None and person_id is not None:
            raise ValidationError(f"{key} cannot be null")

    for key in ("father_id", "mother_id", "spouse_id"):
        ref = data.get(key)
        if not ref:
            continue
        if person_id is not None and ref == person_id:
            raise ValidationError(f"{key} cannot reference the person itself")
        if get_person(conn, ref) is None:
            raise ValidationError(f"{key} {ref} does not exist")


def _tree_exists(conn: psycopg.Connection, family_tree_id: int) -> bool:
    return conn.execute("SELECT 1 FROM family_trees WHERE id = %s", (family_tree_id,)).fetchone() is not None


def create_person(conn: psycopg.Connection, data: dict[str, Any]) -> dict[str, Any]:
    if not (data.get("name") or "").strip():
        raise ValidationError("name is required")
    _check_fields(conn, data)

    family_tree_id = data.get("family_tree_id") or DEFAULT_TREE_ID
    if not _tree_exists(conn, family_tree_id):
        raise ValidationError(f"family tree {family_tree_id} does not exist")

    columns = ["family_tree_id"]
    values: list[Any] = [family_tree_id]
    for key in (*PERSON_SCALAR_FIELDS, "father_id", "mother_id"):
        if key in data and data[key] is not None:
            columns.append(key)
            values.append(data[key])

    with conn.transaction():
        row = conn.execute(
            f"""
            INSERT INTO persons ({", ".join(columns)})
            VALUES ({", ".join(["%s"] * len(columns))})
            RETURNING id
            """.strip(),
            tuple(values),
        ).fetchone()
        person_id = int(row[0])
        set_spouse(conn, person_id, data.get("spouse_id"))

    log.info("Created person %s (%s) in tree %s", person_id, data["name"], family_tree_id)
    return require_person(conn, person_id)


def update_person(conn: psycopg.Connection, person_id: int, data: dict[str, Any]) -> dict[str, Any]:
    """Apply a partial update; ``spouse_id`` goes through the symmetric helpers."""

    require_person(conn, person_id)
    _check_fields(conn, data, person_id)
    if data.get("family_tree_id") is not None and not _tree_exists(conn, data["family_tree_id"]):
        raise ValidationError(f"family tree {data['family_tree_id']} does not exist")

    sets: list[str] = []
    params: list[Any] = []
    for key in (*PERSON_SCALAR_FIELDS, "father_id", "mother_id", "family_tree_id"):
        if key not in data:
            continue
        if key in ("name", "family_tree_id") and data[key] is None:
            continue
        sets.append(f"{key} = %s")
        params.append(data[key])

    with conn.transaction():
        if sets:
            conn.execute(
                f"UPDATE persons SET {', '.join(sets)} WHERE id = %s",
                (*params, person_id),
            )
        if "spouse_id" in data:
            if data["spouse_id"]:
                set_spouse(conn, person_id, data["spouse_id"])
            else:
                remove_spouse(conn, person_id)

    return require_person(conn, person_id)


def delete_person(conn: psycopg.Connection, person_id: int) -> bool:
    """Delete a person; return False when there was no such row.

    Only the spouse's back-reference is cleared here. Children's parent columns
    and relationship facts are left to the schema's ON DELETE actions.
    """

    row = conn.execute("SELECT spouse_id FROM persons WHERE id = %s", (person_id,)).fetchone()
    if not row:
        return False
    spouse_id = row[0]

    with conn.transaction():
        if spouse_id:
            conn.execute("UPDATE persons SET spouse_id = %s WHERE id = %s", (None, spouse_id))
        conn.execute("DELETE FROM persons WHERE id = %s", (person_id,))

    log.info("Deleted person %s", person_id)
    return True


def set_parents(conn: psycopg.Connection, person_id: int, data: dict[str, Any]) -> dict[str, Any]:
    person = require_person(conn, person_id)
    parents = {k: data[k] for k in ("father_id", "mother_id") if k in data}
    if not parents:
        return person
    _check_fields(conn, parents, person_id)

    sets = [f"{k} = %s" for k in parents]
    conn.execute(
        f"UPDATE persons SET {', '.join(sets)} WHERE id = %s",
        (*parents.values(), person_id),
    )
    return require_person(conn, person_id)


def get_tree_data(conn: psycopg.Connection, family_tree_id: int | None = None) -> list[dict[str, Any]]:
    return with_children_ids(list_persons(conn, PersonFilter(family_tree_id=family_tree_id)))


def get_tree_data_by_root(
    conn: psycopg.Connection,
    root_id: int,
    depth: int = 3,
    *,
    all_trees: bool = False,
) -> list[dict[str, Any]]:
    """People reachable from ``root_id`` (see ``graph.collect_subgraph``).

    The walk stays inside the root's own tree unless ``all_trees`` is set.
    Returns an empty list when the root does not exist.
    """

    root = get_person(conn, root_id)
    if root is None:
        return []
    scope = None if all_trees else root.get("family_tree_id")
    people = list_persons(conn, PersonFilter(family_tree_id=scope))
    return collect_subgraph(people, root_id, depth=depth)


def get_statistics(conn: psycopg.Connection, family_tree_id: int | None = None) -> dict[str, int]:
    clause, params = _person_filter_clause(PersonFilter(family_tree_id=family_tree_id))
    row = conn.execute(
        f"""
        SELECT COUNT(*),
               COUNT(*) FILTER (WHERE is_alive),
               COUNT(*) FILTER (WHERE gender = 'male'),
               COUNT(*) FILTER (WHERE gender = 'female'),
               MAX(generation)
        FROM persons{clause}
        """.strip(),
        tuple(params),
    ).fetchone()

    total, alive, male, female, max_generation = tuple(row)
    total = int(total or 0)
    alive = int(alive or 0)
    return {
        "total": total,
        "alive": alive,
        "deceased": total - alive,
        "male": int(male or 0),
        "female": int(female or 0),
        "generations": int(max_generation or 0),
    }
