from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

import psycopg

try:
    from .errors import NotFound, ValidationError
    from .models import PERSON_LINK_FIELDS, PERSON_SCALAR_FIELDS, PersonFilter
    from .persons import get_person, get_statistics, list_persons
    from .serialize import _family_tree_row_to_dict
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from errors import NotFound, ValidationError
    from models import PERSON_LINK_FIELDS, PERSON_SCALAR_FIELDS, PersonFilter
    from persons import get_person, get_statistics, list_persons
    from serialize import _family_tree_row_to_dict

log = logging.getLogger(__name__)

_TREE_SELECT = """
SELECT ft.id, ft.name, ft.description, ft.root_person_id, ft.created_at, ft.updated_at,
       p.name AS root_person_name,
       (SELECT COUNT(*) FROM persons m WHERE m.family_tree_id = ft.id) AS member_count
FROM family_trees ft
LEFT JOIN persons p ON p.id = ft.root_person_id
""".strip()

_TREE_FIELDS = ("name", "description", "root_person_id")


def list_trees(conn: psycopg.Connection) -> list[dict[str, Any]]:
    rows = conn.execute(f"{_TREE_SELECT} ORDER BY ft.created_at DESC, ft.id DESC").fetchall()
    return [_family_tree_row_to_dict(tuple(r)) for r in rows]


def get_tree(conn: psycopg.Connection, tree_id: int) -> dict[str, Any] | None:
    row = conn.execute(f"{_TREE_SELECT} WHERE ft.id = %s", (tree_id,)).fetchone()
    return _family_tree_row_to_dict(tuple(row)) if row else None


def require_tree(conn: psycopg.Connection, tree_id: int) -> dict[str, Any]:
    tree = get_tree(conn, tree_id)
    if tree is None:
        raise NotFound("Family tree not found")
    return tree


def get_members(conn: psycopg.Connection, tree_id: int, f: PersonFilter | None = None) -> list[dict[str, Any]]:
    require_tree(conn, tree_id)
    scoped = replace(f, family_tree_id=tree_id) if f else PersonFilter(family_tree_id=tree_id)
    return list_persons(conn, scoped)


def tree_statistics(conn: psycopg.Connection, tree_id: int) -> dict[str, int]:
    require_tree(conn, tree_id)
    return get_statistics(conn, tree_id)


def _check_root(conn: psycopg.Connection, root_person_id: int | None, tree_id: int | None = None) -> None:
    if not root_person_id:
        return
    if tree_id is None:
        if get_person(conn, root_person_id) is None:
            raise ValidationError(f"root_person_id {root_person_id} does not exist")
        return
    row = conn.execute(
        "SELECT 1 FROM persons WHERE id = %s AND family_tree_id = %s",
        (root_person_id, tree_id),
    ).fetchone()
    if row is None:
        raise ValidationError(f"root_person_id {root_person_id} is not a member of tree {tree_id}")


def create_tree(conn: psycopg.Connection, data: dict[str, Any]) -> dict[str, Any]:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    _check_root(conn, data.get("root_person_id"))

    row = conn.execute(
        """
        INSERT INTO family_trees (name, description, root_person_id)
        VALUES (%s, %s, %s)
        RETURNING id
        """.strip(),
        (name, data.get("description") or None, data.get("root_person_id") or None),
    ).fetchone()
    tree_id = int(row[0])

    log.info("Created family tree %s (%s)", tree_id, name)
    return require_tree(conn, tree_id)


def update_tree(conn: psycopg.Connection, tree_id: int, data: dict[str, Any]) -> dict[str, Any]:
    require_tree(conn, tree_id)
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("name cannot be empty")
    _check_root(conn, data.get("root_person_id"), tree_id)

    fields = [k for k in _TREE_FIELDS if k in data]
    if not fields:
        return require_tree(conn, tree_id)

    conn.execute(
        f"UPDATE family_trees SET {', '.join(f'{k} = %s' for k in fields)} WHERE id = %s",
        (*(data[k] for k in fields), tree_id),
    )
    return require_tree(conn, tree_id)


def delete_tree(conn: psycopg.Connection, tree_id: int) -> bool:
    """Delete a tree and, through ON DELETE CASCADE, all of its people.

    Only existence is checked here; the default tree is guarded by the route.
    """

    if get_tree(conn, tree_id) is None:
        return False
    cur = conn.execute("DELETE FROM family_trees WHERE id = %s", (tree_id,))
    log.info("Deleted family tree %s", tree_id)
    return cur.rowcount > 0


def _remap_links(
    members: list[dict[str, Any]],
    id_map: dict[int, int],
) -> list[tuple[int, dict[str, int]]]:
    """Translate each member's parent/spouse ids into the cloned id space.

    Returns ``(new_id, {column: new_target})`` for every member with at least
    one link whose target was cloned too. Links pointing outside the copied
    set are dropped.
    """

    out: list[tuple[int, dict[str, int]]] = []
    for m in members:
        links: dict[str, int] = {}
        for key in PERSON_LINK_FIELDS:
            target = m.get(key)
            if target and target in id_map:
                links[key] = id_map[target]
        if links:
            out.append((id_map[m["id"]], links))
    return out


def clone_tree(conn: psycopg.Connection, tree_id: int, new_name: str | None = None) -> dict[str, Any]:
    """Deep-copy a tree and its people under fresh ids.

    People are inserted without links first, then a second pass writes the
    remapped father/mother/spouse ids, so insert order does not matter.
    """

    source = require_tree(conn, tree_id)
    name = (new_name or "").strip() or f"{source['name']} (copy)"
    description = f"{source['description']} (copy)" if source.get("description") else None

    members = list_persons(conn, PersonFilter(family_tree_id=tree_id))
    columns = ("family_tree_id", *PERSON_SCALAR_FIELDS)

    with conn.transaction():
        row = conn.execute(
            "INSERT INTO family_trees (name, description) VALUES (%s, %s) RETURNING id",
            (name, description),
        ).fetchone()
        new_tree_id = int(row[0])

        id_map: dict[int, int] = {}
        for m in members:
            new_row = conn.execute(
                f"""
                INSERT INTO persons ({", ".join(columns)})
                VALUES ({", ".join(["%s"] * len(columns))})
                RETURNING id
                """.strip(),
                (new_tree_id, *(m.get(k) for k in PERSON_SCALAR_FIELDS)),
            ).fetchone()
            id_map[m["id"]] = int(new_row[0])

        for new_id, links in _remap_links(members, id_map):
            conn.execute(
                f"UPDATE persons SET {', '.join(f'{k} = %s' for k in links)} WHERE id = %s",
                (*links.values(), new_id),
            )

        root_id = source.get("root_person_id")
        if root_id and root_id in id_map:
            conn.execute(
                "UPDATE family_trees SET root_person_id = %s WHERE id = %s",
                (id_map[root_id], new_tree_id),
            )

    log.info("Cloned family tree %s -> %s (%d people)", tree_id, new_tree_id, len(id_map))
    return require_tree(conn, new_tree_id)
