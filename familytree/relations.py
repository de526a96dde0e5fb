"""Symmetric relationship bookkeeping.

Two independent representations of family structure live here:

- the spouse pointer on ``persons`` (kept symmetric by ``set_spouse`` /
  ``remove_spouse``), and
- the ``relationships`` fact table, an explicit edge list whose pair helpers
  always write both directions.

The two are never reconciled with each other. Every multi-write runs inside
``conn.transaction()`` so either both halves land or neither does.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg

try:
    from .errors import ValidationError
    from .models import RELATIONSHIP_TYPES
    from .serialize import PERSON_SELECT, RELATIONSHIP_SELECT, _person_row_to_dict, _relationship_row_to_dict
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from errors import ValidationError
    from models import RELATIONSHIP_TYPES
    from serialize import PERSON_SELECT, RELATIONSHIP_SELECT, _person_row_to_dict, _relationship_row_to_dict

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Spouse pointer (persons.spouse_id)
# ---------------------------------------------------------------------------


def set_spouse(conn: psycopg.Connection, person_id: int | None, spouse_id: int | None) -> None:
    """Point two people at each other.

    Does nothing when either id is missing. A previous partner of either side
    is not touched, so their pointer can be left one-directional.
    """

    if not person_id or not spouse_id:
        return

    with conn.transaction():
        conn.execute("UPDATE persons SET spouse_id = %s WHERE id = %s", (spouse_id, person_id))
        conn.execute("UPDATE persons SET spouse_id = %s WHERE id = %s", (person_id, spouse_id))

    log.info("Linked spouses %s <-> %s", person_id, spouse_id)


def remove_spouse(conn: psycopg.Connection, person_id: int) -> None:
    """Clear the spouse pointer on a person and on whoever it points at."""

    row = conn.execute("SELECT spouse_id FROM persons WHERE id = %s", (person_id,)).fetchone()
    if not row or not row[0]:
        return
    spouse_id = row[0]

    with conn.transaction():
        conn.execute("UPDATE persons SET spouse_id = %s WHERE id = %s", (None, spouse_id))
        conn.execute("UPDATE persons SET spouse_id = %s WHERE id = %s", (None, person_id))

    log.info("Unlinked spouses %s <-> %s", person_id, spouse_id)


# ---------------------------------------------------------------------------
# Fact table (relationships)
# ---------------------------------------------------------------------------


def _check_type(relationship_type: str) -> None:
    if relationship_type not in RELATIONSHIP_TYPES:
        raise ValidationError(
            f"relationship_type must be one of: {', '.join(RELATIONSHIP_TYPES)}"
        )


def create_relationship(
    conn: psycopg.Connection,
    person_id: int,
    related_person_id: int,
    relationship_type: str,
) -> dict[str, Any]:
    """Insert one fact; an identical existing fact is returned instead of failing."""

    _check_type(relationship_type)

    row = conn.execute(
        f"""
        INSERT INTO relationships (person_id, related_person_id, relationship_type)
        VALUES (%s, %s, %s)
        ON CONFLICT (person_id, related_person_id, relationship_type) DO NOTHING
        RETURNING {RELATIONSHIP_SELECT}
        """.strip(),
        (person_id, related_person_id, relationship_type),
    ).fetchone()

    if row is None:
        row = conn.execute(
            f"""
            SELECT {RELATIONSHIP_SELECT}
            FROM relationships
            WHERE person_id = %s AND related_person_id = %s AND relationship_type = %s
            """.strip(),
            (person_id, related_person_id, relationship_type),
        ).fetchone()

    return _relationship_row_to_dict(tuple(row))


def _create_pair(
    conn: psycopg.Connection,
    a: int,
    b: int,
    forward_type: str,
    backward_type: str,
) -> list[dict[str, Any]]:
    with conn.transaction():
        forward = create_relationship(conn, a, b, forward_type)
        backward = create_relationship(conn, b, a, backward_type)
    return [forward, backward]


def create_parent_child(conn: psycopg.Connection, parent_id: int, child_id: int) -> list[dict[str, Any]]:
    # The parent row records a "child" fact and the child row a "parent" fact.
    return _create_pair(conn, parent_id, child_id, "child", "parent")


def create_sibling(conn: psycopg.Connection, person_id_1: int, person_id_2: int) -> list[dict[str, Any]]:
    return _create_pair(conn, person_id_1, person_id_2, "sibling", "sibling")


def create_spouse(conn: psycopg.Connection, person_id_1: int, person_id_2: int) -> list[dict[str, Any]]:
    return _create_pair(conn, person_id_1, person_id_2, "spouse", "spouse")


def list_relationships(conn: psycopg.Connection) -> list[dict[str, Any]]:
    rows = conn.execute(
        f"SELECT {RELATIONSHIP_SELECT} FROM relationships ORDER BY created_at DESC, id DESC"
    ).fetchall()
    return [_relationship_row_to_dict(tuple(r)) for r in rows]


def get_relationship(conn: psycopg.Connection, relationship_id: int) -> dict[str, Any] | None:
    row = conn.execute(
        f"SELECT {RELATIONSHIP_SELECT} FROM relationships WHERE id = %s",
        (relationship_id,),
    ).fetchone()
    return _relationship_row_to_dict(tuple(row)) if row else None


def relationships_for_person(conn: psycopg.Connection, person_id: int) -> list[dict[str, Any]]:
    rows = conn.execute(
        f"""
        SELECT {RELATIONSHIP_SELECT}
        FROM relationships
        WHERE person_id = %s OR related_person_id = %s
        ORDER BY id
        """.strip(),
        (person_id, person_id),
    ).fetchall()
    return [_relationship_row_to_dict(tuple(r)) for r in rows]


def relationships_by_type(conn: psycopg.Connection, person_id: int, relationship_type: str) -> list[dict[str, Any]]:
    _check_type(relationship_type)
    rows = conn.execute(
        f"""
        SELECT {RELATIONSHIP_SELECT}
        FROM relationships
        WHERE person_id = %s AND relationship_type = %s
        ORDER BY id
        """.strip(),
        (person_id, relationship_type),
    ).fetchall()
    return [_relationship_row_to_dict(tuple(r)) for r in rows]


def related_persons(conn: psycopg.Connection, person_id: int) -> list[dict[str, Any]]:
    """Each fact touching ``person_id`` together with the person on the other end."""

    facts = relationships_for_person(conn, person_id)
    other_ids = sorted(
        {f["related_person_id"] if f["person_id"] == person_id else f["person_id"] for f in facts}
    )

    people_by_id: dict[int, dict[str, Any]] = {}
    if other_ids:
        rows = conn.execute(
            f"SELECT {PERSON_SELECT} FROM persons WHERE id = ANY(%s)",
            (other_ids,),
        ).fetchall()
        for r in rows:
            p = _person_row_to_dict(tuple(r))
            people_by_id[p["id"]] = p

    out: list[dict[str, Any]] = []
    for f in facts:
        other = f["related_person_id"] if f["person_id"] == person_id else f["person_id"]
        out.append(
            {
                "relationship_id": f["id"],
                "relationship_type": f["relationship_type"],
                "person": people_by_id.get(other),
                "created_at": f["created_at"],
            }
        )
    return out


def delete_relationship(conn: psycopg.Connection, relationship_id: int) -> bool:
    cur = conn.execute("DELETE FROM relationships WHERE id = %s", (relationship_id,))
    return cur.rowcount > 0


def delete_relationship_by_details(
    conn: psycopg.Connection,
    person_id: int,
    related_person_id: int,
    relationship_type: str,
) -> bool:
    cur = conn.execute(
        """
        DELETE FROM relationships
        WHERE person_id = %s AND related_person_id = %s AND relationship_type = %s
        """.strip(),
        (person_id, related_person_id, relationship_type),
    )
    return cur.rowcount > 0


def delete_relationships_for_person(conn: psycopg.Connection, person_id: int) -> int:
    cur = conn.execute(
        "DELETE FROM relationships WHERE person_id = %s OR related_person_id = %s",
        (person_id, person_id),
    )
    return int(cur.rowcount or 0)


def relationship_statistics(conn: psycopg.Connection) -> dict[str, int]:
    rows = conn.execute(
        "SELECT relationship_type, COUNT(*) FROM relationships GROUP BY relationship_type"
    ).fetchall()

    out = {t: 0 for t in RELATIONSHIP_TYPES}
    out["total"] = 0
    for relationship_type, count in rows:
        out[relationship_type] = int(count or 0)
        out["total"] += int(count or 0)
    return out
