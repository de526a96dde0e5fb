from __future__ import annotations

from datetime import datetime
from typing import Any

# Column order shared by every SELECT against the persons table.
PERSON_COLUMNS: tuple[str, ...] = (
    "id",
    "family_tree_id",
    "name",
    "gender",
    "birth_date",
    "death_date",
    "is_alive",
    "phone_number",
    "email",
    "address",
    "occupation",
    "notes",
    "photo",
    "father_id",
    "mother_id",
    "spouse_id",
    "generation",
    "created_at",
    "updated_at",
)
PERSON_SELECT = ", ".join(PERSON_COLUMNS)

RELATIONSHIP_COLUMNS: tuple[str, ...] = (
    "id",
    "person_id",
    "related_person_id",
    "relationship_type",
    "created_at",
)
RELATIONSHIP_SELECT = ", ".join(RELATIONSHIP_COLUMNS)

FAMILY_TREE_COLUMNS: tuple[str, ...] = (
    "id",
    "name",
    "description",
    "root_person_id",
    "created_at",
    "updated_at",
    "root_person_name",
    "member_count",
)


def _ts(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _person_row_to_dict(r: tuple[Any, ...]) -> dict[str, Any]:
    person = dict(zip(PERSON_COLUMNS, r))
    person["is_alive"] = bool(person["is_alive"]) if person["is_alive"] is not None else None
    person["created_at"] = _ts(person["created_at"])
    person["updated_at"] = _ts(person["updated_at"])
    return person


def _relationship_row_to_dict(r: tuple[Any, ...]) -> dict[str, Any]:
    rel = dict(zip(RELATIONSHIP_COLUMNS, r))
    rel["created_at"] = _ts(rel["created_at"])
    return rel


def _family_tree_row_to_dict(r: tuple[Any, ...]) -> dict[str, Any]:
    tree = dict(zip(FAMILY_TREE_COLUMNS, r))
    tree["created_at"] = _ts(tree["created_at"])
    tree["updated_at"] = _ts(tree["updated_at"])
    tree["member_count"] = int(tree["member_count"] or 0)
    return tree
