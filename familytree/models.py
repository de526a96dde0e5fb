"""Request bodies and query filters.

Every body is a partial structure: handlers pass ``model_dump(exclude_unset=True)``
to the repositories so a field that was not sent stays distinct from a field
that was sent as ``null``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, Field

Gender = Literal["male", "female", "other"]
RelationshipType = Literal["parent", "child", "spouse", "sibling"]

RELATIONSHIP_TYPES: tuple[str, ...] = ("parent", "child", "spouse", "sibling")

# Scalar person columns a client may write. Relationship columns are listed
# separately because they go through the spouse/parent helpers.
PERSON_SCALAR_FIELDS: tuple[str, ...] = (
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
    "generation",
)
PERSON_LINK_FIELDS: tuple[str, ...] = ("father_id", "mother_id", "spouse_id")


@dataclass
class PersonFilter:
    family_tree_id: Optional[int] = None
    generation: Optional[int] = None
    is_alive: Optional[bool] = None
    gender: Optional[str] = None
    search: Optional[str] = None


class PersonBody(BaseModel):
    name: Optional[str] = None
    family_tree_id: Optional[int] = None
    gender: Optional[Gender] = None
    birth_date: Optional[str] = None
    death_date: Optional[str] = None
    is_alive: Optional[bool] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    occupation: Optional[str] = None
    notes: Optional[str] = None
    photo: Optional[str] = None
    father_id: Optional[int] = None
    mother_id: Optional[int] = None
    spouse_id: Optional[int] = None
    generation: Optional[int] = Field(default=None, ge=1)


class SpouseBody(BaseModel):
    spouse_id: Optional[int] = None


class ParentsBody(BaseModel):
    father_id: Optional[int] = None
    mother_id: Optional[int] = None


class FamilyTreeBody(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    root_person_id: Optional[int] = None


class CloneBody(BaseModel):
    name: Optional[str] = None


class RelationBody(BaseModel):
    person_id: Optional[int] = None
    related_person_id: Optional[int] = None
    relationship_type: Optional[str] = None


class ParentChildBody(BaseModel):
    parent_id: Optional[int] = None
    child_id: Optional[int] = None


class PersonPairBody(BaseModel):
    person_id_1: Optional[int] = None
    person_id_2: Optional[int] = None
