from __future__ import annotations

import pytest

from familytree.errors import NotFound, ValidationError
from familytree.family_trees import (
    _remap_links,
    clone_tree,
    create_tree,
    delete_tree,
    get_members,
    get_tree,
    list_trees,
    tree_statistics,
    update_tree,
)
from familytree.models import PersonFilter


@pytest.fixture()
def source(db):
    tree_id = db.add_tree("Kim family", description="Four generations")
    gp = db.add_person("Grandpa", family_tree_id=tree_id, gender="male", generation=1)
    gm = db.add_person("Grandma", family_tree_id=tree_id, gender="female", generation=1, spouse_id=gp)
    db.person(gp)["spouse_id"] = gm
    dad = db.add_person("Dad", family_tree_id=tree_id, gender="male", generation=2, father_id=gp, mother_id=gm)
    kid = db.add_person("Kid", family_tree_id=tree_id, generation=3, father_id=dad, notes="first")
    db.tables["family_trees"][tree_id]["root_person_id"] = gp
    return {"tree": tree_id, "gp": gp, "gm": gm, "dad": dad, "kid": kid}


def test_remap_links_drops_targets_outside_the_copy() -> None:
    members = [
        {"id": 1, "father_id": None, "mother_id": None, "spouse_id": 2},
        {"id": 2, "father_id": None, "mother_id": None, "spouse_id": 1},
        {"id": 3, "father_id": 1, "mother_id": 99, "spouse_id": None},
        {"id": 4, "father_id": 99, "mother_id": None, "spouse_id": None},
    ]
    id_map = {1: 11, 2: 12, 3: 13, 4: 14}

    assert _remap_links(members, id_map) == [
        (11, {"spouse_id": 12}),
        (12, {"spouse_id": 11}),
        (13, {"father_id": 11}),
    ]


def test_clone_preserves_topology_under_new_ids(db, source) -> None:
    clone = clone_tree(db, source["tree"], "Kim family 2")

    assert clone["name"] == "Kim family 2"
    assert clone["description"] == "Four generations (copy)"
    assert clone["member_count"] == get_tree(db, source["tree"])["member_count"] == 4

    originals = {p["id"] for p in get_members(db, source["tree"])}
    copies = {p["name"]: p for p in get_members(db, clone["id"])}
    assert originals.isdisjoint({p["id"] for p in copies.values()})

    assert copies["Dad"]["father_id"] == copies["Grandpa"]["id"]
    assert copies["Dad"]["mother_id"] == copies["Grandma"]["id"]
    assert copies["Kid"]["father_id"] == copies["Dad"]["id"]
    assert copies["Grandpa"]["spouse_id"] == copies["Grandma"]["id"]
    assert copies["Grandma"]["spouse_id"] == copies["Grandpa"]["id"]
    assert copies["Kid"]["notes"] == "first"

    assert clone["root_person_id"] == copies["Grandpa"]["id"]
    assert clone["root_person_name"] == "Grandpa"


def test_clone_name_falls_back_to_copy_suffix(db, source) -> None:
    assert clone_tree(db, source["tree"])["name"] == "Kim family (copy)"
    assert clone_tree(db, 1, "  ")["description"] is None


def test_clone_leaves_links_out_of_the_tree_null(db, source) -> None:
    outsider = db.add_person("Outsider", generation=1)
    db.person(source["kid"])["mother_id"] = outsider

    clone = clone_tree(db, source["tree"])
    kid = next(p for p in get_members(db, clone["id"]) if p["name"] == "Kid")
    assert kid["mother_id"] is None


def test_clone_missing_tree(db) -> None:
    with pytest.raises(NotFound):
        clone_tree(db, 999)


def test_clone_failure_rolls_back(db, source) -> None:
    import psycopg

    trees_before = set(db.tables["family_trees"])
    people_before = set(db.tables["persons"])
    db.fail_when = lambda q, params: q.startswith("update family_trees set root_person_id")

    with pytest.raises(psycopg.OperationalError):
        clone_tree(db, source["tree"])

    assert set(db.tables["family_trees"]) == trees_before
    assert set(db.tables["persons"]) == people_before


def test_delete_removes_members(db, source) -> None:
    assert delete_tree(db, source["tree"]) is True
    assert get_tree(db, source["tree"]) is None
    assert all(p["family_tree_id"] != source["tree"] for p in db.tables["persons"].values())
    assert delete_tree(db, source["tree"]) is False


def test_list_trees_annotates_root_and_member_count(db, source) -> None:
    trees = {t["id"]: t for t in list_trees(db)}
    assert trees[source["tree"]]["member_count"] == 4
    assert trees[source["tree"]]["root_person_name"] == "Grandpa"
    assert trees[1]["member_count"] == 0
    assert list(trees)[0] == source["tree"]


def test_create_and_update(db, source) -> None:
    with pytest.raises(ValidationError):
        create_tree(db, {"description": "no name"})

    tree = create_tree(db, {"name": "Park family", "description": "maternal side"})
    assert tree["member_count"] == 0 and tree["root_person_id"] is None

    assert update_tree(db, tree["id"], {}) == tree

    park = db.add_person("Park Soon-ja", family_tree_id=tree["id"], generation=1)
    updated = update_tree(db, tree["id"], {"description": None, "root_person_id": park})
    assert updated["name"] == "Park family"
    assert updated["description"] is None
    assert updated["root_person_name"] == "Park Soon-ja"

    with pytest.raises(NotFound):
        update_tree(db, 999, {"name": "x"})
    with pytest.raises(ValidationError):
        update_tree(db, tree["id"], {"name": ""})


def test_update_rejects_root_from_another_tree(db, source) -> None:
    tree = create_tree(db, {"name": "Park family"})
    with pytest.raises(ValidationError):
        update_tree(db, tree["id"], {"root_person_id": source["gp"]})
    with pytest.raises(ValidationError):
        update_tree(db, tree["id"], {"root_person_id": 999})
    assert get_tree(db, tree["id"])["root_person_id"] is None


def test_members_and_statistics_are_scoped(db, source) -> None:
    males = get_members(db, source["tree"], PersonFilter(gender="male"))
    assert [p["name"] for p in males] == ["Grandpa", "Dad"]

    stats = tree_statistics(db, source["tree"])
    assert stats["total"] == 4 and stats["generations"] == 3

    with pytest.raises(NotFound):
        get_members(db, 999)
    with pytest.raises(NotFound):
        tree_statistics(db, 999)
