"""CLI admin tool for preparing the database.

Usage:
    python -m familytree.admin init-db
    python -m familytree.admin seed-sample
    python -m familytree.admin list-trees
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any

import psycopg

try:
    from .db import DEFAULT_TREE_ID, get_database_url
    from .family_trees import create_tree, list_trees, update_tree
    from .persons import create_person
    from .relations import set_spouse
except ImportError:  # pragma: no cover
    from db import DEFAULT_TREE_ID, get_database_url
    from family_trees import create_tree, list_trees, update_tree
    from persons import create_person
    from relations import set_spouse

log = logging.getLogger(__name__)

SCHEMA_SQL = Path(__file__).resolve().parent.parent / "sql" / "schema.sql"

# Four generations: (key, name, gender, birth_date, generation, is_alive, phone, father, mother, spouse)
SAMPLE_FAMILY: list[tuple[Any, ...]] = [
    ("great_grandpa", "Kim Dae-ho", "male", "1920-03-10", 1, False, None, None, None, "great_grandma"),
    ("great_grandma", "Choi Young-sook", "female", "1923-07-22", 1, False, None, None, None, None),
    ("grandpa", "Kim Il-jung", "male", "1945-01-15", 2, True, "010-3027-1636", "great_grandpa", "great_grandma", "grandma"),
    ("grand_uncle", "Kim Il-su", "male", "1948-06-12", 2, True, None, "great_grandpa", "great_grandma", "grand_uncle_wife"),
    ("grandma", "Park Soon-ja", "female", "1947-03-20", 2, True, None, None, None, None),
    ("grand_uncle_wife", "Jung Mi-sook", "female", "1950-09-30", 2, True, None, None, None, None),
    ("father", "Kim Chul-su", "male", "1970-05-10", 3, True, "010-1234-5678", "grandpa", "grandma", "mother"),
    ("uncle", "Kim Chul-min", "male", "1972-08-22", 3, True, None, "grandpa", "grandma", None),
    ("aunt", "Kim Mi-young", "female", "1975-02-14", 3, True, None, "grandpa", "grandma", None),
    ("cousin_1", "Kim Jun-ho", "male", "1974-04-08", 3, True, None, "grand_uncle", "grand_uncle_wife", None),
    ("cousin_2", "Kim Su-jin", "female", "1976-11-25", 3, True, None, "grand_uncle", "grand_uncle_wife", None),
    ("mother", "Lee Young-hee", "female", "1973-08-25", 3, True, "010-2345-6789", None, None, None),
    ("son", "Kim Min-su", "male", "2000-12-03", 4, True, "010-3456-7890", "father", "mother", None),
    ("daughter", "Kim Ji-eun", "female", "2003-07-18", 4, True, None, "father", "mother", None),
    ("niece", "Kim Seo-yeon", "female", "2001-09-12", 4, True, None, "cousin_1", None, None),
    ("nephew", "Kim Ha-jun", "male", "2004-03-28", 4, True, None, "cousin_1", None, None),
]


def _connect() -> psycopg.Connection:
    try:
        url = get_database_url()
    except RuntimeError as exc:
        raise SystemExit(str(exc)) from exc
    return psycopg.connect(url)


def apply_schema(conn: psycopg.Connection) -> None:
    conn.execute(SCHEMA_SQL.read_text(encoding="utf-8"))
    conn.execute(
        """
        INSERT INTO family_trees (id, name, description)
        VALUES (%s, %s, %s)
        ON CONFLICT (id) DO NOTHING
        """.strip(),
        (DEFAULT_TREE_ID, "Default family tree", "Created automatically"),
    )
    # Keep the id sequence ahead of the explicitly inserted default row.
    conn.execute(
        "SELECT setval(pg_get_serial_sequence('family_trees', 'id'), GREATEST((SELECT MAX(id) FROM family_trees), 1))"
    )


def seed_sample(conn: psycopg.Connection, *, tree_name: str = "Kim family") -> int | None:
    """Insert the sample family into a new tree; return its id.

    Returns None without writing when the store already holds people.
    """

    if conn.execute("SELECT 1 FROM persons LIMIT 1").fetchone():
        return None

    with conn.transaction():
        tree = create_tree(conn, {"name": tree_name, "description": "Four-generation sample family"})
        ids: dict[str, int] = {}
        for key, name, gender, birth_date, generation, is_alive, phone, father, mother, _spouse in SAMPLE_FAMILY:
            person = create_person(
                conn,
                {
                    "family_tree_id": tree["id"],
                    "name": name,
                    "gender": gender,
                    "birth_date": birth_date,
                    "generation": generation,
                    "is_alive": is_alive,
                    "phone_number": phone,
                    "father_id": ids.get(father) if father else None,
                    "mother_id": ids.get(mother) if mother else None,
                },
            )
            ids[key] = person["id"]

        for key, *_rest, spouse in SAMPLE_FAMILY:
            if spouse:
                set_spouse(conn, ids[key], ids[spouse])

        update_tree(conn, tree["id"], {"root_person_id": ids["great_grandpa"]})

    log.info("Seeded sample family into tree %s (%d people)", tree["id"], len(ids))
    return int(tree["id"])


def cmd_init_db(args: argparse.Namespace) -> None:
    with _connect() as conn:
        apply_schema(conn)
        conn.commit()
    print(f"Schema applied from {SCHEMA_SQL}.")


def cmd_seed_sample(args: argparse.Namespace) -> None:
    with _connect() as conn:
        tree_id = seed_sample(conn, tree_name=args.name)
        conn.commit()
    if tree_id is None:
        print("Persons already exist; sample data not inserted.")
    else:
        print(f"Sample family inserted into tree {tree_id}.")


def cmd_list_trees(args: argparse.Namespace) -> None:
    with _connect() as conn:
        trees = list_trees(conn)

    if not trees:
        print("No family trees.")
        return
    print(f"{'ID':<5} {'Name':<30} {'Members':<8} {'Root':<25}")
    print("-" * 70)
    for t in trees:
        print(f"{t['id']:<5} {t['name']:<30} {t['member_count']:<8} {(t['root_person_name'] or '-'):<25}")


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    parser = argparse.ArgumentParser(description="Family tree admin CLI")
    sub = parser.add_subparsers(dest="command")

    # init-db
    sub.add_parser("init-db", help="Create tables and the default tree")

    # seed-sample
    p = sub.add_parser("seed-sample", help="Insert a sample family when the store is empty")
    p.add_argument("--name", default="Kim family", help="Name of the tree to create")

    # list-trees
    sub.add_parser("list-trees", help="List all family trees")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return 1

    dispatch = {
        "init-db": cmd_init_db,
        "seed-sample": cmd_seed_sample,
        "list-trees": cmd_list_trees,
    }
    dispatch[args.command](args)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
