from __future__ import annotations

import copy
import os
import re
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Optional

import psycopg
import pytest

# Route modules mount /uploads at import time; keep that out of the repo.
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="familytree-uploads-"))

from familytree.serialize import PERSON_COLUMNS, RELATIONSHIP_COLUMNS  # noqa: E402

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)

_TABLE_DEFAULTS: dict[str, dict[str, Any]] = {
    "family_trees": {
        "name": None,
        "description": None,
        "root_person_id": None,
    },
    "persons": {c: None for c in PERSON_COLUMNS if c not in ("id", "created_at", "updated_at")}
    | {"family_tree_id": 1, "is_alive": True, "generation": 1},
    "relationships": {c: None for c in RELATIONSHIP_COLUMNS if c not in ("id", "created_at")},
}

_ATOM_RE = re.compile(r"^(\w+)\s*(=\s*any\(%s\)|=\s*%s|<>\s*%s|ilike\s*%s)$")


@dataclass
class _FakeResult:
    rows: list[tuple] = field(default_factory=list)
    rowcount: int = 0

    def fetchone(self) -> Optional[tuple]:
        return self.rows[0] if self.rows else None

    def fetchall(self) -> list[tuple]:
        return list(self.rows)


def _split_top(text: str, sep: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif depth == 0 and text.startswith(sep, i):
            parts.append(text[start:i])
            i += len(sep)
            start = i
            continue
        i += 1
    parts.append(text[start:])
    return [p.strip() for p in parts]


def _unwrap(text: str) -> str:
    text = text.strip()
    while text.startswith("(") and text.endswith(")"):
        depth = 0
        for i, ch in enumerate(text):
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                # The opening paren closes before the end: not a wrapper.
                if depth == 0 and i != len(text) - 1:
                    return text
        text = text[1:-1].strip()
    return text


def _compile_where(where: str, params: list[Any]) -> Callable[[dict[str, Any]], bool]:
    """Turn a WHERE clause of ``col op %s`` atoms joined by AND/OR into a predicate.

    Params are consumed left to right in the order the placeholders appear.
    """

    groups: list[list[tuple[str, str, Any]]] = []
    for cond in _split_top(where, " and "):
        atoms: list[tuple[str, str, Any]] = []
        for atom in _split_top(_unwrap(cond), " or "):
            m = _ATOM_RE.match(_unwrap(atom))
            if not m:
                raise AssertionError(f"Unsupported condition: {atom!r}")
            op = m.group(2).split("%s")[0].replace(" ", "")
            atoms.append((m.group(1), op, params.pop(0)))
        groups.append(atoms)

    def _atom(row: dict[str, Any], col: str, op: str, value: Any) -> bool:
        current = row.get(col)
        if op == "=any(":
            return current is not None and current in list(value or [])
        if value is None or current is None:
            return False
        if op == "=":
            return current == value
        if op == "<>":
            return current != value
        if op == "ilike":
            return str(value).strip("%").lower() in str(current).lower()
        raise AssertionError(op)

    def predicate(row: dict[str, Any]) -> bool:
        return all(any(_atom(row, *a) for a in atoms) for atoms in groups)

    return predicate


def _order(rows: list[dict[str, Any]], order_by: str) -> list[dict[str, Any]]:
    out = list(rows)
    for term in reversed([t.strip() for t in order_by.split(",")]):
        bits = term.split()
        col = bits[0].split(".")[-1]
        desc = len(bits) > 1 and bits[1] == "desc"
        present = [r for r in out if r.get(col) is not None]
        missing = [r for r in out if r.get(col) is None]
        present.sort(key=lambda r: r[col], reverse=desc)
        # PostgreSQL: NULLS LAST for ASC, NULLS FIRST for DESC.
        out = missing + present if desc else present + missing
    return out


def _clauses(rest: str) -> tuple[str, str, Optional[int], str]:
    """Split ``[where ...] [order by ...] [limit n] [returning ...]``."""

    where = order_by = returning = ""
    limit = None
    m = re.search(r"\breturning (.+)$", rest)
    if m:
        returning = m.group(1)
        rest = rest[: m.start()].strip()
    m = re.search(r"\blimit (\d+)$", rest)
    if m:
        limit = int(m.group(1))
        rest = rest[: m.start()].strip()
    m = re.search(r"\border by (.+)$", rest)
    if m:
        order_by = m.group(1)
        rest = rest[: m.start()].strip()
    m = re.match(r"^where (.+)$", rest)
    if m:
        where = m.group(1)
    return where, order_by, limit, returning


class FakeDB:
    """In-memory stand-in for a psycopg connection.

    Understands the statement shapes the repositories issue against
    ``family_trees``, ``persons`` and ``relationships`` and applies the
    schema's ON DELETE actions.
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[int, dict[str, Any]]] = {
            "family_trees": {},
            "persons": {},
            "relationships": {},
        }
        self._seq: dict[str, int] = {t: 0 for t in self.tables}
        self._clock = 0
        self.commits = 0
        self.statements: list[str] = []
        # Raise on the statement for which this returns True.
        self.fail_when: Optional[Callable[[str, tuple], bool]] = None
        self._insert("family_trees", {"name": "Default family tree", "description": None})

    # -- seeding helpers ---------------------------------------------------

    def add_tree(self, name: str, **fields: Any) -> int:
        return self._insert("family_trees", {"name": name, **fields})["id"]

    def add_person(self, name: str, **fields: Any) -> int:
        return self._insert("persons", {"name": name, **fields})["id"]

    def person(self, pid: int) -> dict[str, Any]:
        return self.tables["persons"][pid]

    # -- connection API ------------------------------------------------------

    def commit(self) -> None:
        self.commits += 1

    @contextmanager
    def transaction(self) -> Iterator[None]:
        snapshot = (copy.deepcopy(self.tables), dict(self._seq))
        try:
            yield
        except BaseException:
            self.tables, self._seq = snapshot
            raise

    def execute(self, query: str, params: tuple | list | None = None) -> _FakeResult:
        q = " ".join((query or "").split()).lower()
        params = list(params or ())
        self.statements.append(q)
        if self.fail_when is not None and self.fail_when(q, tuple(params)):
            raise psycopg.OperationalError("simulated failure")

        if q.startswith("select ft.id"):
            return self._select_trees(q, params)
        if q.startswith("select count(*), count(*) filter"):
            return self._person_stats(q, params)
        if q.startswith("select relationship_type, count(*)"):
            counts: dict[str, int] = {}
            for r in self.tables["relationships"].values():
                counts[r["relationship_type"]] = counts.get(r["relationship_type"], 0) + 1
            return _FakeResult(sorted(counts.items()))
        if q.startswith("select "):
            return self._select(q, params)
        if q.startswith("insert into "):
            return self._insert_stmt(q, params)
        if q.startswith("update "):
            return self._update(q, params)
        if q.startswith("delete from "):
            return self._delete(q, params)

        raise AssertionError(f"Unexpected query: {query}")

    # -- statements ----------------------------------------------------------

    def _now(self) -> datetime:
        self._clock += 1
        return _EPOCH + timedelta(seconds=self._clock)

    def _insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        if "id" in values and values["id"] is not None:
            rid = int(values["id"])
            self._seq[table] = max(self._seq[table], rid)
        else:
            self._seq[table] += 1
            rid = self._seq[table]
        row = {**_TABLE_DEFAULTS[table], **values, "id": rid}
        now = self._now()
        row["created_at"] = now
        if table != "relationships":
            row["updated_at"] = now
        self.tables[table][rid] = row
        return row

    def _rows(self, table: str, where: str, params: list[Any]) -> list[dict[str, Any]]:
        rows = sorted(self.tables[table].values(), key=lambda r: r["id"])
        if not where:
            return rows
        pred = _compile_where(where, params)
        return [r for r in rows if pred(r)]

    def _select(self, q: str, params: list[Any]) -> _FakeResult:
        m = re.match(r"^select (.+?) from (\w+)\s*(.*)$", q)
        assert m, q
        cols = [c.strip() for c in m.group(1).split(",")]
        table = m.group(2)
        where, order_by, limit, _ = _clauses(m.group(3))
        rows = self._rows(table, where, params)
        if order_by:
            rows = _order(rows, order_by)
        if limit is not None:
            rows = rows[:limit]
        return _FakeResult([tuple(1 if c == "1" else r[c] for c in cols) for r in rows])

    def _insert_stmt(self, q: str, params: list[Any]) -> _FakeResult:
        m = re.match(r"^insert into (\w+) \(([^)]*)\) values \([^)]*\)\s*(.*)$", q)
        assert m, q
        table = m.group(1)
        cols = [c.strip() for c in m.group(2).split(",")]
        values = dict(zip(cols, params))
        rest = m.group(3)
        _, _, _, returning = _clauses(re.sub(r"^on conflict \([^)]*\) do nothing\s*", "", rest))

        if table == "relationships":
            for r in self.tables[table].values():
                if all(r[k] == values[k] for k in ("person_id", "related_person_id", "relationship_type")):
                    if "on conflict" in rest:
                        return _FakeResult([], 0)
                    raise psycopg.errors.UniqueViolation("duplicate relationship")
        if table == "persons" and values.get("family_tree_id", 1) not in self.tables["family_trees"]:
            raise psycopg.errors.ForeignKeyViolation("family tree does not exist")

        row = self._insert(table, values)
        if not returning:
            return _FakeResult([], 1)
        ret_cols = [c.strip() for c in returning.split(",")]
        return _FakeResult([tuple(row[c] for c in ret_cols)], 1)

    def _update(self, q: str, params: list[Any]) -> _FakeResult:
        m = re.match(r"^update (\w+) set (.+?) where (.+)$", q)
        assert m, q
        table = m.group(1)
        cols = [s.split("=")[0].strip() for s in _split_top(m.group(2), ",")]
        values = dict(zip(cols, params[: len(cols)]))
        rows = self._rows(table, m.group(3), params[len(cols):])
        for r in rows:
            r.update(values)
            r["updated_at"] = self._now()
        return _FakeResult([], len(rows))

    def _delete(self, q: str, params: list[Any]) -> _FakeResult:
        m = re.match(r"^delete from (\w+) where (.+)$", q)
        assert m, q
        table = m.group(1)
        rows = self._rows(table, m.group(2), params)
        for r in rows:
            self._delete_row(table, r["id"])
        return _FakeResult([], len(rows))

    def _delete_row(self, table: str, rid: int) -> None:
        if self.tables[table].pop(rid, None) is None:
            return
        if table == "family_trees":
            for pid in [p["id"] for p in self.tables["persons"].values() if p["family_tree_id"] == rid]:
                self._delete_row("persons", pid)
        elif table == "persons":
            for p in self.tables["persons"].values():
                for key in ("father_id", "mother_id", "spouse_id"):
                    if p[key] == rid:
                        p[key] = None
            for t in self.tables["family_trees"].values():
                if t["root_person_id"] == rid:
                    t["root_person_id"] = None
            for fid in [
                f["id"]
                for f in self.tables["relationships"].values()
                if rid in (f["person_id"], f["related_person_id"])
            ]:
                self.tables["relationships"].pop(fid)

    def _select_trees(self, q: str, params: list[Any]) -> _FakeResult:
        trees = sorted(self.tables["family_trees"].values(), key=lambda t: t["id"])
        if "where ft.id = %s" in q:
            trees = [t for t in trees if t["id"] == params[0]]
        if "order by ft.created_at desc" in q:
            trees = sorted(trees, key=lambda t: (t["created_at"], t["id"]), reverse=True)

        out = []
        for t in trees:
            root = self.tables["persons"].get(t["root_person_id"]) if t["root_person_id"] else None
            members = sum(1 for p in self.tables["persons"].values() if p["family_tree_id"] == t["id"])
            out.append(
                (
                    t["id"],
                    t["name"],
                    t["description"],
                    t["root_person_id"],
                    t["created_at"],
                    t["updated_at"],
                    root["name"] if root else None,
                    members,
                )
            )
        return _FakeResult(out)

    def _person_stats(self, q: str, params: list[Any]) -> _FakeResult:
        where, _, _, _ = _clauses(q.split(" from persons", 1)[1].strip())
        rows = self._rows("persons", where, params)
        generations = [r["generation"] for r in rows if r["generation"] is not None]
        return _FakeResult(
            [
                (
                    len(rows),
                    sum(1 for r in rows if r["is_alive"]),
                    sum(1 for r in rows if r["gender"] == "male"),
                    sum(1 for r in rows if r["gender"] == "female"),
                    max(generations) if generations else None,
                )
            ]
        )


@pytest.fixture()
def db() -> FakeDB:
    return FakeDB()


@pytest.fixture()
def client(db: FakeDB, monkeypatch: pytest.MonkeyPatch):
    from fastapi.testclient import TestClient

    from familytree import main
    from familytree.routes import family_trees, persons, relations, tree

    @contextmanager
    def _fake_db_conn() -> Iterator[FakeDB]:
        yield db

    for module in (persons, family_trees, relations, tree):
        monkeypatch.setattr(module, "db_conn", _fake_db_conn)

    return TestClient(main.app)


@pytest.fixture()
def upload_dir(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path))
    return tmp_path
