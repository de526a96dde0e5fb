from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

import psycopg

DEFAULT_TREE_ID = 1


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    return url


@contextmanager
def db_conn() -> Iterator[psycopg.Connection]:
    """Yield a database connection for one request.

    The connection commits when the block exits cleanly and rolls back when it
    raises, so a request never leaves half of a multi-write applied. Callers
    still ``commit()`` explicitly after mutations.
    """
    with psycopg.connect(get_database_url()) as conn:
        yield conn
