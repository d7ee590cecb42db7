from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from psycopg2.extensions import connection
from psycopg2.pool import ThreadedConnectionPool


def create_pool(db_params: dict, maxconn: int = 10) -> ThreadedConnectionPool:
    """Open the process-wide pool. Call `closeall()` on shutdown."""

    return ThreadedConnectionPool(1, maxconn, **db_params)


@contextmanager
def pooled_connection(pool: ThreadedConnectionPool) -> Iterator[connection]:
    """
    Borrow a connection for the duration of the block.

    Anything left uncommitted when the block raises is rolled back before
    the connection goes back to the pool.
    """

    conn = pool.getconn()
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)
