import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from config import settings

logger = logging.getLogger(__name__)

# Fixed-size connection pool shared by every request
_connection_pool: Optional[queue.Queue] = None
_pool_file: Optional[str] = None
_pool_lock = threading.Lock()

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS PUBLISHER (
        NAME TEXT NOT NULL PRIMARY KEY,
        PHONE TEXT,
        ADDRESS TEXT
    ) STRICT
    """,
    """
    CREATE TABLE IF NOT EXISTS BOOK (
        BOOK_ID INTEGER PRIMARY KEY,
        TITLE TEXT NOT NULL,
        PUB_YEAR INTEGER,
        PUBLISHER_NAME TEXT,
        FOREIGN KEY (PUBLISHER_NAME) REFERENCES PUBLISHER(NAME) ON DELETE CASCADE
    ) STRICT
    """,
    """
    CREATE TABLE IF NOT EXISTS BOOK_AUTHOR (
        AUTHOR_NAME TEXT NOT NULL,
        BOOK_ID INTEGER NOT NULL,
        PRIMARY KEY (AUTHOR_NAME, BOOK_ID),
        FOREIGN KEY (BOOK_ID) REFERENCES BOOK(BOOK_ID) ON DELETE CASCADE
    ) STRICT
    """,
    """
    CREATE TABLE IF NOT EXISTS LIBRARY_BRANCH (
        BRANCH_ID INTEGER PRIMARY KEY,
        BRANCH_NAME TEXT NOT NULL,
        ADDRESS TEXT
    ) STRICT
    """,
    """
    CREATE TABLE IF NOT EXISTS BOOK_COPIES (
        NO_OF_COPIES INTEGER NOT NULL,
        BOOK_ID INTEGER NOT NULL,
        BRANCH_ID INTEGER NOT NULL,
        PRIMARY KEY (BOOK_ID, BRANCH_ID),
        FOREIGN KEY (BOOK_ID) REFERENCES BOOK(BOOK_ID) ON DELETE CASCADE,
        FOREIGN KEY (BRANCH_ID) REFERENCES LIBRARY_BRANCH(BRANCH_ID) ON DELETE CASCADE
    ) STRICT
    """,
    """
    CREATE TABLE IF NOT EXISTS CARD (
        CARD_NO INTEGER PRIMARY KEY
    ) STRICT
    """,
    """
    CREATE TABLE IF NOT EXISTS BOOK_LENDING (
        DATE_OUT TEXT NOT NULL CHECK (DATE_OUT IS date(DATE_OUT)),
        DUE_DATE TEXT NOT NULL CHECK (DUE_DATE IS date(DUE_DATE)),
        BOOK_ID INTEGER NOT NULL,
        BRANCH_ID INTEGER NOT NULL,
        CARD_NO INTEGER NOT NULL,
        PRIMARY KEY (BOOK_ID, BRANCH_ID, CARD_NO, DATE_OUT),
        FOREIGN KEY (BOOK_ID) REFERENCES BOOK(BOOK_ID) ON DELETE CASCADE,
        FOREIGN KEY (BRANCH_ID) REFERENCES LIBRARY_BRANCH(BRANCH_ID) ON DELETE CASCADE,
        FOREIGN KEY (CARD_NO) REFERENCES CARD(CARD_NO) ON DELETE CASCADE
    ) STRICT
    """,
    "CREATE INDEX IF NOT EXISTS idx_book_publisher ON BOOK(PUBLISHER_NAME)",
    "CREATE INDEX IF NOT EXISTS idx_book_author_book ON BOOK_AUTHOR(BOOK_ID)",
    "CREATE INDEX IF NOT EXISTS idx_book_copies_branch ON BOOK_COPIES(BRANCH_ID)",
    "CREATE INDEX IF NOT EXISTS idx_book_lending_date_out ON BOOK_LENDING(DATE_OUT DESC)",
)


def _connect(db_file: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_file, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # Referential integrity is off by default in SQLite
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout = 5000;")
    return conn


def _initialize_connection_pool() -> queue.Queue:
    """Create the pool for the configured database file if it does not exist yet."""
    global _connection_pool, _pool_file
    with _pool_lock:
        if _connection_pool is None:
            size = max(1, int(settings.database_pool_size))
            pool: queue.Queue = queue.Queue(maxsize=size)
            for _ in range(size):
                pool.put(_connect(settings.database_file))
            _connection_pool = pool
            _pool_file = settings.database_file
            logger.info(f"Connection pool ready: file={_pool_file}, size={size}")
        return _connection_pool


def get_db_connection(timeout: Optional[float] = None) -> sqlite3.Connection:
    """Take a connection from the pool, waiting while all of them are in use.

    ``timeout`` is only meant for diagnostics; an exhausted pool then surfaces
    as a database ``OperationalError``.
    """
    pool = _connection_pool or _initialize_connection_pool()
    try:
        return pool.get(timeout=timeout)
    except queue.Empty:
        raise sqlite3.OperationalError("connection pool exhausted") from None


def return_connection_to_pool(conn: sqlite3.Connection) -> None:
    """Hand a connection back; connections of a closed pool are closed instead."""
    if conn.in_transaction:
        conn.rollback()
    pool = _connection_pool
    if pool is None:
        conn.close()
        return
    try:
        pool.put_nowait(conn)
    except queue.Full:
        conn.close()


@contextmanager
def connection(timeout: Optional[float] = None) -> Iterator[sqlite3.Connection]:
    conn = get_db_connection(timeout)
    try:
        yield conn
    finally:
        return_connection_to_pool(conn)


def close_pool() -> None:
    """Close every idle pooled connection and forget the pool."""
    global _connection_pool, _pool_file
    with _pool_lock:
        pool, _connection_pool = _connection_pool, None
        _pool_file = None
    if pool is None:
        return
    closed = 0
    while True:
        try:
            pool.get_nowait().close()
            closed += 1
        except queue.Empty:
            break
    logger.info(f"Connection pool closed ({closed} connections)")


def pool_status() -> Dict[str, Any]:
    pool = _connection_pool
    if pool is None:
        return {"file": settings.database_file, "size": 0, "available": 0}
    return {"file": _pool_file, "size": pool.maxsize, "available": pool.qsize()}


def _run(conn: sqlite3.Connection, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
    try:
        return conn.execute(sql, tuple(params))
    except OverflowError as e:
        # The driver rejects integers wider than 64 bits before SQLite sees them
        raise sqlite3.DataError(str(e)) from e


def query_all(sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    with connection() as conn:
        rows = _run(conn, sql, params).fetchall()
    return [dict(row) for row in rows]


def query_one(sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
    with connection() as conn:
        row = _run(conn, sql, params).fetchone()
    return dict(row) if row is not None else None


def execute(sql: str, params: Sequence[Any] = ()) -> Tuple[int, int]:
    """Run one data-modifying statement and commit it.

    Returns ``(lastrowid, rowcount)``.
    """
    with connection() as conn:
        try:
            cursor = _run(conn, sql, params)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        return cursor.lastrowid or 0, cursor.rowcount


def create_tables() -> None:
    """Create the library tables if they do not exist."""
    with connection() as conn:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()


def initialize_database() -> None:
    """Initialize the database, creating the tables when needed."""
    create_tables()
    logger.info(f"Database initialized: {settings.database_file}")


def use_database_file(db_file: str) -> None:
    """Point the pool at another database file, dropping the current one."""
    if db_file != settings.database_file or _connection_pool is not None:
        close_pool()
    settings.database_file = db_file
