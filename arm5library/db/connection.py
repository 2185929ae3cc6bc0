from __future__ import annotations

import sqlite3
from pathlib import Path

from arm5library.db.error_utils import StorageUnavailableError


def connect(
    db_path: str | Path,
    *,
    timeout_s: float = 30,
    must_exist: bool = False,
    check_same_thread: bool = True,
) -> sqlite3.Connection:
    """Create a SQLite connection with production-friendly PRAGMAs.

    Notes
    -----
    - WAL gives single-writer / multiple-reader semantics.
    - foreign_keys must be enabled per-connection in SQLite; the relation
      tables depend on it for cascades.
    - With ``must_exist`` the file is opened read-write and never created.
    - ``check_same_thread=False`` lets worker threads use the connection;
      the caller then serialises access.
    """

    try:
        if must_exist:
            uri = Path(db_path).resolve().as_uri() + "?mode=rw"
            conn = sqlite3.connect(
                uri, timeout=timeout_s, uri=True, check_same_thread=check_same_thread
            )
        else:
            conn = sqlite3.connect(
                str(db_path), timeout=timeout_s, check_same_thread=check_same_thread
            )
    except sqlite3.OperationalError as e:
        raise StorageUnavailableError(f"Cannot open database '{db_path}': {e}") from e

    conn.row_factory = sqlite3.Row

    # PRAGMAs are connection-local except journal_mode.
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {int(timeout_s * 1000)};")

    # journal_mode returns a row; in-memory databases refuse WAL.
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
    except sqlite3.OperationalError:
        pass

    conn.execute("PRAGMA synchronous = NORMAL;")

    return conn
