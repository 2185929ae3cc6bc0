from __future__ import annotations

import asyncio
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence, TypeVar, Union

from loguru import logger

from arm5library import config
from arm5library.db.connection import connect
from arm5library.db.error_utils import (
    ConstraintViolationError,
    StorageUnavailableError,
)
from arm5library.db.persistence import insert_library, restore_on_failure
from arm5library.db.schema import drop_schema, ensure_schema
from arm5library.models import Library

T = TypeVar("T")


class LibraryStorage:
    """Owns the single SQLite connection of the catalogue.

    The connection is opened explicitly (or on entering the context) and
    closed at shutdown. All writes go through ``transaction()``; reads from
    worker threads go through ``run()``. A lock serialises both.
    """

    def __init__(
        self,
        db_path: Union[str, Path, None] = None,
        *,
        timeout_s: Optional[float] = None,
        must_exist: bool = False,
    ):
        self.db_path = str(db_path if db_path is not None else config.DB_PATH)
        self.timeout_s = timeout_s if timeout_s is not None else config.DB_TIMEOUT_S
        self.must_exist = must_exist
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def exists(self) -> bool:
        return self.db_path == ":memory:" or Path(self.db_path).exists()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageUnavailableError("No database connection available")
        return self._conn

    def open(self) -> "LibraryStorage":
        if self._conn is None:
            self._conn = connect(
                self.db_path,
                timeout_s=self.timeout_s,
                must_exist=self.must_exist,
                check_same_thread=False,
            )
            logger.debug(f"Opened library database '{self.db_path}'")
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug(f"Closed library database '{self.db_path}'")

    def __enter__(self) -> "LibraryStorage":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """One atomic unit of work: commit on success, roll back on error."""

        with self._lock:
            conn = self.connection
            try:
                with conn:
                    yield conn
            except sqlite3.IntegrityError as e:
                raise ConstraintViolationError(f"Storage rejected the write: {e}") from e

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking ``fn(connection, *args)`` in a worker thread."""

        def call() -> T:
            with self._lock:
                return fn(self.connection, *args)

        return await asyncio.to_thread(call)

    def initialize(
        self,
        model: Union[Library, Sequence[Library], None] = None,
        *,
        reset: bool = False,
    ) -> None:
        """Create the schema, optionally from scratch, and seed it.

        A failure here is fatal: without a schema no other operation is
        meaningful, so errors propagate to the caller.
        """

        conn = self.open().connection
        if reset:
            logger.info(f"Dropping existing library schema in '{self.db_path}'")
            drop_schema(conn)
        ensure_schema(conn)

        if model is None:
            logger.info(f"Library schema ready in '{self.db_path}'")
            return

        libraries = [model] if isinstance(model, Library) else list(model)
        with restore_on_failure(*libraries), self.transaction() as tx:
            for library in libraries:
                insert_library(tx, library)
        logger.info(
            f"Library schema ready in '{self.db_path}', seeded {len(libraries)} libraries"
        )
