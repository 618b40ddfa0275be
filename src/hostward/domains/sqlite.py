"""SQLite domain repository.

Domains and validation logs live in two tables joined by a foreign key with
ON DELETE CASCADE. A validation commit updates the domain row and inserts its
log row inside one transaction.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

from hostward.core.exceptions import (
    DomainNotFoundError,
    InvalidInputError,
    StorageUnavailableError,
)
from hostward.domains.storage import Domain, DomainRepository, ValidationLog

logger = structlog.get_logger()

_DOMAIN_COLUMNS = (
    "id",
    "owner_id",
    "domain_name",
    "verification_token",
    "txt_prefix",
    "required_a_record",
    "required_cname",
    "status",
    "txt_validated",
    "a_validated",
    "cname_validated",
    "last_validation_attempt_at",
    "validation_error",
    "auto_retry_count",
    "created_at",
    "updated_at",
)

_UPDATE_DOMAIN_SQL = (
    "UPDATE domains SET "
    + ", ".join(f"{column} = ?" for column in _DOMAIN_COLUMNS[1:])
    + " WHERE id = ?"
)


def _domain_params(domain: Domain) -> tuple[Any, ...]:
    row = domain.to_dict()
    return tuple(row[column] for column in _DOMAIN_COLUMNS)


def _domain_from_row(row: sqlite3.Row) -> Domain:
    return Domain.from_dict(dict(row))


def _log_from_row(row: sqlite3.Row) -> ValidationLog:
    data = dict(row)
    data["dns_response"] = json.loads(data["dns_response"] or "{}")
    return ValidationLog.from_dict(data)


class SQLiteDomainRepository(DomainRepository):
    """SQLite-backed repository.

    One connection is shared across worker threads (queries run through
    ``asyncio.to_thread``) and serialized by a lock, so ``:memory:`` databases
    work in tests.
    """

    def __init__(self, db_path: str | Path = "hostward.db") -> None:
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
            except sqlite3.Error as e:
                raise StorageUnavailableError(f"Cannot open database {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._conn = conn
        return self._conn

    @contextmanager
    def cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor with automatic commit/rollback."""
        with self._lock:
            conn = self._get_connection()
            cur = conn.cursor()
            try:
                yield cur
                conn.commit()
            except sqlite3.IntegrityError:
                conn.rollback()
                raise
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageUnavailableError(f"Database error: {e}") from e
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()

    def _initialize(self) -> None:
        if self._initialized:
            return

        with self.cursor() as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS domains (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    domain_name TEXT UNIQUE NOT NULL,
                    verification_token TEXT NOT NULL,
                    txt_prefix TEXT NOT NULL,
                    required_a_record TEXT,
                    required_cname TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    txt_validated INTEGER NOT NULL DEFAULT 0,
                    a_validated INTEGER NOT NULL DEFAULT 0,
                    cname_validated INTEGER NOT NULL DEFAULT 0,
                    last_validation_attempt_at TEXT,
                    validation_error TEXT,
                    auto_retry_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS validation_logs (
                    id TEXT PRIMARY KEY,
                    domain_id TEXT NOT NULL,
                    validation_type TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    error_message TEXT,
                    dns_response TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (domain_id) REFERENCES domains(id) ON DELETE CASCADE
                )
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_domains_owner
                ON domains(owner_id)
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_validation_logs_domain_created
                ON validation_logs(domain_id, created_at DESC)
            """)

        self._initialized = True
        logger.debug("SQLite schema ready", path=self.db_path)

    async def initialize(self) -> None:
        await asyncio.to_thread(self._initialize)

    def _close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._initialized = False

    async def close(self) -> None:
        await asyncio.to_thread(self._close)

    def _create(self, domain: Domain) -> None:
        self._initialize()
        placeholders = ", ".join("?" for _ in _DOMAIN_COLUMNS)
        try:
            with self.cursor() as cur:
                cur.execute(
                    f"INSERT INTO domains ({', '.join(_DOMAIN_COLUMNS)}) VALUES ({placeholders})",
                    _domain_params(domain),
                )
        except sqlite3.IntegrityError as e:
            raise InvalidInputError(f"Domain {domain.domain_name} is already registered") from e

    async def create(self, domain: Domain) -> None:
        await asyncio.to_thread(self._create, domain)

    def _get(self, domain_id: str) -> Domain:
        self._initialize()
        with self.cursor() as cur:
            cur.execute("SELECT * FROM domains WHERE id = ?", (domain_id,))
            row = cur.fetchone()
        if row is None:
            raise DomainNotFoundError(domain_id)
        return _domain_from_row(row)

    async def get(self, domain_id: str) -> Domain:
        return await asyncio.to_thread(self._get, domain_id)

    def _get_by_name(self, domain_name: str) -> Domain | None:
        self._initialize()
        with self.cursor() as cur:
            cur.execute("SELECT * FROM domains WHERE domain_name = ?", (domain_name,))
            row = cur.fetchone()
        return _domain_from_row(row) if row else None

    async def get_by_name(self, domain_name: str) -> Domain | None:
        return await asyncio.to_thread(self._get_by_name, domain_name)

    def _list(self, owner_id: str | None) -> list[Domain]:
        self._initialize()
        with self.cursor() as cur:
            if owner_id is not None:
                cur.execute(
                    "SELECT * FROM domains WHERE owner_id = ? ORDER BY created_at DESC",
                    (owner_id,),
                )
            else:
                cur.execute("SELECT * FROM domains ORDER BY created_at DESC")
            return [_domain_from_row(row) for row in cur.fetchall()]

    async def list(self, owner_id: str | None = None) -> list[Domain]:
        return await asyncio.to_thread(self._list, owner_id)

    def _update(self, cur: sqlite3.Cursor, domain: Domain) -> None:
        params = _domain_params(domain)
        cur.execute(_UPDATE_DOMAIN_SQL, (*params[1:], domain.id))
        if cur.rowcount == 0:
            raise DomainNotFoundError(domain.id)

    def _save(self, domain: Domain) -> None:
        self._initialize()
        with self.cursor() as cur:
            self._update(cur, domain)

    async def save(self, domain: Domain) -> None:
        await asyncio.to_thread(self._save, domain)

    def _record_validation(self, domain: Domain, log: ValidationLog) -> None:
        self._initialize()
        with self.cursor() as cur:
            self._update(cur, domain)
            cur.execute(
                """
                INSERT INTO validation_logs
                (id, domain_id, validation_type, success, error_message,
                 dns_response, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    log.id,
                    log.domain_id,
                    log.validation_type,
                    int(log.success),
                    log.error_message,
                    json.dumps(log.dns_response),
                    log.created_at.isoformat(),
                ),
            )

    async def record_validation(self, domain: Domain, log: ValidationLog) -> None:
        await asyncio.to_thread(self._record_validation, domain, log)

    def _list_logs(self, domain_id: str, limit: int | None) -> list[ValidationLog]:
        self._initialize()
        with self.cursor() as cur:
            cur.execute(
                """
                SELECT * FROM validation_logs
                WHERE domain_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
            """,
                (domain_id, -1 if limit is None else limit),
            )
            return [_log_from_row(row) for row in cur.fetchall()]

    async def list_logs(self, domain_id: str, limit: int | None = None) -> list[ValidationLog]:
        return await asyncio.to_thread(self._list_logs, domain_id, limit)

    def _delete(self, domain_id: str) -> bool:
        self._initialize()
        with self.cursor() as cur:
            cur.execute("DELETE FROM domains WHERE id = ?", (domain_id,))
            return cur.rowcount > 0

    async def delete(self, domain_id: str) -> bool:
        return await asyncio.to_thread(self._delete, domain_id)
