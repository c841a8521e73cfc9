"""
SQLite Incident Store

Architectural Intent:
- Persistent IncidentStorePort backed by SQLite (stdlib, zero external deps)
- Stores entities, incidents and ticket references
- Enforces the store invariants with constraints rather than check-then-act

Design Decisions:
- Single database file at configurable path (default: vigil.db)
- Auto-creates tables on first use
- A partial unique index allows at most one open incident per entity, so
  open_incident is an atomic conditional insert even across processes
- ticket_references.incident_id is the primary key, so a second reference
  for the same incident is rejected by the database
- Blocking sqlite3 calls run in a worker thread behind one lock
- Timestamps stored as ISO 8601 strings
"""

from __future__ import annotations
import asyncio
import logging
import sqlite3
import threading
from datetime import datetime
from typing import Any, Callable, Optional

from vigil.domain.entities.incident import Entity, Incident, TicketReference
from vigil.domain.errors import (
    ConflictError,
    IncidentAlreadyOpenError,
    InvariantViolationError,
    PersistenceError,
    VigilError,
)
from vigil.domain.value_objects.severity import Severity

logger = logging.getLogger(__name__)


def _ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _incident_id(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise PersistenceError(f"Malformed incident id: {value!r}")


def _row_to_incident(row: sqlite3.Row) -> Incident:
    return Incident(
        incident_id=str(row["id"]),
        entity_id=row["entity_id"],
        opened_at=_ts(row["opened_at"]),
        closed_at=_ts(row["closed_at"]),
    )


def _row_to_entity(row: sqlite3.Row) -> Entity:
    return Entity(
        entity_id=row["entity_id"],
        entity_name=row["entity_name"],
        current_severity=Severity(row["current_severity"]),
        last_known_severity=Severity(row["last_known_severity"]),
        updated_at=_ts(row["updated_at"]),
    )


class SQLiteIncidentStore:
    """Persistent incident storage using SQLite."""

    def __init__(self, db_path: str = "vigil.db"):
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Open database connection and create tables."""
        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._create_tables()
        logger.info("SQLite incident store connected: %s", self._db_path)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        assert self._conn is not None
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS entities (
                entity_id TEXT PRIMARY KEY,
                entity_name TEXT NOT NULL,
                current_severity TEXT NOT NULL,
                last_known_severity TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS incidents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_id TEXT NOT NULL,
                opened_at TEXT NOT NULL,
                closed_at TEXT
            );

            CREATE TABLE IF NOT EXISTS ticket_references (
                incident_id INTEGER PRIMARY KEY REFERENCES incidents(id),
                ticket_key TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_incidents_one_open
                ON incidents(entity_id) WHERE closed_at IS NULL;
            CREATE INDEX IF NOT EXISTS idx_incidents_entity ON incidents(entity_id);
        """)

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(self._guarded, fn, *args)

    def _guarded(self, fn: Callable[..., Any], *args: Any) -> Any:
        if self._conn is None:
            raise PersistenceError("SQLite incident store is not connected")
        with self._lock:
            try:
                return fn(*args)
            except VigilError:
                raise
            except sqlite3.Error as e:
                self._conn.rollback()
                raise PersistenceError(f"SQLite error in {fn.__name__}: {e}") from e

    # -- Incidents -----------------------------------------------------------

    async def find_open_incident(self, entity_id: str) -> Optional[Incident]:
        return await self._run(self._find_open_incident, entity_id)

    def _find_open_incident(self, entity_id: str) -> Optional[Incident]:
        rows = self._conn.execute(
            "SELECT * FROM incidents WHERE entity_id = ? AND closed_at IS NULL",
            (entity_id,),
        ).fetchall()
        if len(rows) > 1:
            raise InvariantViolationError(
                f"{len(rows)} open incidents for entity {entity_id!r}"
            )
        return _row_to_incident(rows[0]) if rows else None

    async def open_incident(self, entity_id: str, opened_at: datetime) -> Incident:
        return await self._run(self._open_incident, entity_id, opened_at)

    def _open_incident(self, entity_id: str, opened_at: datetime) -> Incident:
        try:
            cursor = self._conn.execute(
                "INSERT INTO incidents (entity_id, opened_at) VALUES (?, ?)",
                (entity_id, opened_at.isoformat()),
            )
        except sqlite3.IntegrityError:
            self._conn.rollback()
            raise IncidentAlreadyOpenError(entity_id)
        self._conn.commit()
        return Incident(
            incident_id=str(cursor.lastrowid),
            entity_id=entity_id,
            opened_at=opened_at,
        )

    async def close_incident(self, incident_id: str, closed_at: datetime) -> None:
        await self._run(self._close_incident, incident_id, closed_at)

    def _close_incident(self, incident_id: str, closed_at: datetime) -> None:
        row_id = _incident_id(incident_id)
        cursor = self._conn.execute(
            "UPDATE incidents SET closed_at = ? WHERE id = ? AND closed_at IS NULL",
            (closed_at.isoformat(), row_id),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            exists = self._conn.execute(
                "SELECT 1 FROM incidents WHERE id = ?", (row_id,)
            ).fetchone()
            if exists is None:
                raise PersistenceError(f"Incident {incident_id!r} does not exist")
            logger.debug("Incident %s already closed", incident_id)

    async def get_incident(self, incident_id: str) -> Optional[Incident]:
        return await self._run(self._get_incident, incident_id)

    def _get_incident(self, incident_id: str) -> Optional[Incident]:
        row = self._conn.execute(
            "SELECT * FROM incidents WHERE id = ?", (_incident_id(incident_id),)
        ).fetchone()
        return _row_to_incident(row) if row else None

    async def list_open_incidents(self) -> list[Incident]:
        return await self._run(self._list_open_incidents)

    def _list_open_incidents(self) -> list[Incident]:
        rows = self._conn.execute(
            "SELECT * FROM incidents WHERE closed_at IS NULL ORDER BY opened_at DESC"
        ).fetchall()
        return [_row_to_incident(r) for r in rows]

    # -- Ticket References ---------------------------------------------------

    async def get_ticket_reference(
        self, incident_id: str
    ) -> Optional[TicketReference]:
        return await self._run(self._get_ticket_reference, incident_id)

    def _get_ticket_reference(self, incident_id: str) -> Optional[TicketReference]:
        row = self._conn.execute(
            "SELECT * FROM ticket_references WHERE incident_id = ?",
            (_incident_id(incident_id),),
        ).fetchone()
        if row is None:
            return None
        return TicketReference(
            incident_id=str(row["incident_id"]),
            ticket_key=row["ticket_key"],
            created_at=_ts(row["created_at"]),
        )

    async def set_ticket_reference(
        self, incident_id: str, ticket_key: str, created_at: datetime
    ) -> TicketReference:
        return await self._run(
            self._set_ticket_reference, incident_id, ticket_key, created_at
        )

    def _set_ticket_reference(
        self, incident_id: str, ticket_key: str, created_at: datetime
    ) -> TicketReference:
        row_id = _incident_id(incident_id)
        try:
            self._conn.execute(
                """INSERT INTO ticket_references (incident_id, ticket_key, created_at)
                   VALUES (?, ?, ?)""",
                (row_id, ticket_key, created_at.isoformat()),
            )
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            existing = self._get_ticket_reference(incident_id)
            if existing is not None:
                raise ConflictError(
                    f"Incident {incident_id!r} already bound to {existing.ticket_key}"
                ) from e
            raise PersistenceError(
                f"Cannot bind ticket to incident {incident_id!r}: {e}"
            ) from e
        self._conn.commit()
        return TicketReference(str(row_id), ticket_key, created_at)

    # -- Entities ------------------------------------------------------------

    async def upsert_entity(
        self,
        entity_id: str,
        entity_name: str,
        severity: Severity,
        updated_at: datetime,
    ) -> Entity:
        return await self._run(
            self._upsert_entity, entity_id, entity_name, severity, updated_at
        )

    def _upsert_entity(
        self,
        entity_id: str,
        entity_name: str,
        severity: Severity,
        updated_at: datetime,
    ) -> Entity:
        current = self._get_entity(entity_id) or Entity(entity_id, entity_name)
        entity = current.observe(entity_name, severity, updated_at)
        self._conn.execute(
            """INSERT INTO entities
               (entity_id, entity_name, current_severity, last_known_severity, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(entity_id) DO UPDATE SET
                   entity_name = excluded.entity_name,
                   current_severity = excluded.current_severity,
                   last_known_severity = excluded.last_known_severity,
                   updated_at = excluded.updated_at""",
            (
                entity.entity_id,
                entity.entity_name,
                entity.current_severity.value,
                entity.last_known_severity.value,
                updated_at.isoformat(),
            ),
        )
        self._conn.commit()
        return entity

    async def get_entity(self, entity_id: str) -> Optional[Entity]:
        return await self._run(self._get_entity, entity_id)

    def _get_entity(self, entity_id: str) -> Optional[Entity]:
        row = self._conn.execute(
            "SELECT * FROM entities WHERE entity_id = ?", (entity_id,)
        ).fetchone()
        return _row_to_entity(row) if row else None

    async def list_entities(self) -> list[Entity]:
        return await self._run(self._list_entities)

    def _list_entities(self) -> list[Entity]:
        rows = self._conn.execute(
            "SELECT * FROM entities ORDER BY entity_name"
        ).fetchall()
        return [_row_to_entity(r) for r in rows]
