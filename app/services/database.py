"""PostgreSQL document store for casinos, offers and research runs, using asyncpg."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from uuid import UUID

import asyncpg
from loguru import logger

from app.config import settings
from app.services import logger as log_service


class PersistenceError(Exception):
    """A store read or write failed."""


class ActiveRunConflictError(PersistenceError):
    """Another run is already in progress."""


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS casinos (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    name text NOT NULL,
    state text NOT NULL,
    state_abbreviation text NOT NULL,
    website text,
    license_number text,
    city text,
    casinodb_id integer,
    source text NOT NULL DEFAULT 'reference',
    created_at timestamptz NOT NULL DEFAULT now(),
    last_updated timestamptz NOT NULL DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS casinos_identity_idx
    ON casinos (lower(btrim(name)), state_abbreviation);

CREATE TABLE IF NOT EXISTS offers (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    casino_id uuid REFERENCES casinos (id) ON DELETE SET NULL,
    casino_name text NOT NULL,
    state text NOT NULL,
    state_abbreviation text NOT NULL,
    offer_name text NOT NULL DEFAULT '',
    offer_type text NOT NULL DEFAULT 'unknown',
    expected_deposit numeric NOT NULL DEFAULT 0,
    expected_bonus numeric NOT NULL DEFAULT 0,
    description text,
    terms text,
    source text NOT NULL,
    casinodb_id integer,
    discovered_at timestamptz NOT NULL DEFAULT now(),
    verified boolean NOT NULL DEFAULT false,
    notes text
);
CREATE INDEX IF NOT EXISTS offers_casino_idx
    ON offers (casino_name, state_abbreviation, source);
CREATE UNIQUE INDEX IF NOT EXISTS offers_reference_idx
    ON offers (casino_name, state_abbreviation, offer_name) WHERE source = 'reference';

CREATE TABLE IF NOT EXISTS research_runs (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    status text NOT NULL DEFAULT 'pending',
    started_at timestamptz NOT NULL DEFAULT now(),
    completed_at timestamptz,
    current_state text,
    current_casino text,
    casinos_processed integer NOT NULL DEFAULT 0,
    offers_processed integer NOT NULL DEFAULT 0,
    progress_log jsonb NOT NULL DEFAULT '[]'::jsonb,
    missing_casinos jsonb NOT NULL DEFAULT '[]'::jsonb,
    offer_comparisons jsonb NOT NULL DEFAULT '[]'::jsonb,
    summary jsonb
);
CREATE INDEX IF NOT EXISTS research_runs_started_idx ON research_runs (started_at DESC);
"""

# At most one in-progress run; dropped again when concurrent runs are allowed.
ACTIVE_RUN_INDEX_SQL = """
CREATE UNIQUE INDEX IF NOT EXISTS research_runs_single_active_idx
    ON research_runs ((true)) WHERE status = 'in-progress';
"""
DROP_ACTIVE_RUN_INDEX_SQL = "DROP INDEX IF EXISTS research_runs_single_active_idx;"

CASINO_COLUMNS = (
    "id, name, state, state_abbreviation, website, license_number, city, "
    "casinodb_id, source, created_at, last_updated"
)
OFFER_COLUMNS = (
    "id, casino_id, casino_name, state, state_abbreviation, offer_name, offer_type, "
    "expected_deposit, expected_bonus, description, terms, source, casinodb_id, "
    "discovered_at, verified, notes"
)
RUN_COLUMNS = (
    "id, status, started_at, completed_at, current_state, current_casino, "
    "casinos_processed, offers_processed, progress_log, missing_casinos, "
    "offer_comparisons, summary"
)
RUN_JSON_FIELDS = ("progress_log", "missing_casinos", "offer_comparisons", "summary")
RUN_UPDATABLE = {
    "status",
    "completed_at",
    "current_state",
    "current_casino",
    "casinos_processed",
    "offers_processed",
    "missing_casinos",
    "offer_comparisons",
    "summary",
}

_pool: asyncpg.Pool | None = None


def _db_available() -> bool:
    """Check if database is configured."""
    return bool(settings.database_url)


async def _get_pool() -> asyncpg.Pool:
    """Get or create the database connection pool."""
    global _pool
    if not _db_available():
        raise PersistenceError("Database not configured. Set DATABASE_URL in .env")
    if _pool is None:
        try:
            _pool = await asyncpg.create_pool(
                settings.database_url,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
            )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceError(f"Could not connect to database: {e}") from e
    return _pool


async def close_pool() -> None:
    """Close the database connection pool."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


@asynccontextmanager
async def _connection(operation: str, table: str) -> AsyncIterator[asyncpg.Connection]:
    """Acquire a pooled connection, reporting driver failures as PersistenceError."""
    pool = await _get_pool()
    try:
        async with pool.acquire() as conn:
            yield conn
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        log_service.log_db_operation(operation, table, "error", error=str(e))
        raise PersistenceError(f"{operation} on {table} failed: {e}") from e


def _coerce_json(value: Any, default: Any) -> Any:
    """Normalize JSON columns that asyncpg hands back as strings."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return default
    return default if value is None else value


def _offer_row(record: asyncpg.Record) -> dict[str, Any]:
    row = dict(record)
    for key in ("expected_deposit", "expected_bonus"):
        if row.get(key) is not None:
            row[key] = float(row[key])
    return row


def _run_row(record: asyncpg.Record) -> dict[str, Any]:
    row = dict(record)
    for key in RUN_JSON_FIELDS:
        row[key] = _coerce_json(row.get(key), None if key == "summary" else [])
    return row


async def init_schema() -> None:
    """Create tables and indexes when missing."""
    async with _connection("init_schema", "*") as conn:
        await conn.execute(SCHEMA_SQL)
    log_service.log_db_operation("init_schema", "*", "success")


async def apply_run_guard() -> None:
    """Create or drop the one-active-run index to match settings.

    Call after interrupted runs are recovered; leftover in-progress rows
    keep the index from being built.
    """
    async with _connection("init_schema", "research_runs") as conn:
        if settings.allow_concurrent_runs:
            await conn.execute(DROP_ACTIVE_RUN_INDEX_SQL)
            return
        try:
            await conn.execute(ACTIVE_RUN_INDEX_SQL)
        except asyncpg.UniqueViolationError:
            logger.warning(
                "Several research runs are in progress; single-run index not created"
            )


# --- Casinos ---


async def find_casinos(state_abbreviation: str, *, source: str | None = None) -> list[dict[str, Any]]:
    """All casinos for a state, optionally restricted to one source, ordered by name."""
    async with _connection("find", "casinos") as conn:
        if source is None:
            results = await conn.fetch(
                f"""
                SELECT {CASINO_COLUMNS} FROM casinos
                WHERE state_abbreviation = $1
                ORDER BY name
                """,
                state_abbreviation,
            )
        else:
            results = await conn.fetch(
                f"""
                SELECT {CASINO_COLUMNS} FROM casinos
                WHERE state_abbreviation = $1 AND source = $2
                ORDER BY name
                """,
                state_abbreviation,
                source,
            )
        return [dict(r) for r in results]


async def create_casino(
    *,
    name: str,
    state: str,
    state_abbreviation: str,
    source: str,
    website: str | None = None,
    license_number: str | None = None,
    city: str | None = None,
) -> dict[str, Any] | None:
    """Insert a casino; returns None when its identity key is already taken."""
    async with _connection("insert", "casinos") as conn:
        result = await conn.fetchrow(
            f"""
            INSERT INTO casinos (name, state, state_abbreviation, website, license_number, city, source)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (lower(btrim(name)), state_abbreviation) DO NOTHING
            RETURNING {CASINO_COLUMNS}
            """,
            name.strip(),
            state,
            state_abbreviation,
            website,
            license_number,
            city,
            source,
        )
        return dict(result) if result else None


async def upsert_reference_casino(
    *,
    name: str,
    state: str,
    state_abbreviation: str,
    casinodb_id: int | None = None,
) -> dict[str, Any]:
    """Insert or refresh a casino coming from the reference dataset."""
    async with _connection("upsert", "casinos") as conn:
        result = await conn.fetchrow(
            f"""
            INSERT INTO casinos (name, state, state_abbreviation, casinodb_id, source)
            VALUES ($1, $2, $3, $4, 'reference')
            ON CONFLICT (lower(btrim(name)), state_abbreviation) DO UPDATE
            SET state = EXCLUDED.state,
                casinodb_id = EXCLUDED.casinodb_id,
                source = 'reference',
                last_updated = now()
            RETURNING {CASINO_COLUMNS}
            """,
            name.strip(),
            state,
            state_abbreviation,
            casinodb_id,
        )
        return dict(result)


# --- Offers ---


async def find_offers(casino_name: str, state_abbreviation: str, *, source: str) -> list[dict[str, Any]]:
    async with _connection("find", "offers") as conn:
        results = await conn.fetch(
            f"""
            SELECT {OFFER_COLUMNS} FROM offers
            WHERE casino_name = $1 AND state_abbreviation = $2 AND source = $3
            ORDER BY discovered_at
            """,
            casino_name,
            state_abbreviation,
            source,
        )
        return [_offer_row(r) for r in results]


async def create_offer(
    *,
    casino_id: UUID | None,
    casino_name: str,
    state: str,
    state_abbreviation: str,
    offer_name: str,
    offer_type: str,
    expected_deposit: float,
    expected_bonus: float,
    description: str | None,
    terms: str | None,
    source: str,
) -> dict[str, Any]:
    """Insert an offer row. Never merges with existing rows."""
    async with _connection("insert", "offers") as conn:
        result = await conn.fetchrow(
            f"""
            INSERT INTO offers (
                casino_id, casino_name, state, state_abbreviation, offer_name, offer_type,
                expected_deposit, expected_bonus, description, terms, source
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            RETURNING {OFFER_COLUMNS}
            """,
            casino_id,
            casino_name,
            state,
            state_abbreviation,
            offer_name,
            offer_type,
            expected_deposit,
            expected_bonus,
            description,
            terms,
            source,
        )
        return _offer_row(result)


async def upsert_reference_offer(
    *,
    casino_name: str,
    state: str,
    state_abbreviation: str,
    offer_name: str,
    offer_type: str,
    expected_deposit: float,
    expected_bonus: float,
    casinodb_id: int | None = None,
) -> dict[str, Any]:
    """Insert or refresh a reference offer keyed on casino, state and offer name."""
    async with _connection("upsert", "offers") as conn:
        result = await conn.fetchrow(
            f"""
            INSERT INTO offers (
                casino_name, state, state_abbreviation, offer_name, offer_type,
                expected_deposit, expected_bonus, source, casinodb_id, verified
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, 'reference', $8, true)
            ON CONFLICT (casino_name, state_abbreviation, offer_name) WHERE source = 'reference'
            DO UPDATE SET
                state = EXCLUDED.state,
                offer_type = EXCLUDED.offer_type,
                expected_deposit = EXCLUDED.expected_deposit,
                expected_bonus = EXCLUDED.expected_bonus,
                casinodb_id = EXCLUDED.casinodb_id,
                verified = true,
                discovered_at = now()
            RETURNING {OFFER_COLUMNS}
            """,
            casino_name,
            state,
            state_abbreviation,
            offer_name,
            offer_type,
            expected_deposit,
            expected_bonus,
            casinodb_id,
        )
        return _offer_row(result)


# --- Research runs ---


async def create_run(status: str) -> dict[str, Any]:
    async with _connection("insert", "research_runs") as conn:
        try:
            result = await conn.fetchrow(
                f"""
                INSERT INTO research_runs (status)
                VALUES ($1)
                RETURNING {RUN_COLUMNS}
                """,
                status,
            )
        except asyncpg.UniqueViolationError as e:
            raise ActiveRunConflictError("A research run is already in progress") from e
        return _run_row(result)


async def get_run(run_id: UUID) -> dict[str, Any] | None:
    async with _connection("get", "research_runs") as conn:
        result = await conn.fetchrow(
            f"SELECT {RUN_COLUMNS} FROM research_runs WHERE id = $1",
            run_id,
        )
        return _run_row(result) if result else None


async def list_runs(limit: int) -> list[dict[str, Any]]:
    """Most recent runs first."""
    async with _connection("list", "research_runs") as conn:
        results = await conn.fetch(
            f"""
            SELECT {RUN_COLUMNS} FROM research_runs
            ORDER BY started_at DESC
            LIMIT $1
            """,
            limit,
        )
        return [_run_row(r) for r in results]


async def get_active_run() -> dict[str, Any] | None:
    async with _connection("get", "research_runs") as conn:
        result = await conn.fetchrow(
            f"""
            SELECT {RUN_COLUMNS} FROM research_runs
            WHERE status = 'in-progress'
            ORDER BY started_at DESC
            LIMIT 1
            """
        )
        return _run_row(result) if result else None


async def update_run(run_id: UUID, **fields: Any) -> None:
    """Write several run fields in a single statement so pollers never see a torn update.

    Terminal runs are left untouched.
    """
    updates = {k: v for k, v in fields.items() if k in RUN_UPDATABLE}
    if not updates:
        return

    assignments = []
    values: list[Any] = []
    for i, (key, value) in enumerate(updates.items(), start=2):
        if key in RUN_JSON_FIELDS:
            assignments.append(f"{key} = ${i}::jsonb")
            values.append(json.dumps(value))
        else:
            assignments.append(f"{key} = ${i}")
            values.append(value)

    async with _connection("update", "research_runs") as conn:
        await conn.execute(
            f"""
            UPDATE research_runs
            SET {", ".join(assignments)}
            WHERE id = $1 AND status NOT IN ('completed', 'failed')
            """,
            run_id,
            *values,
        )


async def append_run_log(run_id: UUID, entry: str) -> None:
    async with _connection("append", "research_runs") as conn:
        await conn.execute(
            """
            UPDATE research_runs
            SET progress_log = progress_log || jsonb_build_array($2::text)
            WHERE id = $1 AND status NOT IN ('completed', 'failed')
            """,
            run_id,
            entry,
        )


async def fail_interrupted_runs(entry: str) -> int:
    """Mark runs left in progress by a previous process as failed."""
    async with _connection("update", "research_runs") as conn:
        status = await conn.execute(
            """
            UPDATE research_runs
            SET status = 'failed',
                completed_at = now(),
                current_state = NULL,
                current_casino = NULL,
                progress_log = progress_log || jsonb_build_array($1::text)
            WHERE status IN ('pending', 'in-progress')
            """,
            entry,
        )
    # asyncpg returns the command tag, e.g. "UPDATE 2"
    return int(status.split()[-1]) if status else 0
