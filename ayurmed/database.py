from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from typing import Iterable, Sequence
from urllib.parse import urlparse

import aiosqlite

from ayurmed.config import DATABASE_MAX_CONNECTIONS, DATABASE_PATH, DATABASE_URL, SEED_DEMO_DATA

try:  # Optional: only required when DATABASE_URL points at Postgres
    import asyncpg  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    asyncpg = None

logger = logging.getLogger(__name__)

# Raised by either backend when an insert violates a unique index
INTEGRITY_ERRORS: tuple[type[Exception], ...] = (sqlite3.IntegrityError,)
if asyncpg is not None:
    INTEGRITY_ERRORS += (asyncpg.UniqueViolationError,)


class DatabaseAdapter:
    engine: str

    async def execute(self, query: str, params: Sequence | None = None) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_one(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_all(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def commit(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def executescript(self, script: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass
class SQLiteAdapter(DatabaseAdapter):
    conn: aiosqlite.Connection
    engine: str = "sqlite"

    async def execute(self, query: str, params: Sequence | None = None) -> None:
        await self.conn.execute(query, params or ())

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:
        await self.conn.executemany(query, seq_params)

    async def fetch_one(self, query: str, params: Sequence | None = None):
        cursor = await self.conn.execute(query, params or ())
        return await cursor.fetchone()

    async def fetch_all(self, query: str, params: Sequence | None = None):
        cursor = await self.conn.execute(query, params or ())
        return await cursor.fetchall()

    async def commit(self) -> None:
        await self.conn.commit()

    async def close(self) -> None:
        await self.conn.close()

    async def executescript(self, script: str) -> None:
        await self.conn.executescript(script)


@dataclass
class PostgresAdapter(DatabaseAdapter):
    pool: "asyncpg.Pool"  # type: ignore[name-defined]
    engine: str = "postgres"

    @staticmethod
    def _translate_query(query: str) -> str:
        # Convert SQLite-style ? placeholders to asyncpg-style $1, $2, ...
        if "$1" in query:
            return query
        idx = 1
        out = []
        for ch in query:
            if ch == "?":
                out.append(f"${idx}")
                idx += 1
            else:
                out.append(ch)
        return "".join(out)

    async def execute(self, query: str, params: Sequence | None = None) -> None:
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            await conn.execute(q, *(params or ()))

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            await conn.executemany(q, seq_params)

    async def fetch_one(self, query: str, params: Sequence | None = None):
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(q, *(params or ()))

    async def fetch_all(self, query: str, params: Sequence | None = None):
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            return await conn.fetch(q, *(params or ()))

    async def commit(self) -> None:
        # asyncpg autocommits per statement unless an explicit transaction is used.
        return

    async def close(self) -> None:
        await self.pool.close()

    async def executescript(self, script: str) -> None:
        # Not supported for Postgres; callers should split statements.
        raise NotImplementedError


_db: DatabaseAdapter | None = None


async def get_db() -> DatabaseAdapter:
    global _db
    if _db is None:
        if DATABASE_URL and not DATABASE_URL.startswith("sqlite"):
            if asyncpg is None:
                raise RuntimeError(
                    "DATABASE_URL is set but asyncpg is not installed. "
                    "Install asyncpg or unset DATABASE_URL."
                )
            pool = await asyncpg.create_pool(
                dsn=DATABASE_URL,
                min_size=1,
                max_size=DATABASE_MAX_CONNECTIONS,
            )
            _db = PostgresAdapter(pool)
            logger.info("Connected to Postgres database")
        else:
            sqlite_path = _sqlite_path_from_url(DATABASE_URL) if DATABASE_URL else ""
            sqlite_path = sqlite_path or DATABASE_PATH
            conn = await aiosqlite.connect(sqlite_path)
            conn.row_factory = aiosqlite.Row
            _db = SQLiteAdapter(conn)
            logger.info("Connected to SQLite database at %s", sqlite_path)
    return _db


def _sqlite_path_from_url(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path or ""
    if not path or path == "/":
        return ""
    # sqlite:////absolute/path.db -> keep absolute path
    if url.startswith("sqlite:////"):
        return "/" + path.lstrip("/")
    # sqlite:///relative.db -> strip leading slash
    if path.startswith("/"):
        return path[1:]
    return path


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        role TEXT NOT NULL,
        avatar_url TEXT,
        health_id TEXT,
        age INTEGER,
        gender TEXT,
        blood_group TEXT,
        specialization TEXT,
        license_number TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_health_id ON users (health_id)",
    "CREATE INDEX IF NOT EXISTS idx_users_email ON users (email)",
    """
    CREATE TABLE IF NOT EXISTS prescriptions (
        id TEXT PRIMARY KEY,
        patient_id TEXT NOT NULL REFERENCES users(id),
        doctor_id TEXT,
        date TEXT NOT NULL,
        status TEXT NOT NULL,
        medicines TEXT NOT NULL DEFAULT '[]',
        image_url TEXT,
        diagnosis TEXT,
        notes TEXT,
        seq INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_prescriptions_patient ON prescriptions (patient_id)",
    """
    CREATE TABLE IF NOT EXISTS sessions (
        token TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id),
        created_at TEXT NOT NULL
    )
    """,
]


async def init_db() -> None:
    db = await get_db()

    if db.engine == "sqlite":
        await db.executescript(";\n".join(SCHEMA_STATEMENTS) + ";")
    else:
        for stmt in SCHEMA_STATEMENTS:
            await db.execute(stmt)

    await db.commit()

    if SEED_DEMO_DATA:
        await _seed_demo_data(db)


async def close_db() -> None:
    global _db
    if _db is not None:
        await _db.close()
        _db = None


DEMO_USERS = [
    ("u1", "Rajesh Kumar", "rajesh@example.com", "PATIENT", "PID-1001", 45, "Male", "O+", None, None),
    ("d1", "Dr. Anjali Gupta", "anjali@hospital.com", "DOCTOR", None, None, None, None, "Cardiologist", "IMC-123456"),
    ("a1", "Admin User", "admin@hospital.com", "ADMIN", None, None, None, None, None, None),
]

DEMO_PRESCRIPTIONS = [
    (
        "rx1", "u1", "d1", "2023-10-15", "VALIDATED",
        json.dumps([{
            "name": "Amlodipine",
            "dosage": "5mg",
            "frequency": "1-0-0",
            "duration": "30 days",
            "instructions": "After breakfast",
        }]),
        None, "Hypertension", None, 1,
    ),
    (
        "rx2", "u1", None, "2024-05-20", "PENDING_VALIDATION", "[]",
        "https://picsum.photos/400/600", "Pending OCR", None, 2,
    ),
]


async def _seed_demo_data(db: DatabaseAdapter) -> None:
    """Seed the demo accounts and prescriptions used by the login screen hints."""
    existing_rows = await db.fetch_all("SELECT id FROM users WHERE id IN ('u1', 'd1', 'a1')")
    existing = {row["id"] for row in existing_rows}
    users = [u for u in DEMO_USERS if u[0] not in existing]
    if users:
        await db.executemany(
            """INSERT INTO users (
                id, name, email, role, health_id, age, gender, blood_group,
                specialization, license_number, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, '2023-01-01T00:00:00+00:00')""",
            users,
        )

    existing_rows = await db.fetch_all("SELECT id FROM prescriptions WHERE id IN ('rx1', 'rx2')")
    existing = {row["id"] for row in existing_rows}
    prescriptions = [p for p in DEMO_PRESCRIPTIONS if p[0] not in existing]
    if prescriptions:
        await db.executemany(
            """INSERT INTO prescriptions (
                id, patient_id, doctor_id, date, status, medicines,
                image_url, diagnosis, notes, seq
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            prescriptions,
        )

    if users or prescriptions:
        await db.commit()
        logger.info("Seeded %d demo users and %d demo prescriptions", len(users), len(prescriptions))
