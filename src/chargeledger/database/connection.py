"""SQLite connection and schema bootstrap."""

import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

SCHEMA_DIR = Path(__file__).parent / "sql"
SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


def _adapt_datetime(val: datetime) -> str:
    # Aware values are stored in UTC so that string comparison orders them
    if val.tzinfo is not None:
        val = val.astimezone(UTC)
    return val.isoformat()


def _convert_datetime(val: bytes) -> datetime:
    return datetime.fromisoformat(val.decode())


sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("DATETIME", _convert_datetime)


class Database:
    """Owns the ledger's single aiosqlite connection."""

    def __init__(self, db_path: str = "chargeledger.db"):
        self.db_path = db_path
        self.connection: aiosqlite.Connection | None = None

    async def connect(self) -> aiosqlite.Connection:
        if self.connection is None:
            self.connection = await aiosqlite.connect(
                self.db_path, detect_types=sqlite3.PARSE_DECLTYPES
            )
            self.connection.row_factory = aiosqlite.Row
            for pragma in (
                "journal_mode=WAL",
                "synchronous=NORMAL",
                "temp_store=MEMORY",
                "foreign_keys=ON",
            ):
                await self.connection.execute(f"PRAGMA {pragma}")
        return self.connection

    async def disconnect(self):
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def get_schema_version(self) -> int:
        conn = await self.connect()
        cursor = await conn.execute("PRAGMA user_version")
        row = await cursor.fetchone()
        return row[0]

    async def initialize_schema(self, schema_dir: str | Path = SCHEMA_DIR) -> int:
        """
        Apply the ``NNN_*.up.sql`` scripts newer than the stored schema version.

        The version is kept in SQLite's ``user_version`` pragma, so running
        this on an up-to-date database does nothing.

        Returns:
            The schema version after initialization.
        """
        conn = await self.connect()
        current = await self.get_schema_version()
        if current >= SCHEMA_VERSION:
            logger.debug(f"Database schema at version {current}, nothing to apply")
            return current

        for script in sorted(Path(schema_dir).glob("*.up.sql")):
            version = int(script.name.split("_", 1)[0])
            if current < version <= SCHEMA_VERSION:
                await conn.executescript(script.read_text())
                await conn.execute(f"PRAGMA user_version = {version}")
                current = version
                logger.info(
                    f"Applied schema migration {script.name}",
                    extra={
                        "event_type": "schema_migrated",
                        "event_data": {"db_path": self.db_path, "version": version},
                    },
                )
        await conn.commit()

        if current < SCHEMA_VERSION:
            raise FileNotFoundError(
                f"Schema scripts up to version {SCHEMA_VERSION} not found in {schema_dir}"
            )
        return current

    async def __aenter__(self):
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
