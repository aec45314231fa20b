"""Backup then restore against a real PostgreSQL.

Runs only when TEST_POSTGRES_URL points at a disposable database and the
pg_dump / psql client tools are on PATH. The public schema is dropped.
"""

from __future__ import annotations

import asyncio
import os
import shutil

import asyncpg
import pytest

from collector_backup.core.pgtools import DumpEngine, SqlRunner, count_items, parse_connection_url
from collector_backup.domain.enums import RestoreStep
from collector_backup.services.backup_service import BackupService
from collector_backup.services.restores import RestoreService


LIVE_URL = os.getenv("TEST_POSTGRES_URL")

pytestmark = pytest.mark.skipif(
    not LIVE_URL or not shutil.which("pg_dump") or not shutil.which("psql"),
    reason="TEST_POSTGRES_URL and PostgreSQL client tools required",
)


async def _execute(url: str, *statements: str) -> None:
    params = parse_connection_url(url)
    conn = await asyncpg.connect(
        host=params.host,
        port=params.port,
        user=params.user,
        password=params.password,
        database=params.database,
    )
    try:
        for statement in statements:
            await conn.execute(statement)
    finally:
        await conn.close()


def test_backup_and_restore_round_trip(db_session, backup_dir, monkeypatch):
    monkeypatch.setenv("ITEM_COUNT_TABLE", "Item")
    asyncio.run(
        _execute(
            LIVE_URL,
            'DROP TABLE IF EXISTS "Item"',
            'CREATE TABLE "Item" (id serial PRIMARY KEY, title text NOT NULL)',
            "INSERT INTO \"Item\" (title) VALUES ('Dune'), ('Neuromancer'), ('Hyperion')",
        )
    )
    backups = BackupService(
        db_session,
        connection_url=LIVE_URL,
        backup_dir=backup_dir,
        dump_engine=DumpEngine(timeout=120),
    )

    created = backups.create_backup().backup
    assert created.item_count == 3
    assert created.size_bytes > 0

    asyncio.run(_execute(LIVE_URL, "INSERT INTO \"Item\" (title) VALUES ('Foundation')"))
    assert asyncio.run(count_items(LIVE_URL)) == 4

    result = RestoreService(db_session, backups=backups, sql_runner=SqlRunner(timeout=120)).restore(created.id)

    assert result.step == RestoreStep.DONE, result.to_dict()
    assert result.restored_item_count == 3
    assert result.warnings == []
    assert (backup_dir / result.safety_backup).is_file()
