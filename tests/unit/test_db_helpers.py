import psycopg
import pytest

from app.db import helpers
from app.db.helpers import DatabaseError, execute_many, with_db_retry


@pytest.mark.asyncio
async def test_retry_recovers_from_operational_error():
    attempts = {"count": 0}

    @with_db_retry(max_retries=2, base_delay=0)
    async def flaky():
        attempts["count"] += 1
        if attempts["count"] < 2:
            raise DatabaseError("connection reset") from psycopg.OperationalError("reset")
        return "ok"

    assert await flaky() == "ok"
    assert attempts["count"] == 2


@pytest.mark.asyncio
async def test_retry_gives_up_as_non_recoverable():
    @with_db_retry(max_retries=1, base_delay=0)
    async def always_down():
        raise DatabaseError("server closed") from psycopg.OperationalError("down")

    with pytest.raises(DatabaseError) as exc:
        await always_down()

    assert exc.value.recoverable is False
    assert exc.value.operation == "always_down"


@pytest.mark.asyncio
async def test_retry_does_not_repeat_integrity_errors():
    attempts = {"count": 0}

    @with_db_retry(max_retries=3, base_delay=0)
    async def duplicate():
        attempts["count"] += 1
        raise DatabaseError("duplicate key") from psycopg.IntegrityError("dup")

    with pytest.raises(DatabaseError):
        await duplicate()

    assert attempts["count"] == 1


@pytest.mark.asyncio
async def test_execute_many_skips_empty_batches(monkeypatch):
    async def fail_transaction():
        raise AssertionError("no connection should be requested")

    monkeypatch.setattr(helpers, "get_db_transaction", fail_transaction)

    assert await execute_many("INSERT INTO reminder_logs VALUES (%s)", []) == 0
