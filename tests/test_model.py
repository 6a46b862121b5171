import sqlite3
import pytest

from fastorm.connection import Connection
from fastorm.errors import ConfigurationError, DatabaseConnectionError, FastOrmError
from fastorm.model import Model


@pytest.fixture
def user_model(schema_connection: Connection) -> Model:
    return Model("users", schema_connection)


@pytest.mark.asyncio
async def test_create_then_find_by_id(user_model: Model):
    record = await user_model.create({"name": "x"})
    assert record["name"] == "x"
    assert isinstance(record["id"], int)

    found = await user_model.find_by_id(record["id"])
    assert found is not None
    assert found["name"] == "x"
    assert found["id"] == record["id"]


@pytest.mark.asyncio
async def test_find_missing_returns_none(user_model: Model):
    assert await user_model.find_by_id(404) is None
    assert await user_model.find_all() == []


@pytest.mark.asyncio
async def test_find_all_and_query(user_model: Model):
    for name, age in [("alice", 20), ("bob", 30)]:
        await user_model.create({"name": name, "age": age})

    assert [row["name"] for row in await user_model.find_all()] == ["alice", "bob"]
    assert await user_model.query().where("age", ">", 25).count() == 1


@pytest.mark.asyncio
async def test_update(user_model: Model):
    record = await user_model.create({"name": "alice", "age": 20})

    assert await user_model.update(record["id"], {"age": 21, "email": "a@example.com"}) is True
    updated = await user_model.find_by_id(record["id"])
    assert updated["age"] == 21
    assert updated["email"] == "a@example.com"
    assert updated["name"] == "alice"

    assert await user_model.update(404, {"age": 1}) is False
    assert await user_model.update(record["id"], {}) is False


@pytest.mark.asyncio
async def test_delete(user_model: Model):
    record = await user_model.create({"name": "alice"})

    assert await user_model.delete(record["id"]) is True
    assert await user_model.find_by_id(record["id"]) is None
    assert await user_model.delete(record["id"]) is False


@pytest.mark.asyncio
async def test_hooks_run_in_order_and_mutate_record(user_model: Model):
    calls = []

    def first(record, connection):
        calls.append(("first", dict(record)))
        record["checked"] = True

    async def second(record, connection):
        calls.append(("second", dict(record)))

    async def after(record, connection):
        calls.append(("after_create", record["id"]))

    user_model.add_hook("before_create", first)
    user_model.add_hook("before_create", second)
    user_model.add_hook("after_create", after)

    record = await user_model.create({"name": "alice"})

    assert calls == [
        ("first", {"name": "alice"}),
        ("second", {"name": "alice", "checked": True}),
        ("after_create", record["id"]),
    ]
    # The draft is the returned record, the insert only uses the caller's keys
    assert record["checked"] is True
    row = await user_model.find_by_id(record["id"])
    assert "checked" not in row


@pytest.mark.asyncio
async def test_update_and_delete_hooks(user_model: Model):
    events = []
    for event in ("before_update", "after_update", "before_delete", "after_delete"):
        user_model.add_hook(event, lambda record, conn, event=event: events.append((event, record["age"])))

    record = await user_model.create({"name": "alice", "age": 20})
    await user_model.update(record["id"], {"age": 21})
    await user_model.update(404, {"age": 99})
    await user_model.delete(record["id"])

    assert events == [
        ("before_update", 21),
        ("after_update", 21),
        ("before_delete", 21),
        ("after_delete", 21),
    ]


@pytest.mark.asyncio
async def test_failing_hook_propagates_without_compensation(user_model: Model):
    async def explode(record, connection):
        raise ValueError("hook failed")

    user_model.add_hook("after_create", explode)

    with pytest.raises(ValueError, match="hook failed"):
        await user_model.create({"name": "alice"})

    # The insert already happened and stays
    assert await user_model.query().count() == 1


@pytest.mark.asyncio
async def test_failing_before_hook_skips_statement(user_model: Model):
    def reject(record, connection):
        raise PermissionError("no")

    user_model.add_hook("before_delete", reject)
    record = await user_model.create({"name": "alice"})

    with pytest.raises(PermissionError):
        await user_model.delete(record["id"])
    assert await user_model.find_by_id(record["id"]) is not None


@pytest.mark.asyncio
async def test_execution_errors_propagate(user_model: Model):
    with pytest.raises(sqlite3.OperationalError):
        await user_model.create({"no_such_column": 1})


def test_model_configuration_errors():
    with pytest.raises(ConfigurationError):
        Model("")

    model = Model("users")
    with pytest.raises(ConfigurationError):
        model.add_hook("before_save", lambda record, conn: None)

    with pytest.raises(DatabaseConnectionError):
        model.query()


@pytest.mark.asyncio
async def test_create_rejects_empty_record(user_model: Model):
    with pytest.raises(ConfigurationError):
        await user_model.create({})


class RowsOnlyConnection:
    """Answers every statement with a result set."""

    async def query(self, sql, params=None):
        return [{"id": 1}]


@pytest.mark.asyncio
async def test_write_without_write_result_raises():
    model = Model("users", RowsOnlyConnection())

    with pytest.raises(FastOrmError):
        await model.create({"name": "alice"})

    # update and delete find the row first, then reject the result set
    with pytest.raises(FastOrmError):
        await model.update(1, {"name": "bob"})
    with pytest.raises(FastOrmError):
        await model.delete(1)
