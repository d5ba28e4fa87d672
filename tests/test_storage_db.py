import pytest

from batch_ops.domain.errors import EntityStoreError, RecordNotFound
from batch_ops.storage.db import SqliteStore
from batch_ops.storage.entities import EntityMutator, SqliteEntityMutator


def test_put_and_get_document(store):
    store.put_document("students", "S1", {"student_id": "S1", "class": "C1"})
    assert store.get_document("students", "S1") == {"student_id": "S1", "class": "C1"}
    assert store.get_document("students", "missing") is None


def test_put_document_upserts(store):
    store.put_document("students", "S1", {"class": "C1"})
    store.put_document("students", "S1", {"class": "C2"})
    row = store.fetch_one(
        "SELECT COUNT(*) AS n FROM documents WHERE collection=?", ("students",)
    )
    assert row["n"] == 1
    assert store.get_document("students", "S1") == {"class": "C2"}


def test_get_documents_skips_missing(store):
    store.put_document("students", "S1", {"n": 1})
    store.put_document("students", "S2", {"n": 2})
    found = store.get_documents("students", ["S2", "S9", "S1"])
    assert found == {"S1": {"n": 1}, "S2": {"n": 2}}
    assert store.get_documents("students", []) == {}


def test_merge_document_updates_or_replaces(store):
    store.put_document("students", "S1", {"class": "C1", "name": "Amal"})

    merged = store.merge_document("students", "S1", {"class": "C9"})
    assert merged == {"class": "C9", "name": "Amal"}

    replaced = store.merge_document("students", "S1", {"class": "C1"}, replace=True)
    assert replaced == {"class": "C1"}
    assert store.get_document("students", "S1") == {"class": "C1"}

    assert store.merge_document("students", "S9", {"class": "C1"}) is None


def test_insert_and_find_documents(store):
    first = store.insert_document("notifications", {"student_id": "S1", "message": "a"})
    store.insert_document("notifications", {"student_id": "S2", "message": "b"})
    assert len(first) == 32

    rows = store.find_documents("notifications", {"student_id": "S1"})
    assert rows == [{"student_id": "S1", "message": "a"}]
    assert len(store.find_documents("notifications")) == 2


def test_delete_matching(store):
    store.insert_document("student_activities", {"student_id": "S1", "activity_id": "A1"})
    store.insert_document("student_activities", {"student_id": "S1", "activity_id": "A2"})

    deleted = store.delete_matching(
        "student_activities", {"student_id": "S1", "activity_id": "A1"}
    )
    assert deleted == 1
    assert store.find_documents("student_activities") == [
        {"student_id": "S1", "activity_id": "A2"}
    ]
    with pytest.raises(ValueError):
        store.delete_matching("student_activities", {})


def test_audit_entries_newest_window_oldest_first(store):
    for index in range(3):
        store.insert_audit_entry(
            f"op-{index}", "transfer", "apply", 2, "registrar", {"n": index}, f"t{index}"
        )
    rows = store.list_audit_entries(limit=2)
    assert [row["operation_id"] for row in rows] == ["op-1", "op-2"]
    rows = store.list_audit_entries(operation_id="op-0")
    assert len(rows) == 1
    assert rows[0]["details"] == '{"n": 0}'


def test_close_is_idempotent(tmp_path):
    sqlite_store = SqliteStore(str(tmp_path / "nested" / "db.sqlite"))
    sqlite_store.close()
    sqlite_store.close()


def test_memory_store():
    sqlite_store = SqliteStore(":memory:")
    sqlite_store.put_document("students", "S1", {"a": 1})
    assert sqlite_store.get_document("students", "S1") == {"a": 1}
    sqlite_store.close()


def test_mutator_satisfies_protocol(mutator):
    assert isinstance(mutator, EntityMutator)


@pytest.mark.asyncio
async def test_mutator_read_many_preserves_order(mutator):
    records = await mutator.read_many(["S3", "S1", "S9"])
    assert [record["student_id"] for record in records] == ["S3", "S1"]


@pytest.mark.asyncio
async def test_mutator_write_one_merges_and_keeps_key(mutator):
    await mutator.write_one("S1", {"class": "C9"})
    (record,) = await mutator.read_many(["S1"])
    assert record["class"] == "C9"
    assert record["name"] == "Amal"

    await mutator.write_one("S1", {"class": "C1"}, replace=True)
    (record,) = await mutator.read_many(["S1"])
    assert record == {"class": "C1", "student_id": "S1"}


@pytest.mark.asyncio
async def test_mutator_write_one_missing_record(mutator):
    with pytest.raises(RecordNotFound):
        await mutator.write_one("S9", {"class": "C9"})


@pytest.mark.asyncio
async def test_mutator_wraps_store_errors(store, schema):
    broken = SqliteEntityMutator(store, schema)
    store.close()
    with pytest.raises(EntityStoreError):
        await broken.insert_one("notifications", {"student_id": "S1"})


def test_seed_requires_key_field(mutator):
    with pytest.raises(EntityStoreError, match="student_id"):
        mutator.seed([{"name": "no key"}])
