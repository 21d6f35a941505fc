import json

import pytest

from frenchmaster import maintenance
from frenchmaster.store import ContentStore

ROWS = [
    {"id": "number-0", "english": "0", "french": ["zéro"], "isPredefined": True},
    {"id": "fallback-w1", "english": "hello", "french": ["bonjour"]},
    {"id": "x-1", "english": "1", "french": ["un"], "origin": "bundled"},
    {"id": "user-n-1", "english": "100", "french": ["cent"], "isPredefined": False},
]


async def seeded_store(db_path):
    store = ContentStore(db_path)
    await store.initialize()
    await store.bulk_add_data("numbers", ROWS)
    return store


@pytest.mark.asyncio
async def test_find_predefined_uses_flags_origin_and_legacy_ids(db_path):
    store = await seeded_store(db_path)
    found = await maintenance.find_predefined(store, "numbers")
    assert [record["id"] for record in found] == ["number-0", "fallback-w1", "x-1"]


@pytest.mark.asyncio
async def test_purge_reports_counts(db_path):
    store = await seeded_store(db_path)
    report = await maintenance.purge_predefined(store, "numbers")
    assert report.as_dict() == {
        "table": "numbers",
        "total": 4,
        "deleted": 3,
        "failed": 0,
        "deletedIds": ["number-0", "fallback-w1", "x-1"],
    }
    assert [record["id"] for record in await store.get_all_data("numbers")] == ["user-n-1"]


@pytest.mark.asyncio
async def test_purge_counts_failed_deletes(db_path):
    class FlakyStore(ContentStore):
        async def delete_data(self, table, record_id):
            if record_id == "x-1":
                raise RuntimeError("disk full")
            return await super().delete_data(table, record_id)

    store = FlakyStore(db_path)
    await store.initialize()
    await store.bulk_add_data("numbers", ROWS)
    report = await maintenance.purge_predefined(store, "numbers")
    assert (report.deleted, report.failed) == (2, 1)


@pytest.mark.asyncio
async def test_store_stats(db_path):
    store = await seeded_store(db_path)
    stats = await maintenance.store_stats(store)
    assert stats["numbers"] == {"total": 4, "predefined": 3, "user": 1}
    assert stats["words"] == {"total": 0, "predefined": 0, "user": 0}


def test_cli_stats_and_purge(db_path, capsys):
    assert maintenance.main(["--db", str(db_path), "stats"]) == 0
    assert json.loads(capsys.readouterr().out)["stats"]["verbs"]["total"] == 0
    assert maintenance.main(["--db", str(db_path), "purge", "words"]) == 0
    assert json.loads(capsys.readouterr().out)["deleted"] == 0


def test_cli_reports_storage_errors(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    assert maintenance.main(["--db", str(blocker / "db.sqlite"), "stats"]) == 1


def test_predefined_flag_wins_over_user_origin():
    predicate = maintenance.predefined_predicate()
    assert predicate({"id": "user-w-9", "english": "a", "french": ["a"], "origin": "user", "isPredefined": True})
    assert not predicate({"id": "user-w-9", "english": "a", "french": ["a"], "origin": "user", "isPredefined": False})
