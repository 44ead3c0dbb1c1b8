"""Tests for orphan detection, quarantine and deletion."""

import json

import pytest

from forum_recovery.backup.files import load_quarantine
from forum_recovery.report import Operation
from forum_recovery.tenants.orphans import clean_orphans, find_orphans


@pytest.fixture
def orphaned_store(seeded_store):
    """The seeded tenant plus one orphan for every scanned kind but polls (5 in total)."""
    seeded_store.seed(
        "posts",
        {"id": "p-orphan", "tenant_id": "t-deleted", "author_id": "u-alice", "title": "Lost"},
    )
    seeded_store.seed(
        "comments",
        {"id": "r-orphan", "tenant_id": None, "post_id": "p-orphan", "author_id": "u-bob"},
    )
    seeded_store.seed(
        "reactions",
        {"id": "x-orphan", "tenant_id": "t-deleted", "user_id": "u-bob", "post_id": "p-orphan", "type": "LIKE"},
    )
    seeded_store.seed("categories", {"id": "c-orphan", "tenant_id": "t-deleted", "name": "Old"})
    seeded_store.seed("badges", {"id": "b-orphan", "tenant_id": None, "name": "Legacy"})
    return seeded_store


class TestFindOrphans:
    async def test_per_kind(self, orphaned_store):
        orphans = await find_orphans(orphaned_store)

        assert {kind: [r["id"] for r in rows] for kind, rows in orphans.items()} == {
            "content": ["p-orphan"],
            "replies": ["r-orphan"],
            "reactions": ["x-orphan"],
            "polls": [],
            "categories": ["c-orphan"],
            "badges": ["b-orphan"],
        }

    async def test_healthy_store(self, seeded_store):
        orphans = await find_orphans(seeded_store)
        assert all(rows == [] for rows in orphans.values())


class TestCleanOrphans:
    async def test_counts(self, orphaned_store, tmp_path):
        report = await clean_orphans(orphaned_store, tmp_path)

        assert report.success is True
        assert report.operation is Operation.CLEAN
        assert report.tenant_id is None
        assert report.items_processed == 5
        assert report.items_recovered == 5
        assert report.errors == ()

    async def test_live_rows_kept(self, orphaned_store, tmp_path):
        await clean_orphans(orphaned_store, tmp_path)

        assert [p["id"] for p in orphaned_store.rows("posts")] == ["p-1"]
        assert [c["id"] for c in orphaned_store.rows("comments")] == ["r-1"]
        assert [r["id"] for r in orphaned_store.rows("reactions")] == ["x-1"]
        assert [c["id"] for c in orphaned_store.rows("categories")] == ["c-general"]
        assert orphaned_store.rows("badges") == []

    async def test_quarantine_file(self, orphaned_store, tmp_path):
        report = await clean_orphans(orphaned_store, tmp_path)

        [written] = tmp_path.glob("orphaned_data_*.json")
        assert str(written) == report.output_path
        data = json.loads(written.read_text())
        assert data["metadata"]["kind"] == "orphaned_data"
        assert data["metadata"]["totalOrphans"] == 5
        assert data["content"][0]["title"] == "Lost"
        assert "users" not in data

        quarantine = load_quarantine(written)
        assert quarantine.badges[0].name == "Legacy"
        assert quarantine.replies[0].tenant_id is None

    async def test_quarantine_written_before_delete(self, orphaned_store, tmp_path):
        seen_files: list[int] = []
        delete_many = orphaned_store.delete_many

        async def _delete_many(table, ids, pk="id"):
            seen_files.append(len(list(tmp_path.glob("orphaned_data_*.json"))))
            return await delete_many(table, ids, pk=pk)

        orphaned_store.delete_many = _delete_many
        await clean_orphans(orphaned_store, tmp_path)

        assert seen_files == [1, 1, 1, 1, 1]

    async def test_delete_order(self, orphaned_store, tmp_path):
        await clean_orphans(orphaned_store, tmp_path)

        deletes = [table for method, table in orphaned_store.calls if method == "delete_many"]
        assert deletes == ["reactions", "comments", "posts", "categories", "badges"]

    async def test_second_run_finds_nothing(self, orphaned_store, tmp_path):
        await clean_orphans(orphaned_store, tmp_path)

        report = await clean_orphans(orphaned_store, tmp_path)

        assert report.success is True
        assert report.items_processed == 0
        assert report.items_recovered == 0
        assert len(list(tmp_path.glob("orphaned_data_*.json"))) == 1

    async def test_clean_store_writes_nothing(self, seeded_store, tmp_path):
        report = await clean_orphans(seeded_store, tmp_path)

        assert report.success is True
        assert report.output_path is None
        assert list(tmp_path.iterdir()) == []
        assert seeded_store.calls == []

    async def test_delete_failure_is_per_kind(self, orphaned_store, tmp_path):
        delete_many = orphaned_store.delete_many

        async def _delete_many(table, ids, pk="id"):
            if table == "posts":
                raise RuntimeError("foreign key violation")
            return await delete_many(table, ids, pk=pk)

        orphaned_store.delete_many = _delete_many
        report = await clean_orphans(orphaned_store, tmp_path)

        assert report.success is True
        assert report.items_recovered == 4
        assert report.errors == (
            "Failed to delete 1 orphaned content: foreign key violation",
        )
        assert [p["id"] for p in orphaned_store.rows("posts")] == ["p-1", "p-orphan"]

    async def test_scan_failure_aborts(self, orphaned_store, tmp_path):
        async def _boom(*args, **kwargs):
            raise RuntimeError("statement timeout")

        orphaned_store.find_orphans = _boom
        report = await clean_orphans(orphaned_store, tmp_path)

        assert report.success is False
        assert report.errors == ("Cleanup failed: statement timeout",)
        assert list(tmp_path.iterdir()) == []

    async def test_unwritable_directory_deletes_nothing(self, orphaned_store, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")

        report = await clean_orphans(orphaned_store, blocker)

        assert report.success is False
        assert report.errors[0].startswith("Cannot quarantine orphaned rows")
        assert not any(method == "delete_many" for method, _ in orphaned_store.calls)


class TestOrphanedPolls:
    @pytest.fixture
    def poll_store(self, orphaned_store):
        orphaned_store.seed(
            "polls",
            {"id": "poll-orphan", "tenant_id": "t-deleted", "post_id": "p-orphan", "question": "Pizza?"},
        )
        orphaned_store.seed(
            "poll_options",
            {"id": "o-yes", "poll_id": "poll-orphan", "text": "Yes", "position": 0},
            {"id": "o-no", "poll_id": "poll-orphan", "text": "No", "position": 1},
        )
        orphaned_store.seed("poll_votes", {"id": "v-1", "option_id": "o-yes", "user_id": "u-bob"})
        return orphaned_store

    async def test_poll_scanned(self, poll_store):
        orphans = await find_orphans(poll_store)
        assert [p["id"] for p in orphans["polls"]] == ["poll-orphan"]

    async def test_poll_quarantined_with_options_and_votes(self, poll_store, tmp_path):
        report = await clean_orphans(poll_store, tmp_path)

        assert report.items_processed == 6
        quarantine = load_quarantine(report.output_path)
        assert quarantine.metadata.total_orphans == 6
        [poll] = quarantine.polls
        assert poll.question == "Pizza?"
        assert [o.text for o in poll.options] == ["Yes", "No"]
        [vote] = poll.options[0].votes
        assert vote.user.email == "bob@x"

    async def test_poll_deleted_before_its_content(self, poll_store, tmp_path):
        report = await clean_orphans(poll_store, tmp_path)

        assert report.items_recovered == 6
        assert poll_store.rows("polls") == []
        deletes = [table for method, table in poll_store.calls if method == "delete_many"]
        assert deletes == ["reactions", "comments", "polls", "posts", "categories", "badges"]

    async def test_options_read_failure_deletes_nothing(self, poll_store, tmp_path):
        select = poll_store.select

        async def _select(table, *args, **kwargs):
            if table == "poll_options":
                raise RuntimeError("statement timeout")
            return await select(table, *args, **kwargs)

        poll_store.select = _select
        report = await clean_orphans(poll_store, tmp_path)

        assert report.success is False
        assert report.errors == ("Cannot quarantine orphaned rows: statement timeout",)
        assert list(tmp_path.iterdir()) == []
        assert [p["id"] for p in poll_store.rows("polls")] == ["poll-orphan"]
