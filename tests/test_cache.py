"""Tests for the record cache and snapshot scoring."""

import asyncio

import pytest

from socialmine.cache import RecordCache
from socialmine.errors import LedgerError
from socialmine.models.record import MiningRecord
from socialmine.scoring import SnapshotScorer


def _record(record_id: str, creator: str = "0xA", verified: bool = False, value=None) -> MiningRecord:
    return MiningRecord(
        id=record_id,
        name="Likes",
        description="",
        creator=creator,
        timestamp=1,
        is_verified=verified,
        decrypted_value=value,
    )


class TestSnapshotScorer:
    def test_stats_from_verified_records_only(self):
        scorer = SnapshotScorer()
        records = [
            _record("a", "0xA", True, 10),
            _record("b", "0xB", True, 5),
            _record("c", "0xA", False),
        ]

        stats = scorer.calculate_stats(records)

        assert stats.participant_count == 2
        assert stats.total_value == 15
        assert stats.average_score == 8

    def test_empty_record_set(self):
        stats = SnapshotScorer().calculate_stats([])
        assert (stats.participant_count, stats.total_value, stats.average_score) == (0, 0, 0)

    def test_leaderboard_ranks_by_disclosed_value(self):
        scorer = SnapshotScorer(leaderboard_size=2)
        records = [
            _record("a", "0xA", True, 10),
            _record("b", "0xB", True, 30),
            _record("c", "0xA", True, 5),
            _record("d", "0xC", False),
        ]

        board = scorer.rank_contributors(records)

        assert [(entry.rank, entry.creator, entry.total_value) for entry in board] == [
            (1, "0xB", 30),
            (2, "0xA", 15),
        ]
        assert board[1].record_count == 2


class TestRecordCacheRefresh:
    @pytest.mark.asyncio
    async def test_refresh_builds_consistent_snapshot(self, ledger):
        ledger.add_record("r1", creator="0xA", verified=True, value=4)
        ledger.add_record("r2", creator="0xB", verified=True, value=6)
        cache = RecordCache(ledger)

        snapshot = await cache.refresh()

        assert [record.id for record in snapshot.records] == ["r1", "r2"]
        assert snapshot.stats == SnapshotScorer().calculate_stats(snapshot.records)
        assert snapshot.refreshed_at is not None
        assert cache.snapshot is snapshot

    @pytest.mark.asyncio
    async def test_unreadable_record_is_skipped(self, ledger):
        for index in range(5):
            ledger.add_record(f"r{index}", creator=f"0x{index}", verified=True, value=10)
        ledger.unreadable.add("r2")
        cache = RecordCache(ledger)

        snapshot = await cache.refresh()

        assert len(snapshot) == 4
        assert snapshot.get("r2") is None
        assert snapshot.stats.participant_count == 4
        assert snapshot.stats.total_value == 40

    @pytest.mark.asyncio
    async def test_refresh_replaces_rather_than_edits(self, ledger):
        ledger.add_record("r1", verified=True, value=1)
        cache = RecordCache(ledger)
        first = await cache.refresh()

        ledger.add_record("r2", verified=True, value=2)
        second = await cache.refresh()

        assert len(first) == 1
        assert first.stats.total_value == 1
        assert len(second) == 2
        assert second.stats.total_value == 3

    @pytest.mark.asyncio
    async def test_listing_failure_keeps_snapshot(self, ledger):
        ledger.add_record("r1")
        cache = RecordCache(ledger)
        first = await cache.refresh()
        ledger.fail_listing = True

        with pytest.raises(LedgerError):
            await cache.refresh()

        assert cache.snapshot is first
        assert not cache.refreshing

    @pytest.mark.asyncio
    async def test_verified_record_never_reverts(self, ledger):
        ledger.add_record("r1", verified=True, value=42)
        cache = RecordCache(ledger)
        await cache.refresh()

        # A lagging node serves the pre-verification state
        ledger.add_record("r1", verified=False)
        snapshot = await cache.refresh()

        record = snapshot.get("r1")
        assert record.is_verified is True
        assert record.decrypted_value == 42

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_are_coalesced(self, ledger):
        ledger.add_record("r1")
        cache = RecordCache(ledger)
        calls = []
        real_list_ids = ledger.list_record_ids

        async def counting_list():
            calls.append(1)
            return await real_list_ids()

        ledger.list_record_ids = counting_list

        snapshots = await asyncio.gather(*(cache.refresh() for _ in range(6)))

        assert len(calls) == 2
        assert snapshots[-1] is cache.snapshot
