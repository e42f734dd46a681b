"""Tests for the bounded command log."""

from __future__ import annotations

import pytest

from scriptrelay.relay.log import DEFAULT_CAPACITY, DEFAULT_MAX_AGE_MS, CommandLog
from scriptrelay.relay.models import CommandRecord

T0 = 1_700_000_000_000


def _record(timestamp: int, command: str = "say") -> CommandRecord:
    return CommandRecord(script_id="s1", sender_id="A", command=command, timestamp=timestamp)


@pytest.fixture
def log() -> CommandLog:
    return CommandLog()


class TestCommandLogAppend:
    def test_defaults(self, log: CommandLog) -> None:
        assert log.capacity == DEFAULT_CAPACITY == 100
        assert log.max_age_ms == DEFAULT_MAX_AGE_MS == 300_000
        assert len(log) == 0

    def test_append_keeps_insertion_order(self, log: CommandLog) -> None:
        for i in range(3):
            log.append(_record(T0 + i, command=f"c{i}"))
        assert [r.command for r in log.snapshot()] == ["c0", "c1", "c2"]

    def test_snapshot_is_a_copy(self, log: CommandLog) -> None:
        log.append(_record(T0))
        snap = log.snapshot()
        snap.clear()
        assert len(log) == 1


class TestCommandLogTrim:
    def test_trim_under_capacity_is_noop(self, log: CommandLog) -> None:
        log.append(_record(T0))
        assert log.trim_to_capacity() == 0
        assert len(log) == 1

    def test_trim_keeps_most_recent(self, log: CommandLog) -> None:
        for i in range(150):
            log.append(_record(T0 + i, command=f"c{i}"))
            log.trim_to_capacity()
            assert len(log) <= 100
        records = log.snapshot()
        assert len(records) == 100
        assert records[0].command == "c50"
        assert records[-1].command == "c149"

    def test_trim_reports_evicted(self) -> None:
        log = CommandLog(capacity=2)
        for i in range(5):
            log.append(_record(T0 + i))
        assert log.trim_to_capacity() == 3
        assert len(log) == 2


class TestCommandLogPrune:
    def test_prune_drops_old_records(self, log: CommandLog) -> None:
        now = T0 + 600_000
        log.append(_record(now - 400_000, command="old"))
        log.append(_record(now - 10_000, command="fresh"))
        removed = log.prune_by_age(now)
        assert removed == 1
        assert [r.command for r in log.snapshot()] == ["fresh"]

    def test_prune_keeps_record_at_cutoff(self, log: CommandLog) -> None:
        now = T0 + 600_000
        log.append(_record(now - 300_000, command="edge"))
        log.append(_record(now - 300_001, command="stale"))
        log.prune_by_age(now)
        assert [r.command for r in log.snapshot()] == ["edge"]

    def test_prune_preserves_order(self, log: CommandLog) -> None:
        now = T0 + 600_000
        for i, age in enumerate([1_000, 500_000, 2_000, 3_000]):
            log.append(_record(now - age, command=f"c{i}"))
        log.prune_by_age(now)
        assert [r.command for r in log.snapshot()] == ["c0", "c2", "c3"]

    def test_no_record_older_than_max_age_survives(self) -> None:
        log = CommandLog(max_age_ms=1_000)
        for i in range(20):
            log.append(_record(T0 + i * 200))
        prune_at = T0 + 3_000
        log.prune_by_age(prune_at)
        assert all(r.timestamp >= prune_at - 1_000 for r in log.snapshot())
