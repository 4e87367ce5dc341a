"""Tests for the execution ledger."""

import json
import multiprocessing
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest import mock

import pytest
from hypothesis import given
from hypothesis import strategies as st

from issuegate.constants import LEDGER_LOCK_NAME
from issuegate.core import ExecutionLedger, LockStore, apply_transition, parse_document
from issuegate.errors import LedgerCorruption, LedgerWriteFailure
from issuegate.models import ExecutionRecord, ExecutionStatus, TriggerKey

KEY = TriggerKey(repo="org/repo", number=42)
OTHER = TriggerKey(repo="org/repo", number=7)


@pytest.mark.unit
class TestFind:
    """Tests for lock-free reads."""

    def test_missing_document_finds_nothing(self, ledger: ExecutionLedger) -> None:
        assert ledger.find(KEY) is None
        assert ledger.records() == []

    def test_find_returns_matching_record(self, ledger: ExecutionLedger) -> None:
        ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS)
        ledger.upsert(OTHER, ExecutionStatus.COMPLETED)

        record = ledger.find(KEY)

        assert record is not None
        assert record.issue_number == 42
        assert record.status == ExecutionStatus.IN_PROGRESS

    def test_kind_is_part_of_the_key(self, ledger: ExecutionLedger) -> None:
        ledger.upsert(KEY, ExecutionStatus.COMPLETED)
        assert ledger.find(TriggerKey(repo="org/repo", number=42, kind="pr")) is None

    def test_corrupt_document_reads_as_empty(self, ledger: ExecutionLedger) -> None:
        ledger.path.write_text('[{"repo": "org/repo", "issue_nu')
        assert ledger.find(KEY) is None
        assert ledger.records() == []

    def test_reads_document_written_by_shell_tooling(self, ledger: ExecutionLedger) -> None:
        """Documents in the original history format are readable."""
        ledger.path.write_text(
            json.dumps(
                [
                    {
                        "repo": "org/repo",
                        "issue_number": 42,
                        "status": "failed",
                        "created_at": "2024-01-01T00:00:00Z",
                        "updated_at": "2024-01-01T00:05:00Z",
                        "retry_count": 1,
                        "details": "Claude execution failed",
                    }
                ]
            )
        )
        record = ledger.find(KEY)
        assert record is not None
        assert record.kind == "issue"
        assert record.retry_count == 1

    def test_records_filter_by_status(self, ledger: ExecutionLedger) -> None:
        ledger.upsert(KEY, ExecutionStatus.FAILED)
        ledger.upsert(OTHER, ExecutionStatus.COMPLETED)
        failed = ledger.records(ExecutionStatus.FAILED)
        assert [r.issue_number for r in failed] == [42]


@pytest.mark.unit
class TestUpsert:
    """Tests for serialized, verified writes."""

    def test_first_upsert_creates_record(self, ledger: ExecutionLedger) -> None:
        record = ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS, "Processing started")

        assert record.retry_count == 0
        assert record.details == "Processing started"
        assert record.created_at == record.updated_at
        assert parse_document(ledger.path.read_text()) == [record]

    def test_retry_count_only_increments_on_failure(self, ledger: ExecutionLedger) -> None:
        ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS)
        assert ledger.upsert(KEY, ExecutionStatus.FAILED).retry_count == 1
        assert ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS).retry_count == 1
        assert ledger.upsert(KEY, ExecutionStatus.FAILED).retry_count == 2
        assert ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS).retry_count == 2
        assert ledger.upsert(KEY, ExecutionStatus.COMPLETED).retry_count == 2

    def test_upsert_preserves_created_at(self, ledger: ExecutionLedger) -> None:
        first = ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS)
        second = ledger.upsert(KEY, ExecutionStatus.COMPLETED)
        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at

    def test_upsert_keeps_other_records_in_order(self, ledger: ExecutionLedger) -> None:
        ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS)
        ledger.upsert(OTHER, ExecutionStatus.IN_PROGRESS)
        ledger.upsert(KEY, ExecutionStatus.COMPLETED)
        assert [r.issue_number for r in ledger.records()] == [42, 7]

    def test_upsert_releases_ledger_lock(self, ledger: ExecutionLedger) -> None:
        ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS)
        assert ledger.lock_store.inspect(LEDGER_LOCK_NAME) is None

    def test_corruption_is_reset_and_write_succeeds(self, ledger: ExecutionLedger) -> None:
        """After corruption the next upsert yields a valid document with the record."""
        ledger.path.write_text("{{{ not json")

        record = ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS)

        assert parse_document(ledger.path.read_text()) == [record]

    def test_wrong_shape_is_corruption(self, ledger: ExecutionLedger) -> None:
        ledger.path.write_text('{"repo": "org/repo"}')
        with pytest.raises(LedgerCorruption):
            parse_document(ledger.path.read_text())
        ledger.upsert(KEY, ExecutionStatus.COMPLETED)
        assert len(ledger.records()) == 1

    def test_busy_ledger_lock_surfaces_write_failure(
        self, home: Path, lock_store: LockStore
    ) -> None:
        ledger = ExecutionLedger(home / "execution_history.json", lock_store, lock_timeout=0.1)
        with lock_store.hold(LEDGER_LOCK_NAME, timeout=0):
            with pytest.raises(LedgerWriteFailure, match="Could not lock ledger"):
                ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS)
        assert not ledger.path.exists()

    def test_persistent_write_error_leaves_document_unchanged(
        self, ledger: ExecutionLedger
    ) -> None:
        original = ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS)
        before = ledger.path.read_bytes()

        with (
            mock.patch("issuegate.core.ledger.os.fsync", side_effect=OSError("disk full")),
            pytest.raises(LedgerWriteFailure, match="after 3 attempts"),
        ):
            ledger.upsert(KEY, ExecutionStatus.COMPLETED)

        assert ledger.path.read_bytes() == before
        assert ledger.find(KEY) == original
        assert list(ledger.path.parent.glob("*.tmp")) == []

    def test_transient_write_error_is_retried(self, ledger: ExecutionLedger) -> None:
        real_write = ExecutionLedger._write
        attempts = {"n": 0}

        def flaky_write(self: ExecutionLedger, records: list[ExecutionRecord]) -> None:
            attempts["n"] += 1
            if attempts["n"] < 3:
                raise OSError("temporarily unavailable")
            real_write(self, records)

        with mock.patch.object(ExecutionLedger, "_write", flaky_write):
            record = ledger.upsert(KEY, ExecutionStatus.COMPLETED)

        assert attempts["n"] == 3
        assert ledger.find(KEY) == record

    def test_unverified_temp_write_is_never_swapped_in(self, ledger: ExecutionLedger) -> None:
        ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS)
        before = ledger.path.read_bytes()

        with (
            mock.patch(
                "issuegate.core.ledger.parse_document",
                side_effect=LedgerCorruption("truncated"),
            ),
            pytest.raises(LedgerWriteFailure),
        ):
            ledger._upsert_locked(KEY, ExecutionStatus.COMPLETED, "")

        assert ledger.path.read_bytes() == before

    def test_concurrent_identical_upserts_make_one_record(
        self, ledger: ExecutionLedger
    ) -> None:
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(lambda _: ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS), range(16))
            )

        records = ledger.records()
        assert len(records) == 1
        assert records[0].retry_count == 0
        assert all(r.retry_count == 0 for r in results)

    def test_concurrent_failures_are_all_counted(self, ledger: ExecutionLedger) -> None:
        """Serialized writers never lose an increment."""
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(lambda _: ledger.upsert(KEY, ExecutionStatus.FAILED), range(6)))
        assert ledger.find(KEY).retry_count == 6


@pytest.mark.unit
class TestApplyTransition:
    """Tests for the pure document transition."""

    NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def test_updated_at_never_moves_backwards(self) -> None:
        records, _ = apply_transition([], KEY, ExecutionStatus.IN_PROGRESS, "", self.NOW)
        earlier = self.NOW - timedelta(minutes=5)

        _, record = apply_transition(records, KEY, ExecutionStatus.COMPLETED, "", earlier)

        assert record.updated_at == self.NOW

    def test_new_failed_record_counts_failure(self) -> None:
        _, record = apply_transition([], KEY, ExecutionStatus.FAILED, "boom", self.NOW)
        assert record.retry_count == 1

    def test_duplicates_collapse_to_one(self) -> None:
        dup = ExecutionRecord(
            repo="org/repo", issue_number=42, status=ExecutionStatus.PENDING, retry_count=3
        )
        records, record = apply_transition(
            [dup, dup.model_copy()], KEY, ExecutionStatus.IN_PROGRESS, "", self.NOW
        )
        assert records == [record]
        assert record.retry_count == 3

    @given(
        statuses=st.lists(st.sampled_from(list(ExecutionStatus)), min_size=1, max_size=20)
    )
    def test_retry_count_equals_failed_transitions(
        self, statuses: list[ExecutionStatus]
    ) -> None:
        records: list[ExecutionRecord] = []
        for status in statuses:
            records, record = apply_transition(records, KEY, status, "", self.NOW)
        assert len(records) == 1
        assert record.retry_count == statuses.count(ExecutionStatus.FAILED)
        assert record.status == statuses[-1]


def _upsert_in_process(home: str, barrier) -> None:
    store = LockStore(Path(home) / "locks", poll_interval=0.01)
    ledger = ExecutionLedger(Path(home) / "execution_history.json", store, lock_timeout=30)
    barrier.wait()
    ledger.upsert(KEY, ExecutionStatus.IN_PROGRESS, "Processing started")


@pytest.mark.slow
def test_concurrent_processes_make_one_record(home: Path, ledger: ExecutionLedger) -> None:
    """Identical upserts from separate processes produce exactly one record."""
    ctx = multiprocessing.get_context("fork")
    workers = 6
    barrier = ctx.Barrier(workers)
    procs = [
        ctx.Process(target=_upsert_in_process, args=(str(home), barrier)) for _ in range(workers)
    ]
    for proc in procs:
        proc.start()
    for proc in procs:
        proc.join(timeout=60)

    assert all(proc.exitcode == 0 for proc in procs)
    records = ledger.records()
    assert len(records) == 1
    assert records[0].retry_count == 0
