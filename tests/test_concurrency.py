"""Tests for the bounded worker pool, cancellation token and issue collector."""

import asyncio
import threading
import time

import pytest

from vault_build.errors import BuildCancelledError
from vault_build.types.issues import Severity
from vault_build.utils.concurrency import CancellationToken, chunked, run_bounded
from vault_build.utils.issues import IssueCollector


class TestRunBounded:
    """Test run_bounded ordering, limits and failure handling."""

    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        """Results come back in input order regardless of completion order."""
        async def worker(n: int) -> int:
            await asyncio.sleep(0.001 * (5 - n))
            return n * 10

        assert await run_bounded(range(5), worker, concurrency=5) == [0, 10, 20, 30, 40]

    @pytest.mark.asyncio
    async def test_concurrency_limit_respected(self):
        """No more than `concurrency` workers run at once."""
        active = 0
        peak = 0

        async def worker(_: int) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.005)
            active -= 1

        await run_bounded(range(10), worker, concurrency=3)
        assert peak <= 3

    @pytest.mark.asyncio
    async def test_unlimited_concurrency(self):
        """-1 runs everything at once."""
        async def worker(n: int) -> int:
            return n

        assert await run_bounded([1, 2, 3], worker, concurrency=-1) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        """Empty input returns an empty list without calling the worker."""
        async def worker(n: int) -> int:
            raise AssertionError("should not be called")

        assert await run_bounded([], worker, concurrency=2) == []

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self):
        """Zero concurrency is rejected."""
        async def worker(n: int) -> int:
            return n

        with pytest.raises(ValueError):
            await run_bounded([1], worker, concurrency=0)

    @pytest.mark.asyncio
    async def test_first_failure_propagates(self):
        """A worker exception propagates to the caller."""
        async def worker(n: int) -> int:
            if n == 2:
                raise RuntimeError("boom")
            await asyncio.sleep(0.001)
            return n

        with pytest.raises(RuntimeError, match="boom"):
            await run_bounded(range(5), worker, concurrency=2)

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_work(self):
        """A tripped token raises BuildCancelledError before items start."""
        token = CancellationToken()
        started: list[int] = []

        async def worker(n: int) -> int:
            started.append(n)
            if n == 0:
                token.cancel("test")
            await asyncio.sleep(0)
            return n

        with pytest.raises(BuildCancelledError):
            await run_bounded(range(10), worker, concurrency=1, token=token)
        assert len(started) < 10

    @pytest.mark.asyncio
    async def test_failure_waits_for_started_workers(self):
        """A failure surfaces only after running workers finish; queued items never start."""
        started: list[int] = []
        finished: list[int] = []

        async def worker(n: int) -> int:
            started.append(n)
            if n == 1:
                raise RuntimeError("boom")
            await asyncio.to_thread(time.sleep, 0.1)
            finished.append(n)
            return n

        with pytest.raises(RuntimeError, match="boom"):
            await run_bounded(range(6), worker, concurrency=3)
        assert started == [0, 1]
        assert finished == [0]

    @pytest.mark.asyncio
    async def test_cancel_waits_for_thread_work(self):
        """Cancellation returns only after a worker blocked in a thread has finished."""
        token = CancellationToken()
        written: list[str] = []

        def slow_write(n: int) -> None:
            time.sleep(0.1)
            written.append(f"item-{n}")

        async def worker(n: int) -> int:
            if n == 1:
                await asyncio.sleep(0.01)
                token.cancel("stop")
                token.raise_if_cancelled()
            await asyncio.to_thread(slow_write, n)
            return n

        with pytest.raises(BuildCancelledError):
            await run_bounded(range(4), worker, concurrency=2, token=token)
        assert written == ["item-0"]


class TestCancellationToken:
    """Test the cancellation token."""

    def test_first_reason_wins(self):
        """Cancel is idempotent and keeps the first reason."""
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        """raise_if_cancelled only raises once tripped."""
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(BuildCancelledError):
            token.raise_if_cancelled()


def test_chunked_splits_evenly():
    """chunked keeps order and puts the remainder last."""
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]


def test_chunked_rejects_zero():
    """Chunk size must be positive."""
    with pytest.raises(ValueError):
        chunked([1], 0)


class TestIssueCollector:
    """Test the thread-safe issue collector."""

    def test_parallel_appends_not_lost(self):
        """Appends from many threads are all recorded."""
        collector = IssueCollector()

        def add_many(worker: int) -> None:
            for i in range(200):
                collector.add(Severity.INFO, "test", f"{worker}-{i}")

        threads = [threading.Thread(target=add_many, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(collector) == 1600

    def test_issues_sorted_deterministically(self):
        """The ledger order does not depend on append order."""
        a = IssueCollector()
        b = IssueCollector()
        a.add_broken_link("z.md", "missing")
        a.add_missing_media("a.md", "gone.png")
        b.add_missing_media("a.md", "gone.png")
        b.add_broken_link("z.md", "missing")
        assert [i.model_dump() for i in a.issues] == [i.model_dump() for i in b.issues]

    def test_stage_attached(self):
        """Issues carry the current stage unless one is given."""
        collector = IssueCollector()
        collector.set_stage("ingesting")
        issue = collector.add_ingest_error("bad.md", "broken")
        assert issue.stage == "ingesting"
        assert issue.severity == Severity.ERROR

    def test_count_at_least(self):
        """count_at_least respects severity ranking."""
        collector = IssueCollector()
        collector.add_slug_conflict("a.md", "a", "a-2")
        collector.add_broken_link("a.md", "x")
        collector.add_ingest_error("b.md", "bad")
        assert collector.count_at_least("info") == 3
        assert collector.count_at_least("warning") == 2
        assert collector.count_at_least("error") == 1

    def test_report_summary(self):
        """report() counts issues by severity, category and stage."""
        collector = IssueCollector()
        collector.set_stage("ingesting")
        collector.add_broken_link("a.md", "x")
        collector.add_broken_link("b.md", "y")
        collector.add_plugin_error("database", "failed")

        report = collector.report()
        assert report.summary.total == 3
        assert report.summary.by_category == {"broken-link": 2, "plugin": 1}
        assert report.summary.by_severity == {"error": 1, "warning": 2}
        assert report.summary.by_stage == {"ingesting": 3}
