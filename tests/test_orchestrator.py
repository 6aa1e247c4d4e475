"""Behavioural tests for the batch orchestrator."""

from __future__ import annotations

import asyncio
import random
import unittest

from speechgen.errors import (
    GenerationCancelled,
    GenerationError,
    RateLimitedError,
    TransientNetworkError,
)
from speechgen.orchestrator import BatchOrchestrator
from speechgen.types import (
    CostBreakdown,
    PageDescriptor,
    PageScript,
    RunStatus,
    TokenUsage,
)


def _pages(count: int) -> list[PageDescriptor]:
    return [PageDescriptor(index=i, image_data=f"data:image/png;base64,page{i}") for i in range(count)]


class FakeClock:
    """Records requested delays and yields control instead of sleeping."""

    def __init__(self) -> None:
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        await asyncio.sleep(0)


class BlockingClock:
    """A clock whose sleeps never finish on their own."""

    def __init__(self) -> None:
        self.waiting = asyncio.Event()

    async def sleep(self, seconds: float) -> None:
        self.waiting.set()
        await asyncio.Event().wait()


class ScriptedService:
    """Generation service whose per-page behaviour is scripted attempt by attempt."""

    def __init__(
        self,
        behaviours: dict[int, list[object]] | None = None,
        usage: TokenUsage | None = None,
        cost: CostBreakdown | None = None,
        latency: dict[int, float] | None = None,
    ) -> None:
        self.behaviours = {index: list(actions) for index, actions in (behaviours or {}).items()}
        self.usage = usage
        self.cost = cost
        self.latency = latency or {}
        self.calls: list[int] = []

    async def generate(self, topic, page, options) -> PageScript:
        self.calls.append(page.index)
        delay = self.latency.get(page.index)
        if delay:
            await asyncio.sleep(delay)
        actions = self.behaviours.get(page.index)
        action = actions.pop(0) if actions else None
        if isinstance(action, BaseException):
            raise action
        content = action if isinstance(action, str) else f"script for page {page.index + 1}"
        return PageScript(page_index=page.index, content=content, usage=self.usage, cost=self.cost)


class HangingService:
    """Blocks forever on the first page so tests can cancel an in-flight call."""

    def __init__(self) -> None:
        self.calls: list[int] = []
        self.started = asyncio.Event()
        self.aborted = False

    async def generate(self, topic, page, options) -> PageScript:
        self.calls.append(page.index)
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.aborted = True
            raise
        return PageScript(page_index=page.index, content="unreachable")


class HttpError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def _orchestrator(service, clock=None, **kwargs) -> BatchOrchestrator:
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("retry_base_delay", 1.0)
    kwargs.setdefault("pacing_delay", 3.0)
    return BatchOrchestrator(service, topic="Health plan", clock=clock or FakeClock(), **kwargs)


class BatchOutcomeTest(unittest.IsolatedAsyncioTestCase):
    """Partial failure, retries and aggregation."""

    async def test_one_bad_page_does_not_sink_the_batch(self) -> None:
        service = ScriptedService({2: [GenerationError("invalid request")] * 5})
        orchestrator = _orchestrator(service)

        await orchestrator.generate_all(_pages(5))

        self.assertEqual(sorted(orchestrator.results), [0, 1, 3, 4])
        self.assertEqual([error.page_index for error in orchestrator.page_errors], [2])
        self.assertEqual(orchestrator.page_errors[0].reason, "invalid request")
        self.assertEqual(service.calls.count(2), 1, "non-retryable errors must not be retried")
        self.assertEqual(orchestrator.error_message, "1 pages failed (success 4/5)")
        self.assertEqual(orchestrator.status, RunStatus.FINISHED)

    async def test_rate_limit_exhausts_retry_budget(self) -> None:
        clock = FakeClock()
        service = ScriptedService({0: [RateLimitedError("429 Too Many Requests")] * 10})
        orchestrator = _orchestrator(service, clock=clock, max_retries=2)

        await orchestrator.generate_all(_pages(1))

        self.assertEqual(service.calls, [0, 0, 0])
        self.assertEqual(orchestrator.results, {})
        self.assertEqual(len(orchestrator.page_errors), 1)
        self.assertIn("Rate limited", orchestrator.page_errors[0].reason)
        self.assertEqual(clock.sleeps, [1.0, 2.0])
        self.assertEqual(orchestrator.error_message, "all 1 pages failed")

    async def test_rate_limit_backoff_is_exponential(self) -> None:
        clock = FakeClock()
        service = ScriptedService({0: [HttpError("slow down", 429)] * 3 + ["recovered"]})
        orchestrator = _orchestrator(service, clock=clock, max_retries=3)

        await orchestrator.generate_all(_pages(1))

        self.assertEqual(orchestrator.results, {0: "recovered"})
        self.assertEqual(clock.sleeps, [1.0, 2.0, 4.0])

    async def test_transient_failures_recover(self) -> None:
        clock = FakeClock()
        service = ScriptedService(
            {0: [TransientNetworkError("connection reset"), TransientNetworkError("timed out"), "third time lucky"]}
        )
        orchestrator = _orchestrator(service, clock=clock, max_retries=3)

        await orchestrator.generate_all(_pages(1))

        self.assertEqual(orchestrator.results, {0: "third time lucky"})
        self.assertEqual(orchestrator.page_errors, [])
        self.assertEqual(service.calls, [0, 0, 0])
        self.assertEqual(clock.sleeps, [1.0, 2.0])

    async def test_builtin_connection_errors_are_retried(self) -> None:
        service = ScriptedService({0: [ConnectionResetError("peer reset"), "ok"]})
        orchestrator = _orchestrator(service)

        await orchestrator.generate_all(_pages(1))

        self.assertEqual(orchestrator.results, {0: "ok"})

    async def test_rate_limit_marker_in_message_is_retried(self) -> None:
        service = ScriptedService({0: [RuntimeError("Rate Limit reached for requests"), "ok"]})
        orchestrator = _orchestrator(service)

        await orchestrator.generate_all(_pages(1))

        self.assertEqual(service.calls, [0, 0])
        self.assertEqual(orchestrator.results, {0: "ok"})

    async def test_empty_completion_is_terminal(self) -> None:
        service = ScriptedService({0: ["   "]})
        orchestrator = _orchestrator(service)

        await orchestrator.generate_all(_pages(2))

        self.assertEqual(sorted(orchestrator.results), [1])
        self.assertEqual(orchestrator.page_errors[0].reason, "Empty completion received for page 1")
        self.assertEqual(service.calls, [0, 1])

    async def test_random_latency_keeps_order_and_coverage(self) -> None:
        rng = random.Random(7)
        latency = {index: rng.uniform(0, 0.01) for index in range(5)}
        service = ScriptedService({3: [GenerationError("bad page")]}, latency=latency)
        orchestrator = _orchestrator(service)

        await orchestrator.generate_all(_pages(5))

        self.assertEqual(service.calls, [0, 1, 2, 3, 4])
        self.assertEqual(sorted(orchestrator.results), [0, 1, 2, 4])
        self.assertEqual(orchestrator.completed_count, 5)

    async def test_usage_and_cost_accumulate(self) -> None:
        service = ScriptedService(
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
            cost=CostBreakdown(input_cost=0.0004, output_cost=0.0006, total_cost=0.001),
        )
        orchestrator = _orchestrator(service)

        await orchestrator.generate_all(_pages(3))

        self.assertEqual(
            orchestrator.usage_summary,
            TokenUsage(prompt_tokens=30, completion_tokens=15, total_tokens=45),
        )
        self.assertAlmostEqual(orchestrator.cost_summary.total_cost, 0.003)
        self.assertAlmostEqual(orchestrator.cost_summary.input_cost, 0.0012)

    async def test_missing_usage_is_tolerated(self) -> None:
        orchestrator = _orchestrator(ScriptedService())

        await orchestrator.generate_all(_pages(2))

        self.assertIsNone(orchestrator.usage_summary)
        self.assertIsNone(orchestrator.cost_summary)

    async def test_reset_clears_state_between_runs(self) -> None:
        service = ScriptedService(
            {1: [GenerationError("bad")]},
            usage=TokenUsage(1, 1, 2),
            cost=CostBreakdown(0.1, 0.1, 0.2),
        )
        orchestrator = _orchestrator(service)
        await orchestrator.generate_all(_pages(2))

        orchestrator.reset()
        snapshot = orchestrator.snapshot()
        self.assertEqual(snapshot.results, {})
        self.assertEqual(snapshot.page_errors, ())
        self.assertIsNone(snapshot.usage_summary)
        self.assertIsNone(snapshot.cost_summary)
        self.assertIsNone(snapshot.error_message)
        self.assertEqual(snapshot.status, RunStatus.IDLE)

        orchestrator.reset()
        await orchestrator.generate_all(_pages(2))
        self.assertEqual(sorted(orchestrator.results), [0, 1])
        self.assertEqual(orchestrator.usage_summary, TokenUsage(2, 2, 4))

    async def test_previous_results_survive_unless_cleared(self) -> None:
        orchestrator = _orchestrator(ScriptedService())
        await orchestrator.generate_all(_pages(3))

        await orchestrator.generate_all(_pages(1))
        self.assertEqual(sorted(orchestrator.results), [0, 1, 2])

        await orchestrator.generate_all(_pages(1), clear_results=True)
        self.assertEqual(sorted(orchestrator.results), [0])

    async def test_invalid_page_lists_are_rejected(self) -> None:
        orchestrator = _orchestrator(ScriptedService())
        with self.assertRaises(ValueError):
            await orchestrator.generate_all([])
        duplicate = [PageDescriptor(index=1, image_data="a"), PageDescriptor(index=1, image_data="b")]
        with self.assertRaises(ValueError):
            await orchestrator.generate_all(duplicate)
        self.assertEqual(orchestrator.status, RunStatus.IDLE)


class ProgressTest(unittest.IsolatedAsyncioTestCase):
    """Published snapshots and pacing."""

    async def test_snapshots_are_monotonic(self) -> None:
        service = ScriptedService({1: [GenerationError("bad")]})
        orchestrator = _orchestrator(service)
        seen = []
        orchestrator.subscribe(seen.append)

        await orchestrator.generate_all(_pages(4))

        counts = [snapshot.completed_count for snapshot in seen]
        sizes = [len(snapshot.results) + len(snapshot.page_errors) for snapshot in seen]
        self.assertEqual(counts, sorted(counts))
        self.assertEqual(sizes, sorted(sizes))
        self.assertTrue(all(snapshot.total_count == 4 for snapshot in seen))
        self.assertEqual(seen[-1].status, RunStatus.FINISHED)
        self.assertEqual(seen[-1].completed_count, 4)

    async def test_pacing_between_pages_only(self) -> None:
        clock = FakeClock()
        orchestrator = _orchestrator(ScriptedService(), clock=clock, pacing_delay=2.5)

        await orchestrator.generate_all(_pages(3))

        self.assertEqual(clock.sleeps, [2.5, 2.5])

    async def test_progress_advances_after_pacing(self) -> None:
        observed: list[int] = []

        class ObservingClock:
            async def sleep(self, seconds: float) -> None:
                observed.append(orchestrator.completed_count)
                await asyncio.sleep(0)

        orchestrator = _orchestrator(ScriptedService(), clock=ObservingClock())
        await orchestrator.generate_all(_pages(3))

        self.assertEqual(observed, [0, 1])
        self.assertEqual(orchestrator.completed_count, 3)

    async def test_snapshots_are_copies(self) -> None:
        orchestrator = _orchestrator(ScriptedService())
        await orchestrator.generate_all(_pages(1))

        snapshot = orchestrator.snapshot()
        snapshot.results[99] = "tampered"
        self.assertNotIn(99, orchestrator.results)

    async def test_unsubscribe_stops_notifications(self) -> None:
        orchestrator = _orchestrator(ScriptedService())
        seen = []
        unsubscribe = orchestrator.subscribe(seen.append)
        unsubscribe()

        await orchestrator.generate_all(_pages(1))
        self.assertEqual(seen, [])


class CancellationTest(unittest.IsolatedAsyncioTestCase):
    """Cooperative cancellation semantics."""

    async def test_cancel_after_third_page(self) -> None:
        service = ScriptedService()
        orchestrator = _orchestrator(service)

        def _cancel_on_third(snapshot) -> None:
            if len(snapshot.results) == 3:
                orchestrator.cancel()

        orchestrator.subscribe(_cancel_on_third)

        with self.assertRaises(GenerationCancelled):
            await orchestrator.generate_all(_pages(10))

        self.assertLessEqual(len(orchestrator.results), 3)
        self.assertEqual(service.calls, [0, 1, 2])
        self.assertEqual(orchestrator.page_errors, [])
        self.assertEqual(orchestrator.status, RunStatus.CANCELLED)

    async def test_cancel_interrupts_pacing_delay(self) -> None:
        clock = BlockingClock()
        orchestrator = _orchestrator(ScriptedService(), clock=clock)
        task = asyncio.create_task(orchestrator.generate_all(_pages(2)))

        await asyncio.wait_for(clock.waiting.wait(), timeout=1)
        orchestrator.cancel()

        with self.assertRaises(GenerationCancelled):
            await asyncio.wait_for(task, timeout=1)
        self.assertEqual(orchestrator.results, {0: "script for page 1"})
        self.assertEqual(orchestrator.completed_count, 0)

    async def test_cancel_aborts_in_flight_call_without_retry(self) -> None:
        service = HangingService()
        orchestrator = _orchestrator(service)
        task = asyncio.create_task(orchestrator.generate_all(_pages(3)))

        await asyncio.wait_for(service.started.wait(), timeout=1)
        orchestrator.cancel()

        with self.assertRaises(GenerationCancelled):
            await asyncio.wait_for(task, timeout=1)
        self.assertTrue(service.aborted)
        self.assertEqual(service.calls, [0])
        self.assertEqual(orchestrator.page_errors, [])

    async def test_transport_abort_is_not_retried(self) -> None:
        service = ScriptedService({0: [asyncio.CancelledError()]})
        orchestrator = _orchestrator(service)

        with self.assertRaises(GenerationCancelled):
            await orchestrator.generate_all(_pages(2))
        self.assertEqual(service.calls, [0])

    async def test_cancel_interrupts_retry_backoff(self) -> None:
        clock = BlockingClock()
        service = ScriptedService({0: [RateLimitedError("rate limit")] * 3})
        orchestrator = _orchestrator(service, clock=clock)
        task = asyncio.create_task(orchestrator.generate_all(_pages(1)))

        await asyncio.wait_for(clock.waiting.wait(), timeout=1)
        orchestrator.cancel()

        with self.assertRaises(GenerationCancelled):
            await asyncio.wait_for(task, timeout=1)
        self.assertEqual(service.calls, [0])
        self.assertEqual(orchestrator.page_errors, [])

    async def test_flag_resets_after_unwinding(self) -> None:
        service = ScriptedService()
        orchestrator = _orchestrator(service)
        unsubscribe = orchestrator.subscribe(
            lambda snapshot: orchestrator.cancel() if len(snapshot.results) == 1 else None
        )

        with self.assertRaises(GenerationCancelled):
            await orchestrator.generate_all(_pages(3))

        unsubscribe()
        await orchestrator.generate_all(_pages(3))
        self.assertEqual(orchestrator.status, RunStatus.FINISHED)
        self.assertEqual(sorted(orchestrator.results), [0, 1, 2])

    async def test_cancel_when_idle_is_noop(self) -> None:
        orchestrator = _orchestrator(ScriptedService())
        orchestrator.cancel()
        orchestrator.cancel()

        self.assertEqual(orchestrator.status, RunStatus.IDLE)
        await orchestrator.generate_all(_pages(2))
        self.assertEqual(orchestrator.status, RunStatus.FINISHED)

    async def test_concurrent_runs_are_rejected(self) -> None:
        clock = BlockingClock()
        orchestrator = _orchestrator(ScriptedService(), clock=clock)
        task = asyncio.create_task(orchestrator.generate_all(_pages(2)))
        await asyncio.wait_for(clock.waiting.wait(), timeout=1)

        with self.assertRaises(RuntimeError):
            await orchestrator.generate_one(_pages(1)[0])

        orchestrator.cancel()
        with self.assertRaises(GenerationCancelled):
            await task


class GenerateOneTest(unittest.IsolatedAsyncioTestCase):
    """Single-page regeneration."""

    async def test_retrying_a_failed_page(self) -> None:
        service = ScriptedService(
            {2: [GenerationError("bad request"), "fixed"]},
            usage=TokenUsage(10, 5, 15),
        )
        orchestrator = _orchestrator(service)
        pages = _pages(3)
        await orchestrator.generate_all(pages)
        self.assertEqual(orchestrator.snapshot().failed_pages, [2])

        await orchestrator.generate_one(pages[2])

        self.assertEqual(orchestrator.results[2], "fixed")
        self.assertEqual(orchestrator.page_errors, [])
        self.assertIsNone(orchestrator.error_message)
        self.assertEqual(orchestrator.completed_count, 3)
        self.assertEqual(orchestrator.usage_summary, TokenUsage(30, 15, 45))

    async def test_single_page_failure_is_reported(self) -> None:
        clock = FakeClock()
        service = ScriptedService({0: [GenerationError("boom")]})
        orchestrator = _orchestrator(service, clock=clock)

        await orchestrator.generate_one(_pages(1)[0])

        self.assertEqual([error.page_index for error in orchestrator.page_errors], [0])
        self.assertEqual(orchestrator.error_message, "Page 1 failed: boom")
        self.assertEqual(orchestrator.total_count, 0)
        self.assertEqual(clock.sleeps, [])
        self.assertEqual(orchestrator.status, RunStatus.FINISHED)

    async def test_failed_regeneration_drops_previous_script(self) -> None:
        service = ScriptedService({1: ["first draft", GenerationError("content filter")]})
        orchestrator = _orchestrator(service)
        pages = _pages(2)
        await orchestrator.generate_all(pages)
        self.assertEqual(orchestrator.results[1], "first draft")

        await orchestrator.generate_one(pages[1])

        self.assertNotIn(1, orchestrator.results)
        self.assertEqual(orchestrator.snapshot().failed_pages, [1])
        self.assertEqual(sorted(orchestrator.results), [0])

    async def test_single_page_cancellation(self) -> None:
        service = HangingService()
        orchestrator = _orchestrator(service)
        task = asyncio.create_task(orchestrator.generate_one(_pages(1)[0]))

        await asyncio.wait_for(service.started.wait(), timeout=1)
        self.assertEqual(orchestrator.snapshot().loading_page, 0)
        orchestrator.cancel()

        with self.assertRaises(GenerationCancelled):
            await asyncio.wait_for(task, timeout=1)
        self.assertEqual(orchestrator.status, RunStatus.CANCELLED)
        self.assertIsNone(orchestrator.snapshot().loading_page)


if __name__ == "__main__":
    unittest.main()
