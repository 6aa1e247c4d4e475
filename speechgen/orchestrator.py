"""Sequential batch orchestration of per-page script generation.

The orchestrator walks the requested pages one at a time, calls the generation
service through a bounded retry wrapper, and keeps a single mutable state that
observers only ever see as :class:`~speechgen.types.BatchSnapshot` copies.

Cancellation is cooperative: :meth:`BatchOrchestrator.cancel` sets an event that
every suspension point (service call, pacing delay, retry backoff) races
against, so a pending wait ends immediately and an in-flight request is aborted.
The unwinding run raises :class:`~speechgen.errors.GenerationCancelled`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from .clock import AsyncioClock, Clock
from .errors import (
    GenerationCancelled,
    GenerationError,
    RateLimitedError,
    TransientNetworkError,
    classify_failure,
)
from .services.base import ScriptService
from .types import (
    BatchSnapshot,
    CostBreakdown,
    GenerationOptions,
    GenerationOutcome,
    PageDescriptor,
    PageError,
    PageFailure,
    PageSuccess,
    RunStatus,
    TokenUsage,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BASE_DELAY = 1.0
DEFAULT_PACING_DELAY = 3.0

SnapshotListener = Callable[[BatchSnapshot], None]
T = TypeVar("T")


class BatchOrchestrator:
    """Owns batch state and drives the generation service page by page."""

    def __init__(
        self,
        service: ScriptService,
        *,
        topic: str = "",
        options: GenerationOptions | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        pacing_delay: float = DEFAULT_PACING_DELAY,
        clock: Clock | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._service = service
        self.topic = topic
        self.options = options or GenerationOptions()
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.pacing_delay = pacing_delay
        self._clock = clock or AsyncioClock()

        self._results: Dict[int, str] = {}
        self._page_errors: List[PageError] = []
        self._completed_count = 0
        self._total_count = 0
        self._usage: Optional[TokenUsage] = None
        self._cost: Optional[CostBreakdown] = None
        self._error_message: Optional[str] = None
        self._status = RunStatus.IDLE
        self._loading_page: Optional[int] = None

        self._active = False
        self._cancel_event: Optional[asyncio.Event] = None
        self._listeners: List[SnapshotListener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    def snapshot(self) -> BatchSnapshot:
        """Return a read-only copy of the current state."""
        return BatchSnapshot(
            results=dict(self._results),
            page_errors=tuple(self._page_errors),
            completed_count=self._completed_count,
            total_count=self._total_count,
            usage_summary=self._usage,
            cost_summary=self._cost,
            error_message=self._error_message,
            status=self._status,
            loading_page=self._loading_page,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register ``listener`` for every published snapshot; returns an unsubscribe hook."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def results(self) -> Dict[int, str]:
        return dict(self._results)

    @property
    def page_errors(self) -> List[PageError]:
        return list(self._page_errors)

    @property
    def completed_count(self) -> int:
        return self._completed_count

    @property
    def total_count(self) -> int:
        return self._total_count

    @property
    def usage_summary(self) -> Optional[TokenUsage]:
        return self._usage

    @property
    def cost_summary(self) -> Optional[CostBreakdown]:
        return self._cost

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def is_running(self) -> bool:
        return self._active

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def cancel(self) -> None:
        """Request cancellation of the active run; a no-op when idle."""
        if not self._active or self._cancel_event is None:
            logger.debug("cancel() ignored: no run in progress")
            return
        if self._cancel_event.is_set():
            return
        logger.info("Cancellation requested")
        self._cancel_event.set()

    def reset(self) -> None:
        """Drop results, errors and aggregates from previous runs."""
        if self._active:
            raise RuntimeError("cannot reset while a generation run is in progress")
        self._results = {}
        self._page_errors = []
        self._completed_count = 0
        self._total_count = 0
        self._usage = None
        self._cost = None
        self._error_message = None
        self._status = RunStatus.IDLE
        self._loading_page = None
        self._publish()

    async def generate_all(self, pages: Iterable[PageDescriptor], *, clear_results: bool = False) -> None:
        """Generate scripts for every page in order.

        Per-page failures end up in ``page_errors``; only cancellation (as
        :class:`GenerationCancelled`) or an unexpected bug escapes this call.
        """
        pages = list(pages)
        _check_pages(pages)

        self._begin_run()
        if clear_results:
            self._results = {}
        self._page_errors = []
        self._error_message = None
        self._usage = None
        self._cost = None
        self._completed_count = 0
        self._total_count = len(pages)
        self._publish()
        logger.info("Starting batch of %d page(s)", len(pages))

        try:
            for position, page in enumerate(pages):
                self._raise_if_cancelled()
                outcome = await self._generate_with_retry(page)
                self._record(outcome)
                self._publish()

                if position < len(pages) - 1:
                    await self._interruptible(self._clock.sleep(self.pacing_delay))
                self._completed_count = position + 1
                logger.info("Progress %d/%d", self._completed_count, self._total_count)
                self._publish()
        except GenerationCancelled:
            self._status = RunStatus.CANCELLED
            logger.info("Batch cancelled after %d/%d page(s)", self._completed_count, self._total_count)
            raise
        except asyncio.CancelledError:
            self._status = RunStatus.CANCELLED
            raise
        except Exception as exc:
            self._status = RunStatus.FINISHED
            self._error_message = f"Batch generation aborted: {exc}"
            raise
        else:
            self._error_message = _summarize_failures(len(self._page_errors), len(pages))
            self._status = RunStatus.FINISHED
            if self._error_message:
                logger.warning(self._error_message)
            else:
                logger.info("Batch finished: %d page(s) generated", len(pages))
        finally:
            self._end_run()

    async def generate_one(self, page: PageDescriptor) -> None:
        """Regenerate a single page without touching batch progress counters."""
        self._begin_run()
        self._loading_page = page.index
        self._error_message = None
        self._page_errors = [error for error in self._page_errors if error.page_index != page.index]
        self._publish()

        try:
            outcome = await self._generate_with_retry(page)
            if isinstance(outcome, PageFailure):
                # a page is either generated or failed, never both
                self._results.pop(page.index, None)
                self._error_message = f"Page {page.number} failed: {outcome.reason}"
            self._record(outcome)
        except (GenerationCancelled, asyncio.CancelledError):
            self._status = RunStatus.CANCELLED
            raise
        except Exception:
            self._status = RunStatus.FINISHED
            raise
        else:
            self._status = RunStatus.FINISHED
        finally:
            self._end_run()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _begin_run(self) -> None:
        if self._active:
            raise RuntimeError("a generation run is already in progress")
        self._active = True
        self._cancel_event = asyncio.Event()
        self._status = RunStatus.RUNNING

    def _end_run(self) -> None:
        self._active = False
        self._loading_page = None
        if self._cancel_event is not None:
            self._cancel_event.clear()
        self._publish()

    def _raise_if_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise GenerationCancelled("generation cancelled by caller")

    def _record(self, outcome: GenerationOutcome) -> None:
        if isinstance(outcome, PageSuccess):
            self._results[outcome.page_index] = outcome.content
            if outcome.usage is not None:
                self._usage = outcome.usage if self._usage is None else self._usage + outcome.usage
            if outcome.cost is not None:
                self._cost = outcome.cost if self._cost is None else self._cost + outcome.cost
            return
        self._page_errors.append(PageError(page_index=outcome.page_index, reason=outcome.reason))
        logger.error("Page %d failed: %s", outcome.page_index + 1, outcome.reason)

    async def _generate_with_retry(self, page: PageDescriptor) -> GenerationOutcome:
        attempt = 0
        while True:
            self._raise_if_cancelled()
            try:
                script = await self._interruptible(self._service.generate(self.topic, page, self.options))
            except GenerationCancelled:
                raise
            except Exception as exc:
                failure = classify_failure(exc)
                retryable = isinstance(failure, (RateLimitedError, TransientNetworkError))
                if retryable and attempt < self.max_retries:
                    delay = self._backoff_delay(failure, attempt)
                    attempt += 1
                    logger.warning(
                        "Page %d attempt %d/%d failed (%s); retrying in %.1fs",
                        page.number,
                        attempt,
                        self.max_retries + 1,
                        failure,
                        delay,
                    )
                    await self._interruptible(self._clock.sleep(delay))
                    continue
                return _failure_for(page, failure, attempts=attempt + 1)

            content = (script.content or "").strip()
            if not content:
                return PageFailure(page_index=page.index, reason=f"Empty completion received for page {page.number}")
            return PageSuccess(page_index=page.index, content=content, usage=script.usage, cost=script.cost)

    def _backoff_delay(self, failure: GenerationError, attempt: int) -> float:
        if isinstance(failure, RateLimitedError):
            return self.retry_base_delay * (2 ** attempt)
        return self.retry_base_delay * (attempt + 1)

    async def _interruptible(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless cancellation is requested first."""
        task = asyncio.ensure_future(awaitable)
        event = self._cancel_event
        if event is None:
            return await task

        cancel_waiter = asyncio.ensure_future(event.wait())
        try:
            await asyncio.wait({task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            cancel_waiter.cancel()

        if event.is_set():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise GenerationCancelled("generation cancelled by caller")
        if task.cancelled():
            # the transport aborted the request; never treat that as retryable
            raise GenerationCancelled("request aborted")
        return task.result()


def _check_pages(pages: List[PageDescriptor]) -> None:
    if not pages:
        raise ValueError("generate_all requires at least one page")
    seen: set[int] = set()
    for page in pages:
        if page.index in seen:
            raise ValueError(f"duplicate page index {page.index}")
        seen.add(page.index)


def _failure_for(page: PageDescriptor, failure: GenerationError, *, attempts: int) -> PageFailure:
    is_rate_limited = isinstance(failure, RateLimitedError)
    is_transient = isinstance(failure, TransientNetworkError)
    reason = str(failure) or failure.__class__.__name__
    if is_rate_limited:
        reason = f"Rate limited after {attempts} attempt(s): {reason}"
    elif is_transient:
        reason = f"Network error after {attempts} attempt(s): {reason}"
    return PageFailure(
        page_index=page.index,
        reason=reason,
        is_rate_limited=is_rate_limited,
        is_transient_network=is_transient,
    )


def _summarize_failures(failed: int, total: int) -> Optional[str]:
    if failed == 0:
        return None
    succeeded = total - failed
    if succeeded == 0:
        return f"all {total} pages failed"
    return f"{failed} pages failed (success {succeeded}/{total})"


__all__ = [
    "BatchOrchestrator",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_PACING_DELAY",
    "DEFAULT_RETRY_BASE_DELAY",
]
