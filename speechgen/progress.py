"""Smoothed progress percentage for display."""

from __future__ import annotations

from .types import BatchSnapshot

INTERIM_CEILING = 98.0


class ProgressPresenter:
    """Eases a displayed percentage towards actual batch progress.

    Call :meth:`tick` on a timer. While running the value never regresses and
    stays at or below ``min(actual, INTERIM_CEILING)``; once the run stops it
    climbs to exactly 100.
    """

    def __init__(self, ceiling: float = INTERIM_CEILING) -> None:
        self._ceiling = ceiling
        self._display = 0.0
        self._was_running = False

    @property
    def value(self) -> int:
        return round(self._display)

    def tick(self, completed: int, total: int, running: bool) -> int:
        if running and not self._was_running:
            self._display = 0.0
        self._was_running = running

        if running:
            actual = completed / total * 100 if total > 0 else 0.0
            target = min(actual, self._ceiling)
            if self._display < target:
                step = max(0.5, (target - self._display) * 0.1)
                self._display = min(target, self._display + step)
        elif self._display < 100:
            step = max(2.0, (100 - self._display) * 0.3)
            self._display = min(100.0, self._display + step)
        return self.value

    def tick_snapshot(self, snapshot: BatchSnapshot) -> int:
        return self.tick(snapshot.completed_count, snapshot.total_count, snapshot.is_running)
