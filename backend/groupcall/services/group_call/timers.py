"""
Timer Registry - cancellable delayed tasks keyed by session id.

One registry is created per process and handed to the lifecycle manager.
At most one timer is outstanding per key; scheduling a new one supersedes
the old one.

Cancellation is best-effort: once a timer has fired its action runs to
completion, so actions must re-validate state instead of trusting what was
captured when they were scheduled.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

TimerAction = Callable[[], Awaitable[None]]


class ScheduledTimer:
    """A pending delayed action and its cancellation state."""

    def __init__(self, key: str, delay: float):
        self.key = key
        self.delay = delay
        self.task: Optional[asyncio.Task] = None
        self.fired = False
        self.cancelled = False

    def cancel(self) -> bool:
        """
        Cancel the timer if it has not fired yet.

        Returns:
            True if the action will not run.
        """
        if self.fired:
            return False
        self.cancelled = True
        if self.task is not None and not self.task.done():
            self.task.cancel()
        return True


class TimerRegistry:
    """
    Registry of per-session delayed tasks.

    ``schedule`` and ``cancel`` never await between reading and replacing an
    entry, so they are atomic with respect to other coroutines on the loop.
    """

    def __init__(self):
        self._timers: Dict[str, ScheduledTimer] = {}
        self._fired_count: int = 0

    def schedule(self, key: str, delay: float, action: TimerAction) -> ScheduledTimer:
        """
        Run ``action`` after ``delay`` seconds, replacing any timer for ``key``.

        Args:
            key: Session id
            delay: Seconds to wait
            action: Coroutine function to run when the timer fires

        Returns:
            The new ScheduledTimer
        """
        self._discard(key)

        timer = ScheduledTimer(key, delay)
        timer.task = asyncio.create_task(self._run(timer, action), name=f"timer:{key}")
        self._timers[key] = timer
        logger.debug(f"[Timers] Scheduled timer for {key} ({delay}s)")
        return timer

    def cancel(self, key: str) -> bool:
        """
        Cancel and remove the timer for ``key``.

        Returns:
            True if an entry was removed, False if there was none.
        """
        removed = self._discard(key)
        if removed:
            logger.debug(f"[Timers] Cancelled timer for {key}")
        return removed

    def pending(self, key: str) -> bool:
        """Whether a timer for ``key`` is scheduled and has not fired."""
        timer = self._timers.get(key)
        return timer is not None and not timer.fired and not timer.cancelled

    @property
    def active_count(self) -> int:
        return len(self._timers)

    @property
    def fired_count(self) -> int:
        return self._fired_count

    async def shutdown(self) -> None:
        """Cancel every outstanding timer and wait for them to unwind."""
        timers = list(self._timers.values())
        self._timers.clear()
        if not timers:
            return

        logger.info(f"[Timers] Shutting down {len(timers)} timers")
        for timer in timers:
            timer.cancel()
        tasks = [t.task for t in timers if t.task is not None]
        await asyncio.gather(*tasks, return_exceptions=True)

    def _discard(self, key: str) -> bool:
        timer = self._timers.pop(key, None)
        if timer is None:
            return False
        # A fired timer may be the caller itself; let it finish
        timer.cancel()
        return True

    async def _run(self, timer: ScheduledTimer, action: TimerAction) -> None:
        try:
            await asyncio.sleep(timer.delay)
            if timer.cancelled:
                return
            timer.fired = True
            self._fired_count += 1
            logger.info(f"[Timers] Timer fired for {timer.key}")
            await action()
        except asyncio.CancelledError:
            if timer.fired:
                raise
            logger.debug(f"[Timers] Timer for {timer.key} cancelled before firing")
        except Exception as e:
            logger.error(f"[Timers] Timer action for {timer.key} failed: {e}", exc_info=e)
        finally:
            # Remove our own entry only; a newer timer may have replaced it
            if self._timers.get(timer.key) is timer:
                del self._timers[timer.key]
