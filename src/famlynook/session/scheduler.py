"""Background timer that renews tokens before they expire."""

from __future__ import annotations

import asyncio
import logging

from famlynook.session.clock import Clock, default_clock
from famlynook.session.errors import SessionError
from famlynook.session.models import ScheduleState
from famlynook.session.refresh import RefreshCoordinator

_LOG = logging.getLogger("famlynook.session.scheduler")


class ProactiveRefreshScheduler:
    """Keep exactly one pending refresh timer while started.

    After a successful refresh the next fire is ``refresh_interval`` away;
    after a failed one it is ``retry_interval`` away.  Failures never stop the
    schedule.  :meth:`stop` cancels the pending timer only; a refresh already
    running completes but does not re-arm.
    """

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        *,
        refresh_interval: float = 8 * 60 * 60.0,
        retry_interval: float = 30 * 60.0,
        min_delay: float = 60.0,
        clock: Clock = default_clock,
    ) -> None:
        self.coordinator = coordinator
        self.refresh_interval = refresh_interval
        self.retry_interval = retry_interval
        self.min_delay = min_delay
        self._clock = clock
        self._handle: asyncio.TimerHandle | None = None
        self._fire_task: asyncio.Task | None = None
        self._running = False
        self.state: ScheduleState | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> bool:
        """*True* while a timer is armed."""
        return self._handle is not None and not self._handle.cancelled()

    def start(self) -> None:
        """Arm the timer, replacing any previously armed one."""
        self._cancel_timer()
        self._running = True
        last = self.coordinator.last_refreshed_at
        elapsed = 0.0 if last is None else max(self._clock() - last, 0.0)
        self._arm(max(self.refresh_interval - elapsed, self.min_delay))

    def stop(self) -> None:
        """Cancel the pending timer; safe to call repeatedly or before start()."""
        if self._running:
            _LOG.info("Stopping proactive token refresh")
        self._running = False
        self._cancel_timer()
        self.state = None

    async def run_once(self) -> ScheduleState | None:
        """Refresh now and re-arm according to the outcome.

        Returns the new schedule, or ``None`` if the scheduler was stopped
        while the refresh was running.
        """
        try:
            await self.coordinator.refresh()
        except SessionError as exc:
            _LOG.warning("Scheduled token refresh failed (%s); retrying later", exc.code)
            delay = self.retry_interval
        except Exception:
            _LOG.exception("Scheduled token refresh crashed; retrying later")
            delay = self.retry_interval
        else:
            delay = self.refresh_interval

        if not self._running:
            return None
        self._cancel_timer()
        self._arm(delay)
        return self.state

    # ---------------- internal helpers --------------------------------- #
    def _arm(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self.state = ScheduleState(next_fire_at=self._clock() + delay, interval=delay)
        self._handle = loop.call_later(delay, self._fire)
        _LOG.debug("Next token refresh in %d minutes", round(delay / 60))

    def _fire(self) -> None:
        self._handle = None
        self._fire_task = asyncio.get_running_loop().create_task(self.run_once())

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
