"""
Inbox polling coordinator.

One poller per address. Each poller owns a single asyncio task that
fetches immediately and then on a fixed-rate schedule:

    IDLE -> POLLING -> (DEGRADED | STOPPED)

- success resets the retry counter
- a terminal error (account gone) marks the account invalid and stops
- any other error counts a retry; reaching max_retries degrades

A fetch never overlaps another fetch for the same address: ticks that
fall due while a fetch is still running are skipped, and a manual
refresh joins the fetch in flight. A fetch that is running when the
poller stops completes, but its result cannot re-arm the poller. A
fetch still running when the poller is restarted is joined by the new
poller and its result is recorded there.
"""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from tempmail.models.result import Err, ErrorKind, Result
from tempmail.utils.logger import get_logger

logger = get_logger(__name__)

FetchFn = Callable[[], Awaitable[Result]]

DEFAULT_INTERVAL_SECONDS = 15.0
DEFAULT_MAX_RETRIES = 3


class PollStatus(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    DEGRADED = "degraded"
    STOPPED = "stopped"


@dataclass
class PollState:
    """Observable polling state for one address."""
    address: str
    interval: float
    max_retries: int
    status: PollStatus = PollStatus.IDLE
    retry_count: int = 0
    is_account_valid: bool = True
    last_poll_at: Optional[float] = None
    last_success_at: Optional[float] = None
    last_error: Optional[Err] = None
    skipped_ticks: int = 0

    @property
    def active(self) -> bool:
        return self.status == PollStatus.POLLING


@dataclass
class _Poller:
    state: PollState
    fetch_fn: FetchFn
    task: Optional[asyncio.Task] = None
    inflight: Optional[asyncio.Task] = None
    released: bool = field(default=False)


class PollHandle:
    """
    Ownership of one started poller.

    Release it with stop() or by leaving an `async with` block. A handle
    whose poller has since been replaced by a newer start() is inert.
    """

    def __init__(self, coordinator: "PollingCoordinator", poller: _Poller):
        self._coordinator = coordinator
        self._poller = poller

    @property
    def address(self) -> str:
        return self._poller.state.address

    @property
    def state(self) -> PollState:
        return self._poller.state

    @property
    def active(self) -> bool:
        return not self._poller.released and self._poller.state.active

    def stop(self) -> None:
        self._coordinator._release(self._poller)

    async def __aenter__(self) -> "PollHandle":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()


class PollingCoordinator:
    """
    Owns at most one polling task per address.

    Usage:
        coordinator = PollingCoordinator(max_retries=3)
        handle = coordinator.start("foo@domain.com", fetch_inbox, interval=15)
        coordinator.update_interval("foo@domain.com", 30)
        coordinator.stop("foo@domain.com")
        coordinator.stop_all()
    """

    def __init__(
        self,
        default_interval: float = DEFAULT_INTERVAL_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        on_state_change: Optional[Callable[[PollState], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_interval = default_interval
        self.max_retries = max_retries
        self.on_state_change = on_state_change
        self._clock = clock
        self._pollers: Dict[str, _Poller] = {}

    def start(self, address: str, fetch_fn: FetchFn, interval: Optional[float] = None) -> PollHandle:
        """
        Start polling an address, replacing any existing poller for it.

        Must be called from a running event loop. The first fetch runs
        immediately on the new task.

        Returns:
            PollHandle owning the poller
        """
        interval = interval if interval is not None else self.default_interval
        if interval <= 0:
            raise ValueError("Polling interval must be positive")

        previous = self._pollers.get(address)
        self.stop(address)

        poller = _Poller(
            state=PollState(address=address, interval=interval, max_retries=self.max_retries),
            fetch_fn=fetch_fn,
        )
        # The first tick joins a fetch the old poller left running
        if previous is not None and previous.inflight is not None and not previous.inflight.done():
            poller.inflight = previous.inflight
        poller.state.status = PollStatus.POLLING
        self._pollers[address] = poller
        poller.task = asyncio.create_task(self._run(poller))

        logger.info(f"Started polling for {address} every {interval:g}s")
        self._notify(poller.state)
        return PollHandle(self, poller)

    def stop(self, address: str) -> None:
        """Cancel the poller for an address, if any. Idempotent."""
        poller = self._pollers.get(address)
        if poller is not None:
            self._release(poller)

    def update_interval(self, address: str, interval: float) -> Optional[PollHandle]:
        """
        Change the interval of an active poller.

        Restarts it with the same fetch function. Inactive pollers are
        left alone.

        Returns:
            The new handle, or None if the address was not polling
        """
        poller = self._pollers.get(address)
        if poller is None or not poller.state.active:
            return None
        return self.start(address, poller.fetch_fn, interval)

    def stop_all(self) -> None:
        for poller in list(self._pollers.values()):
            self._release(poller)

    def forget(self, address: str) -> None:
        """Stop and drop all state for an address (view torn down)."""
        self.stop(address)
        self._pollers.pop(address, None)

    def get_state(self, address: str) -> Optional[PollState]:
        poller = self._pollers.get(address)
        return poller.state if poller else None

    def is_polling(self, address: str) -> bool:
        poller = self._pollers.get(address)
        return poller is not None and poller.state.active

    def get_status(self) -> Dict[str, dict]:
        """Snapshot of every known poller."""
        return {
            address: {
                "status": poller.state.status.value,
                "interval": poller.state.interval,
                "retryCount": poller.state.retry_count,
                "isAccountValid": poller.state.is_account_valid,
            }
            for address, poller in self._pollers.items()
        }

    async def refresh(self, address: str, fetch_fn: Optional[FetchFn] = None) -> Result:
        """
        Fetch now, outside the schedule.

        Joins the fetch already in flight for the address instead of
        starting a second one.

        Args:
            address: Address to refresh
            fetch_fn: Fetch to use when nothing is in flight (defaults
                to the poller's own fetch function)
        """
        poller = self._pollers.get(address)
        if poller is None:
            if fetch_fn is None:
                raise KeyError(f"No poller registered for {address}")
            return await fetch_fn()

        if poller.inflight is None or poller.inflight.done():
            poller.inflight = asyncio.create_task(self._fetch(poller, fetch_fn or poller.fetch_fn))
        return await asyncio.shield(poller.inflight)

    def _release(self, poller: _Poller) -> None:
        if poller.released:
            return
        poller.released = True
        if poller.task is not None and poller.task is not asyncio.current_task():
            poller.task.cancel()
        if poller.state.status == PollStatus.POLLING:
            poller.state.status = PollStatus.STOPPED
            logger.info(f"Stopped polling for {poller.state.address}")
            self._notify(poller.state)

    async def _run(self, poller: _Poller) -> None:
        state = poller.state
        next_at = self._clock()
        while not poller.released and state.active:
            delay = next_at - self._clock()
            if delay > 0:
                await asyncio.sleep(delay)
                if poller.released or not state.active:
                    return

            if poller.inflight is None or poller.inflight.done():
                poller.inflight = asyncio.create_task(self._fetch(poller, poller.fetch_fn))
            await asyncio.shield(poller.inflight)

            next_at += state.interval
            now = self._clock()
            if next_at <= now:
                missed = int((now - next_at) // state.interval) + 1
                next_at += missed * state.interval
                state.skipped_ticks += missed
                logger.debug(f"Skipped {missed} tick(s) for {state.address}: fetch overran interval")

    async def _fetch(self, poller: _Poller, fetch_fn: FetchFn) -> Result:
        try:
            result = await fetch_fn()
        except Exception as e:
            logger.exception(f"Poll fetch raised for {poller.state.address}")
            result = Err(ErrorKind.UNKNOWN, str(e) or type(e).__name__)

        # A restart may have handed this fetch to a newer poller
        self._record(self._pollers.get(poller.state.address, poller), result)
        return result

    def _record(self, poller: _Poller, result: Result) -> None:
        state = poller.state
        state.last_poll_at = self._clock()

        if result.ok:
            state.retry_count = 0
            state.last_error = None
            state.last_success_at = state.last_poll_at
        elif result.kind.is_terminal:
            state.last_error = result
            state.is_account_valid = False
            logger.warning(f"Account for {state.address} is gone ({result.kind.value}); polling stopped")
            self._release(poller)
            state.status = PollStatus.STOPPED
        else:
            state.last_error = result
            state.retry_count += 1
            logger.warning(
                f"Poll failed for {state.address} "
                f"({state.retry_count}/{state.max_retries}): {result.message}"
            )
            # A released poller (stopped or replaced) is never re-armed or degraded
            if state.retry_count >= state.max_retries and state.active and not poller.released:
                state.status = PollStatus.DEGRADED
                self._release(poller)
                logger.error(
                    f"Polling for {state.address} degraded after {state.max_retries} failures"
                )

        self._notify(state)

    def _notify(self, state: PollState) -> None:
        if self.on_state_change is not None:
            self.on_state_change(state)
