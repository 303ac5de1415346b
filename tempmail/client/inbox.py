"""
Inbox watcher - the inbox view's behaviour without any rendering.

One watcher per open mailbox:
1. Checks the account still exists before showing anything
2. Loads messages and reports newly arrived ones
3. Polls through the PollingCoordinator while auto-refresh is on
4. Offers manual refresh, "retry now" after degrading, and a one-shot
   recovery check once the account looks expired
"""
import asyncio
from typing import Callable, List, Optional

from tempmail.client.api import TempMailAPI
from tempmail.client.config import ClientSettings
from tempmail.client.polling import PollHandle, PollingCoordinator, PollState, PollStatus
from tempmail.models.result import Err, Result
from tempmail.utils.logger import get_logger

logger = get_logger(__name__)


class InboxWatcher:
    """
    Watches one mailbox address.

    Usage:
        watcher = InboxWatcher(api, "foo@domain.com", on_new_messages=notify)
        await watcher.start()
        await watcher.refresh()
        watcher.change_interval(30)
        await watcher.close()
    """

    def __init__(
        self,
        api: TempMailAPI,
        address: str,
        coordinator: Optional[PollingCoordinator] = None,
        settings: Optional[ClientSettings] = None,
        on_new_messages: Optional[Callable[[int], None]] = None,
    ):
        """
        Args:
            api: Backend client
            address: Mailbox address to watch
            coordinator: Shared coordinator (one is created if omitted)
            settings: Interval bounds and retry budget (defaults to api.settings)
            on_new_messages: Called with the number of new messages
        """
        self.api = api
        self.address = address
        self.settings = settings or api.settings
        self.coordinator = coordinator or PollingCoordinator(
            default_interval=self.settings.poll_interval_seconds,
            max_retries=self.settings.max_retries,
        )
        self.on_new_messages = on_new_messages

        self.messages: List[dict] = []
        self.total = 0
        self.unread = 0
        self.is_account_valid = True
        self.auto_refresh = True
        self.interval = self.settings.poll_interval_seconds
        self.last_error: Optional[Err] = None
        self._handle: Optional[PollHandle] = None
        self._deleting: Optional[asyncio.Task] = None
        # First successful load does not count as new mail
        self._loaded = False

    @property
    def poll_state(self) -> Optional[PollState]:
        return self.coordinator.get_state(self.address)

    @property
    def status(self) -> PollStatus:
        state = self.poll_state
        return state.status if state else PollStatus.IDLE

    @property
    def retry_count(self) -> int:
        state = self.poll_state
        return state.retry_count if state else 0

    @property
    def is_degraded(self) -> bool:
        return self.status == PollStatus.DEGRADED

    async def start(self) -> bool:
        """
        Check the account, load the inbox and start polling.

        Returns:
            False if the account no longer exists
        """
        if not await self.check_account_validity():
            logger.info(f"Not watching {self.address}: account is gone")
            return False

        await self.load_messages()
        if self.auto_refresh and self.is_account_valid:
            self._start_polling()
        return True

    async def check_account_validity(self) -> bool:
        status = await self.api.check_account_status(self.address)
        self.is_account_valid = status.is_valid
        self.last_error = status.error
        return status.is_valid

    async def load_messages(self, force_refresh: bool = False) -> Result[dict]:
        """
        Fetch the inbox and update local state.

        This is also the polling fetch function, so its Result drives
        the coordinator's retry and validity tracking.
        """
        result = await self.api.get_inbox(self.address, force_refresh=force_refresh)
        if not result.ok:
            self.last_error = result
            if result.kind.is_terminal:
                self.is_account_valid = False
            return result

        self.last_error = None
        previous_count = len(self.messages)
        self.messages = result.value["messages"]
        self.total = result.value["total"]
        self.unread = result.value["unread"]

        new_count = len(self.messages) - previous_count
        if new_count > 0 and self._loaded and self.on_new_messages is not None:
            self.on_new_messages(new_count)
        self._loaded = True
        return result

    async def refresh(self) -> Result[dict]:
        """
        Manual refresh, bypassing the request cache.

        Joins the poll already in flight instead of issuing a second
        request for the same inbox.
        """
        return await self.coordinator.refresh(self.address, lambda: self.load_messages(force_refresh=True))

    def _start_polling(self) -> None:
        self._handle = self.coordinator.start(self.address, self.load_messages, self.interval)

    def _stop_polling(self) -> None:
        if self._handle is not None:
            self._handle.stop()
            self._handle = None

    async def retry_now(self) -> None:
        """Reset the retry budget and resume polling after degrading."""
        if not self.is_account_valid:
            logger.info(f"Not retrying {self.address}: account is gone")
            return
        self.last_error = None
        self.auto_refresh = True
        self._start_polling()

    def toggle_auto_refresh(self) -> bool:
        """Flip auto-refresh. Returns the new setting."""
        self.auto_refresh = not self.auto_refresh
        if self.auto_refresh and self.is_account_valid:
            self._start_polling()
        else:
            self._stop_polling()
        return self.auto_refresh

    def change_interval(self, seconds: float) -> None:
        """
        Set the polling interval.

        Raises:
            ValueError: outside the configured bounds (5-60s by default)
        """
        low = self.settings.min_poll_interval_seconds
        high = self.settings.max_poll_interval_seconds
        if not low <= seconds <= high:
            raise ValueError(f"Please enter a value between {low:g} and {high:g} seconds")

        self.interval = seconds
        if self.auto_refresh:
            handle = self.coordinator.update_interval(self.address, seconds)
            if handle is not None:
                self._handle = handle

    async def try_recover(self) -> bool:
        """
        Re-check an expired-looking account once.

        On success the watcher returns to normal: messages are reloaded
        and polling resumes if auto-refresh is on.
        """
        if not await self.check_account_validity():
            logger.info(f"Unable to recover {self.address}")
            return False

        logger.info(f"Recovered {self.address}")
        await self.load_messages(force_refresh=True)
        if self.auto_refresh:
            self._start_polling()
        return True

    async def delete_account(self) -> Result[dict]:
        """
        Delete the mailbox; polling stops first.

        A call made while a delete is already in flight waits for that
        delete and returns its result instead of sending a second one.
        """
        if self._deleting is None or self._deleting.done():
            self._stop_polling()
            self._deleting = asyncio.create_task(self._delete())
        return await asyncio.shield(self._deleting)

    async def _delete(self) -> Result[dict]:
        result = await self.api.delete_address(self.address)
        if result.ok:
            self.is_account_valid = False
            self.messages = []
        else:
            self.last_error = result
        return result

    async def close(self) -> None:
        self._stop_polling()
        self.coordinator.forget(self.address)
