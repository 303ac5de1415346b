"""
Session store for created mailboxes.

This module handles:
1. Creating a session (provider account + token) with no partial writes
2. Looking sessions up by id or by address
3. Touching sessions on every successful read
4. Deleting sessions locally even when the provider delete fails
5. Sweeping sessions idle longer than the TTL on a fixed period

Sessions are stored in-memory on one SessionStore instance, built once
at startup and handed to the routes. Nothing survives a restart.

All mutations run on the event loop without awaiting in between, so
they are atomic with respect to each other. The only window across an
await is account creation, which reserves the address first.
"""
import asyncio
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Set

from tempmail.integrations.mailtm_client import MailTmClient
from tempmail.models.result import Err, ErrorKind, Ok, Result
from tempmail.models.session import SessionRecord
from tempmail.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_IDLE_SECONDS = 24 * 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """
    In-memory mailbox session store.

    Usage:
        store = SessionStore(mailtm_client)
        result = await store.create(address, password)
        record = store.find_by_address(address)
        store.touch(record.session_id)
        await store.delete(record.session_id)
        store.start_sweeper()
    """

    def __init__(
        self,
        client: MailTmClient,
        idle_seconds: float = DEFAULT_IDLE_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.idle_seconds = idle_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._sessions: Dict[str, SessionRecord] = {}
        # Addresses with a create in flight
        self._pending: Set[str] = set()
        self._sweeper: Optional[asyncio.Task] = None
        self.sweep_count = 0
        self.evicted_count = 0

    def now(self) -> datetime:
        return self._clock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def sessions(self) -> list:
        """Snapshot of live session records."""
        return list(self._sessions.values())

    async def create(self, address: str, password: str) -> Result[SessionRecord]:
        """
        Create a provider account, issue its token and store the session.

        Both provider calls must succeed before anything is stored. On
        failure the classified error is returned and no record exists
        for the address.

        Args:
            address: Mailbox address to create
            password: Mailbox password

        Returns:
            Ok(SessionRecord) or Err(kind)
        """
        if address in self._pending or self.find_by_address(address) is not None:
            logger.warning(f"Refusing duplicate session for: {address}")
            return Err(ErrorKind.CONFLICT, "Account already exists", {"address": address})

        self._pending.add(address)
        try:
            account = await self.client.create_account(address, password)
            if not account.ok:
                return account
            if not isinstance(account.value, dict) or not account.value.get("id"):
                logger.error(f"Mail.tm created {address} without an account id")
                return Err(ErrorKind.UPSTREAM_FAILURE, "Mail.tm returned an account without an id", {"address": address})

            token = await self.client.issue_token(address, password)
            if not token.ok:
                logger.warning(f"Token issuance failed for {address}: {token.kind.value}")
                return token

            now = self._clock()
            record = SessionRecord(
                session_id=account.value["id"],
                address=account.value.get("address", address),
                auth_token=token.value["token"],
                created_at=now,
                last_accessed_at=now,
                quota=account.value.get("quota"),
            )
            self._sessions[record.session_id] = record
            logger.info(f"Created session for: {record.address}")
            return Ok(record)
        finally:
            self._pending.discard(address)

    def get(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    def find_by_address(self, address: str) -> Optional[SessionRecord]:
        """Linear scan; few mailboxes are open at once."""
        for record in self._sessions.values():
            if record.address == address:
                return record
        return None

    def touch(self, session_id: str) -> None:
        record = self._sessions.get(session_id)
        if record is not None:
            record.last_accessed_at = self._clock()

    async def delete(self, session_id: str) -> Result[dict]:
        """
        Delete a session and attempt the provider-side delete.

        The local record is removed first and stays removed whatever the
        provider answers; a provider failure is logged and reported as
        upstreamDeleted=False.

        Returns:
            Ok({"message", "upstreamDeleted"}) or Err(SESSION_NOT_FOUND)
        """
        record = self._sessions.pop(session_id, None)
        if record is None:
            return Err(ErrorKind.SESSION_NOT_FOUND)

        logger.info(f"Deleted session for: {record.address}")

        upstream = await self.client.delete_account(record.auth_token, record.session_id)
        if not upstream.ok:
            logger.warning(
                f"Provider delete failed for {record.address}: "
                f"{upstream.kind.value} - {upstream.message}"
            )

        return Ok({
            "message": "Account deleted successfully",
            "upstreamDeleted": upstream.ok,
        })

    def sweep(self) -> list:
        """
        Evict every session idle longer than idle_seconds.

        Returns:
            Addresses that were evicted
        """
        now = self._clock()
        evicted = []
        for session_id, record in list(self._sessions.items()):
            idle = record.idle_seconds(now)
            if idle > self.idle_seconds:
                del self._sessions[session_id]
                evicted.append(record.address)
                logger.info(f"Evicted idle session: {record.address} (idle {idle / 3600:.1f}h)")

        self.sweep_count += 1
        self.evicted_count += len(evicted)
        return evicted

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.info(f"Session sweeper started (every {self.sweep_interval_seconds:.0f}s)")

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Session sweeper stopped")
