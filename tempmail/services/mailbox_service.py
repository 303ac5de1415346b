"""
Mailbox service - session-scoped operations on the Mail.tm provider.

The service sits between the email routes and MailTmClient:
1. Resolves the session id before any provider call
2. Adds the session's bearer token to the provider call
3. Touches the session after every successful read

A missing session returns Err(SESSION_NOT_FOUND) without any network
round trip.
"""
from fastapi import Request

from tempmail.integrations.mailtm_client import AttachmentStream, MailTmClient
from tempmail.models.result import Err, ErrorKind, Ok, Result
from tempmail.models.session import SessionRecord
from tempmail.services.session_store import SessionStore
from tempmail.utils.logger import get_logger

logger = get_logger(__name__)


class MailboxService:
    """
    Mailbox operations keyed by session id.

    Usage:
        service = MailboxService(store)
        created = await service.create_account(address, password)
        inbox = await service.list_messages(created.value["id"])
    """

    def __init__(self, store: SessionStore, client: MailTmClient = None):
        self.store = store
        self.client = client or store.client

    def _resolve(self, session_id: str):
        record = self.store.get(session_id)
        if record is None:
            logger.info(f"Session not found: {session_id}")
            return Err(ErrorKind.SESSION_NOT_FOUND)
        return record

    def find_session(self, address: str) -> Result[SessionRecord]:
        """Address lookup used by routes."""
        record = self.store.find_by_address(address)
        if record is None:
            return Err(ErrorKind.SESSION_NOT_FOUND)
        return Ok(record)

    async def create_account(self, address: str, password: str) -> Result[dict]:
        """
        Create a mailbox and its session.

        Returns:
            Ok({id, address, token, quota})
        """
        result = await self.store.create(address, password)
        if not result.ok:
            return result

        record = result.value
        return Ok({
            "id": record.session_id,
            "address": record.address,
            "token": record.auth_token,
            "quota": record.quota,
        })

    async def list_messages(self, session_id: str) -> Result[dict]:
        """
        List inbox messages.

        Returns:
            Ok({"messages": [...], "total": int})
        """
        record = self._resolve(session_id)
        if isinstance(record, Err):
            return record

        result = await self.client.list_messages(record.auth_token)
        if result.ok:
            self.store.touch(session_id)
        return result

    async def get_message(self, session_id: str, message_id: str) -> Result[dict]:
        record = self._resolve(session_id)
        if isinstance(record, Err):
            return record

        result = await self.client.get_message(record.auth_token, message_id)
        if result.ok:
            self.store.touch(session_id)
        return result

    async def get_account_info(self, session_id: str) -> Result[dict]:
        record = self._resolve(session_id)
        if isinstance(record, Err):
            return record

        result = await self.client.get_account(record.auth_token, record.session_id)
        if result.ok:
            self.store.touch(session_id)
        return result

    async def delete_account(self, session_id: str) -> Result[dict]:
        """Delete locally and upstream; see SessionStore.delete."""
        return await self.store.delete(session_id)

    async def download_attachment(
        self,
        session_id: str,
        message_id: str,
        attachment_id: str,
    ) -> Result[AttachmentStream]:
        record = self._resolve(session_id)
        if isinstance(record, Err):
            return record

        result = await self.client.download_attachment(record.auth_token, message_id, attachment_id)
        if result.ok:
            self.store.touch(session_id)
        return result

    async def list_domains(self) -> Result[dict]:
        return await self.client.list_domains()


# Dependency for routes
def get_mailbox_service(request: Request) -> MailboxService:
    """
    FastAPI dependency returning the app's MailboxService.

    The service (and its SessionStore) is built once in the app lifespan:

        @router.get("/inbox")
        async def inbox(service: MailboxService = Depends(get_mailbox_service)):
            ...
    """
    return request.app.state.mailbox_service
