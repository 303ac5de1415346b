"""
Temporary mailbox routes.

Routes look sessions up by address, never by session id:
1. POST   /api/email/generate                     -> create mailbox + session
2. GET    /api/email/{address}/inbox              -> list messages
3. GET    /api/email/{address}/message/{id}       -> one message
4. GET    /api/email/{address}/message/{id}/attachment/{attachment_id}
5. DELETE /api/email/{address}                    -> delete mailbox + session
6. GET    /api/email/{address}/info               -> provider account info

Every response uses the envelope {success, data | error, details?}.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import EmailStr, TypeAdapter, ValidationError
from starlette.background import BackgroundTask

from tempmail.models.email import AccountCreated, AccountInfoData, GenerateRequest, InboxData, MessageData
from tempmail.models.session import SessionRecord
from tempmail.services.mailbox_service import MailboxService, get_mailbox_service
from tempmail.utils.errors import InvalidRequestError, MailboxError, SessionNotFoundError
from tempmail.utils.rate_limit import rate_limit

router = APIRouter()

_address_adapter = TypeAdapter(EmailStr)


def valid_address(address: str) -> str:
    """Path dependency: 400 unless the address parameter is a valid email."""
    try:
        _address_adapter.validate_python(address.strip())
    except ValidationError:
        raise InvalidRequestError("Valid email address parameter is required")
    return address.strip()


def _session_for(service: MailboxService, address: str) -> SessionRecord:
    result = service.find_session(address)
    if not result.ok:
        raise SessionNotFoundError()
    return result.value


@router.post("/generate", status_code=201, dependencies=[Depends(rate_limit("account"))])
async def generate(
    body: GenerateRequest,
    service: MailboxService = Depends(get_mailbox_service),
):
    """
    Generate a new temporary email account.

    Returns:
        201 { success, data: {id, address, token, quota}, message }
    """
    result = await service.create_account(str(body.address), body.password)
    if not result.ok:
        raise MailboxError.from_err(result)

    return {
        "success": True,
        "data": AccountCreated(**result.value).model_dump(),
        "message": "Email account created successfully",
    }


@router.get("/{address}/inbox", dependencies=[Depends(rate_limit("message"))])
async def get_inbox(
    address: str = Depends(valid_address),
    service: MailboxService = Depends(get_mailbox_service),
):
    """
    Get inbox messages for an address.

    Returns:
        { success, data: {address, messages, total, unread} }
    """
    record = _session_for(service, address)

    result = await service.list_messages(record.session_id)
    if not result.ok:
        raise MailboxError.from_err(result)

    messages = result.value["messages"]
    inbox = InboxData(
        address=record.address,
        messages=messages,
        total=result.value["total"],
        unread=sum(1 for msg in messages if not msg.get("seen")),
    )
    return {"success": True, "data": inbox.model_dump()}


@router.get("/{address}/message/{message_id}", dependencies=[Depends(rate_limit("message"))])
async def get_message(
    message_id: str,
    address: str = Depends(valid_address),
    service: MailboxService = Depends(get_mailbox_service),
):
    """Get a specific message by ID."""
    record = _session_for(service, address)

    result = await service.get_message(record.session_id, message_id)
    if not result.ok:
        raise MailboxError.from_err(result)

    data = MessageData(address=record.address, message=result.value)
    return {"success": True, "data": data.model_dump()}


@router.get(
    "/{address}/message/{message_id}/attachment/{attachment_id}",
    dependencies=[Depends(rate_limit("message"))],
)
async def download_attachment(
    message_id: str,
    attachment_id: str,
    address: str = Depends(valid_address),
    service: MailboxService = Depends(get_mailbox_service),
):
    """Stream an attachment from the provider to the caller."""
    record = _session_for(service, address)

    result = await service.download_attachment(record.session_id, message_id, attachment_id)
    if not result.ok:
        raise MailboxError.from_err(result)

    stream = result.value
    headers = {k: v for k, v in stream.headers.items() if k != "content-type"}
    return StreamingResponse(
        stream.iter_bytes(),
        media_type=stream.content_type,
        headers=headers,
        background=BackgroundTask(stream.aclose),
    )


@router.delete("/{address}")
async def delete_account(
    address: str = Depends(valid_address),
    service: MailboxService = Depends(get_mailbox_service),
):
    """
    Delete an email account.

    The local session is removed even when the provider delete fails;
    data.upstreamDeleted tells the two apart.
    """
    record = _session_for(service, address)

    result = await service.delete_account(record.session_id)
    if not result.ok:
        raise MailboxError.from_err(result)

    return {
        "success": True,
        "data": result.value,
        "message": "Email account deleted successfully",
    }


@router.get("/{address}/info")
async def get_account_info(
    address: str = Depends(valid_address),
    service: MailboxService = Depends(get_mailbox_service),
):
    """Provider account info plus local createdAt / lastAccessed."""
    record = _session_for(service, address)

    result = await service.get_account_info(record.session_id)
    if not result.ok:
        raise MailboxError.from_err(result)

    data = AccountInfoData(
        address=record.address,
        info=result.value,
        createdAt=record.created_at.isoformat(),
        lastAccessed=record.last_accessed_at.isoformat(),
    )
    return {"success": True, "data": data.model_dump()}
