"""
Mail.tm domain listing, passed through unchanged.
"""
from fastapi import APIRouter, Depends

from tempmail.services.mailbox_service import MailboxService, get_mailbox_service
from tempmail.utils.errors import MailboxError

router = APIRouter()


@router.get("/domains")
async def list_domains(service: MailboxService = Depends(get_mailbox_service)):
    """
    Available mailbox domains.

    Returns the provider's hydra collection as-is:
        { "hydra:member": [{domain, isActive, ...}], "hydra:totalItems": n }
    """
    result = await service.list_domains()
    if not result.ok:
        raise MailboxError.from_err(result)
    return result.value
