"""
Email-related Pydantic models.
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Any, List, Optional


class GenerateRequest(BaseModel):
    """Request to create a temporary mailbox."""
    address: EmailStr
    password: str = Field(min_length=6)


class AccountCreated(BaseModel):
    """Account data returned after creation."""
    id: str
    address: str
    token: str
    quota: Optional[int] = None


class InboxData(BaseModel):
    """Inbox listing for one address."""
    address: str
    messages: List[dict] = []
    total: int = 0
    unread: int = 0


class MessageData(BaseModel):
    """A single message for one address."""
    address: str
    message: dict


class AccountInfoData(BaseModel):
    """Provider account info plus local session timestamps."""
    address: str
    info: Any
    createdAt: str
    lastAccessed: str
