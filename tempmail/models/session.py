"""
Session-related models.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class SessionRecord:
    """
    One created mailbox account.

    The auth token is the provider's bearer credential. It only ever
    lives in process memory.
    """
    session_id: str
    address: str
    auth_token: str
    created_at: datetime
    last_accessed_at: datetime
    quota: Optional[int] = None

    def idle_seconds(self, now: datetime) -> float:
        return (now - self.last_accessed_at).total_seconds()
