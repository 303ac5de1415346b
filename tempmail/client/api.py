"""
Python client for the TempMail backend.

This module handles:
1. Calling /api/email/... and /api/domains with a fixed timeout
2. Classifying failures into the shared ErrorKind taxonomy
3. Caching idempotent reads for a few seconds
4. Invalidating an address's cached reads after a write to it

Every method returns Ok(...) or Err(...); nothing raises on HTTP or
transport failure.
"""
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import httpx

from tempmail.client.cache import RequestCache, cache_key
from tempmail.client.config import ClientSettings, get_client_settings
from tempmail.models.result import Err, ErrorKind, Ok, Result, classify_status
from tempmail.utils.logger import get_logger

logger = get_logger(__name__)

# Backend codes that are not ErrorKind values
CODE_KINDS = {
    "VALIDATION_FAILED": ErrorKind.INVALID_REQUEST,
    "AUTH_ERROR": ErrorKind.AUTH_FAILED,
}


@dataclass
class Attachment:
    """A downloaded attachment."""
    filename: str
    content_type: str
    content: bytes


@dataclass
class AccountStatus:
    """
    Result of a validity check.

    is_valid is False only when the account is gone (terminal error);
    a transient failure keeps it True and carries the error.
    """
    is_valid: bool
    data: Optional[dict] = None
    error: Optional[Err] = None


def _kind_for(status_code: int, code: Optional[str]) -> ErrorKind:
    if code in CODE_KINDS:
        return CODE_KINDS[code]
    try:
        return ErrorKind(code)
    except ValueError:
        return classify_status(status_code)


def _error_from_response(response: httpx.Response) -> Err:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    kind = _kind_for(response.status_code, body.get("code"))
    message = body.get("error") or f"HTTP {response.status_code}: {response.reason_phrase}"
    return Err(kind, message, body.get("details"))


def _filename_from(disposition: str, default: str) -> str:
    for part in disposition.split(";"):
        name, _, value = part.strip().partition("=")
        if name.lower() == "filename" and value:
            return value.strip('"')
    return default


def _needs_address(address: str) -> Optional[Err]:
    if not address or "@" not in address:
        return Err(ErrorKind.INVALID_REQUEST, "Valid email address is required")
    return None


class TempMailAPI:
    """
    Async client for the TempMail backend.

    Usage:
        async with TempMailAPI() as api:
            created = await api.generate_email("foo@domain.com", "secret1")
            inbox = await api.get_inbox("foo@domain.com")
            await api.delete_address("foo@domain.com")
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        cache: Optional[RequestCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            settings: Client settings (defaults to TEMPMAIL_* environment)
            cache: Request cache (defaults to one with settings.cache_ttl_seconds)
            http_client: Optional preconfigured client, used by tests
        """
        self.settings = settings or get_client_settings()
        self.base_url = self.settings.api_base_url.rstrip("/")
        self.cache = cache or RequestCache(self.settings.cache_ttl_seconds)
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.settings.timeout_seconds,
        )

    async def __aenter__(self) -> "TempMailAPI":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _address_path(self, address: str) -> str:
        return f"/email/{quote(address, safe='')}"

    async def fetch_api(
        self,
        endpoint: str,
        method: str = "GET",
        json_data: Optional[dict] = None,
        use_cache: bool = False,
    ) -> Result[Any]:
        """
        Call the backend and unwrap its envelope.

        Only GET requests are ever cached.

        Args:
            endpoint: Path relative to the API base URL
            method: HTTP method
            json_data: Request body
            use_cache: Serve and store through the request cache

        Returns:
            Ok(response JSON) or Err(kind)
        """
        cacheable = use_cache and method.upper() == "GET"
        key = cache_key(method, f"{self.base_url}{endpoint}")

        if cacheable:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {key}")
                return Ok(cached)

        try:
            response = await self._client.request(
                method,
                endpoint,
                json=json_data,
                timeout=self.settings.timeout_seconds,
            )
        except httpx.TimeoutException:
            return Err(ErrorKind.UPSTREAM_UNREACHABLE, "Request timeout - please try again")
        except httpx.TransportError as e:
            logger.warning(f"{method} {endpoint} failed: {e}")
            return Err(ErrorKind.UPSTREAM_UNREACHABLE, "Network error - please check your connection")

        if not response.is_success:
            return _error_from_response(response)

        try:
            data = response.json()
        except ValueError:
            return Err(ErrorKind.UNKNOWN, "Invalid JSON in API response")

        if isinstance(data, dict) and data.get("success") is False:
            return Err(ErrorKind.UNKNOWN, data.get("error") or "API request failed", data.get("details"))

        if cacheable:
            self.cache.set(key, data)
        return Ok(data)

    def invalidate_address(self, address: str) -> int:
        """Drop every cached read under /email/<address>/."""
        prefix = cache_key("GET", f"{self.base_url}{self._address_path(address)}/")
        return self.cache.invalidate_prefix(prefix)

    def clear_cache(self) -> None:
        self.cache.clear()

    async def generate_email(self, address: str, password: str) -> Result[dict]:
        """Create a mailbox. Returns Ok({id, address, token, quota})."""
        result = await self.fetch_api(
            "/email/generate",
            method="POST",
            json_data={"address": address, "password": password},
        )
        self.invalidate_address(address)
        if not result.ok:
            logger.error(f"Error generating email: {result.message}")
            return result
        return Ok(result.value["data"])

    async def get_inbox(self, address: str, force_refresh: bool = False) -> Result[dict]:
        """
        Inbox for an address.

        Served from the cache unless force_refresh is set.

        Returns:
            Ok({address, messages, total, unread})
        """
        invalid = _needs_address(address)
        if invalid:
            return invalid

        result = await self.fetch_api(
            f"{self._address_path(address)}/inbox",
            use_cache=not force_refresh,
        )
        if not result.ok:
            logger.warning(f"Error fetching inbox for {address}: {result.message}")
            return result

        data = result.value.get("data") or {}
        return Ok({
            "address": data.get("address", address),
            "messages": data.get("messages", []),
            "total": data.get("total", 0),
            "unread": data.get("unread", 0),
        })

    async def get_message(self, address: str, message_id: str) -> Result[dict]:
        invalid = _needs_address(address)
        if invalid:
            return invalid
        if not message_id:
            return Err(ErrorKind.INVALID_REQUEST, "Message ID is required")

        result = await self.fetch_api(
            f"{self._address_path(address)}/message/{quote(message_id, safe='')}"
        )
        if not result.ok:
            return result
        return Ok(result.value["data"]["message"])

    async def delete_address(self, address: str) -> Result[dict]:
        invalid = _needs_address(address)
        if invalid:
            return invalid

        result = await self.fetch_api(self._address_path(address), method="DELETE")
        self.invalidate_address(address)
        if not result.ok:
            logger.error(f"Error deleting {address}: {result.message}")
            return result
        return Ok(result.value.get("data") or {})

    async def get_domains(self) -> Result[list]:
        """Active provider domains (cached)."""
        result = await self.fetch_api("/domains", use_cache=True)
        if not result.ok:
            return result
        return Ok(result.value.get("hydra:member", []))

    async def get_account_info(self, address: str) -> Result[dict]:
        """Returns Ok({address, info, createdAt, lastAccessed})."""
        invalid = _needs_address(address)
        if invalid:
            return invalid

        result = await self.fetch_api(f"{self._address_path(address)}/info")
        if not result.ok:
            return result
        return Ok(result.value["data"])

    async def check_account_status(self, address: str) -> AccountStatus:
        """Check whether the account still exists."""
        result = await self.get_account_info(address)
        if result.ok:
            return AccountStatus(is_valid=True, data=result.value)
        return AccountStatus(is_valid=not result.kind.is_terminal, error=result)

    async def download_attachment(
        self,
        address: str,
        message_id: str,
        attachment_id: str,
        filename: str = "attachment",
    ) -> Result[Attachment]:
        invalid = _needs_address(address)
        if invalid:
            return invalid
        if not message_id:
            return Err(ErrorKind.INVALID_REQUEST, "Message ID is required")
        if not attachment_id:
            return Err(ErrorKind.INVALID_REQUEST, "Attachment ID is required")

        endpoint = (
            f"{self._address_path(address)}/message/{quote(message_id, safe='')}"
            f"/attachment/{quote(attachment_id, safe='')}"
        )
        try:
            async with self._client.stream("GET", endpoint, timeout=self.settings.timeout_seconds) as response:
                if not response.is_success:
                    await response.aread()
                    return _error_from_response(response)

                chunks = [chunk async for chunk in response.aiter_bytes()]
                return Ok(Attachment(
                    filename=_filename_from(response.headers.get("content-disposition", ""), filename),
                    content_type=response.headers.get("content-type", "application/octet-stream"),
                    content=b"".join(chunks),
                ))
        except httpx.TimeoutException:
            return Err(ErrorKind.UPSTREAM_UNREACHABLE, "Request timeout - please try again")
        except httpx.TransportError as e:
            logger.warning(f"Attachment download failed: {e}")
            return Err(ErrorKind.UPSTREAM_UNREACHABLE, "Network error - please check your connection")
