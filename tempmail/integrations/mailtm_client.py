"""
Mail.tm API client integration.

This module handles direct communication with the Mail.tm API:
1. Create accounts and issue bearer tokens
2. List and fetch messages
3. Fetch and delete accounts
4. Stream attachments
5. Classify every failure into an ErrorKind

No method raises transport errors: each returns Ok(...) or Err(...).

Mail.tm API Reference: https://docs.mail.tm
"""
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import httpx

from tempmail.models.result import ERROR_MESSAGES, Err, ErrorKind, Ok, Result, classify_status
from tempmail.utils.logger import get_logger

logger = get_logger(__name__)

# Mail.tm API base URL
MAILTM_API_BASE = "https://api.mail.tm"

# Headers passed through when streaming an attachment
ATTACHMENT_HEADERS = ("content-type", "content-disposition", "content-length")


@dataclass
class AttachmentStream:
    """
    An open attachment download.

    The underlying provider response stays open until the body has been
    iterated or aclose() is called.
    """
    response: httpx.Response

    @property
    def headers(self) -> dict:
        return {
            name: self.response.headers[name]
            for name in ATTACHMENT_HEADERS
            if name in self.response.headers
        }

    @property
    def content_type(self) -> str:
        return self.response.headers.get("content-type", "application/octet-stream")

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes():
                yield chunk
        finally:
            await self.response.aclose()

    async def aclose(self) -> None:
        await self.response.aclose()


def _error_details(response: httpx.Response) -> Any:
    """Best-effort provider error payload."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


def _error_from_response(response: httpx.Response) -> Err:
    kind = classify_status(response.status_code)
    details = _error_details(response)
    message = ERROR_MESSAGES[kind]
    if kind == ErrorKind.UNKNOWN:
        provider_message = details.get("message") if isinstance(details, dict) else None
        message = provider_message or f"HTTP error {response.status_code}"
    return Err(kind, message, details)


class MailTmClient:
    """
    Mail.tm API client.

    Usage:
        client = MailTmClient()
        result = await client.create_account(address, password)
        token = await client.issue_token(address, password)
        inbox = await client.list_messages(token.value["token"])
        await client.aclose()
    """

    def __init__(
        self,
        base_url: str = MAILTM_API_BASE,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Provider base URL
            timeout: Per-request timeout in seconds
            http_client: Optional preconfigured client (tests pass one
                built on httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _auth(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        token: Optional[str] = None,
        json_data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Result[Any]:
        """
        Make a request to the Mail.tm API.

        Args:
            method: HTTP method (GET, POST, DELETE)
            endpoint: API endpoint (relative to base URL)
            token: Bearer token for authenticated endpoints
            json_data: Request body for POST
            params: Query parameters

        Returns:
            Ok(json) on 2xx (Ok({}) on 204), Err(kind) otherwise
        """
        headers = self._auth(token) if token else None
        try:
            response = await self._client.request(
                method,
                endpoint,
                headers=headers,
                json=json_data,
                params=params,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Mail.tm {method} {endpoint} timed out")
            return Err(ErrorKind.UPSTREAM_UNREACHABLE, "Request to Mail.tm timed out", {"message": str(e)})
        except httpx.TransportError as e:
            logger.warning(f"Mail.tm {method} {endpoint} unreachable: {e}")
            return Err(ErrorKind.UPSTREAM_UNREACHABLE, details={"message": str(e)})

        if 200 <= response.status_code < 300:
            if response.status_code == 204 or not response.content:
                return Ok({})
            try:
                return Ok(response.json())
            except ValueError:
                logger.error(f"Mail.tm {method} {endpoint} returned invalid JSON")
                return Err(ErrorKind.UPSTREAM_FAILURE, "Mail.tm returned an invalid response")

        err = _error_from_response(response)
        logger.warning(f"Mail.tm {method} {endpoint} failed: {response.status_code} ({err.kind.value})")
        return err

    async def list_domains(self) -> Result[dict]:
        """Available domains, as the provider's hydra collection."""
        return await self._make_request("GET", "/domains")

    async def create_account(self, address: str, password: str) -> Result[dict]:
        """Create a provider account. Returns {id, address, quota, ...}."""
        logger.info(f"Creating Mail.tm account: {address}")
        return await self._make_request(
            "POST",
            "/accounts",
            json_data={"address": address, "password": password},
        )

    async def issue_token(self, address: str, password: str) -> Result[dict]:
        """Issue a bearer token. Returns {id, token}."""
        result = await self._make_request(
            "POST",
            "/token",
            json_data={"address": address, "password": password},
        )
        if result.ok and not result.value.get("token"):
            return Err(ErrorKind.AUTH_FAILED, "Mail.tm did not issue a token", result.value)
        return result

    async def list_messages(self, token: str, page: int = 1) -> Result[dict]:
        """
        List inbox messages.

        Returns:
            Ok({"messages": [...], "total": int})
        """
        result = await self._make_request("GET", "/messages", token=token, params={"page": page})
        if not result.ok:
            return result

        data = result.value
        messages = data.get("hydra:member", []) if isinstance(data, dict) else data
        total = data.get("hydra:totalItems", len(messages)) if isinstance(data, dict) else len(messages)
        return Ok({"messages": messages, "total": total})

    async def get_message(self, token: str, message_id: str) -> Result[dict]:
        return await self._make_request("GET", f"/messages/{message_id}", token=token)

    async def get_account(self, token: str, account_id: str) -> Result[dict]:
        return await self._make_request("GET", f"/accounts/{account_id}", token=token)

    async def delete_account(self, token: str, account_id: str) -> Result[dict]:
        logger.info(f"Deleting Mail.tm account: {account_id}")
        return await self._make_request("DELETE", f"/accounts/{account_id}", token=token)

    async def download_attachment(
        self,
        token: str,
        message_id: str,
        attachment_id: str,
    ) -> Result[AttachmentStream]:
        """
        Open a streaming download for one attachment.

        On success the caller owns the returned stream and must consume
        it or call aclose().
        """
        endpoint = f"/messages/{message_id}/attachment/{attachment_id}"
        request = self._client.build_request(
            "GET",
            endpoint,
            headers=self._auth(token),
            timeout=self.timeout,
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            logger.warning(f"Attachment download timed out: {endpoint}")
            return Err(ErrorKind.UPSTREAM_UNREACHABLE, "Request to Mail.tm timed out", {"message": str(e)})
        except httpx.TransportError as e:
            logger.warning(f"Attachment download unreachable: {e}")
            return Err(ErrorKind.UPSTREAM_UNREACHABLE, details={"message": str(e)})

        if 200 <= response.status_code < 300:
            return Ok(AttachmentStream(response))

        try:
            await response.aread()
        finally:
            await response.aclose()
        err = _error_from_response(response)
        logger.warning(f"Attachment download failed: {response.status_code} ({err.kind.value})")
        return err
