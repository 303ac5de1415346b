"""
Tests for the TempMailAPI client.

Most tests run the client straight against the FastAPI app through
httpx.ASGITransport; failure modes use an httpx.MockTransport.
"""
import httpx
import pytest

from tempmail.client.api import TempMailAPI
from tempmail.models.result import ErrorKind

ADDRESS = "foo@domain.com"
PASSWORD = "secret1"


def api_with(handler, client_settings) -> TempMailAPI:
    http_client = httpx.AsyncClient(
        base_url=client_settings.api_base_url,
        transport=httpx.MockTransport(handler),
    )
    return TempMailAPI(settings=client_settings, http_client=http_client)


class TestEndToEnd:
    """Client against the real app."""

    @pytest.mark.asyncio
    async def test_generate_and_read(self, api, provider):
        created = await api.generate_email(ADDRESS, PASSWORD)
        assert created.ok
        assert created.value["address"] == ADDRESS

        message = provider.add_message(ADDRESS, "Hello there")
        inbox = await api.get_inbox(ADDRESS)
        assert inbox.ok
        assert inbox.value["total"] == 1
        assert inbox.value["unread"] == 1

        fetched = await api.get_message(ADDRESS, message["id"])
        assert fetched.value["subject"] == "Hello there"

    @pytest.mark.asyncio
    async def test_inbox_is_cached(self, api, provider):
        await api.generate_email(ADDRESS, PASSWORD)
        first = await api.get_inbox(ADDRESS)
        provider.add_message(ADDRESS, "Late arrival")

        cached = await api.get_inbox(ADDRESS)
        fresh = await api.get_inbox(ADDRESS, force_refresh=True)

        assert first.value["total"] == 0
        assert cached.value["total"] == 0
        assert fresh.value["total"] == 1

    @pytest.mark.asyncio
    async def test_writes_are_not_cached(self, api):
        await api.generate_email(ADDRESS, PASSWORD)
        assert len(api.cache) == 0

    @pytest.mark.asyncio
    async def test_delete_invalidates_cached_reads(self, api):
        await api.generate_email(ADDRESS, PASSWORD)
        assert (await api.get_inbox(ADDRESS)).ok

        deleted = await api.delete_address(ADDRESS)
        after = await api.get_inbox(ADDRESS)

        assert deleted.ok
        assert deleted.value["upstreamDeleted"] is True
        assert after.kind == ErrorKind.SESSION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_validation_error(self, api):
        result = await api.generate_email(ADDRESS, "123")

        assert result.kind == ErrorKind.INVALID_REQUEST
        assert "Password must be at least 6 characters long" in result.details

    @pytest.mark.asyncio
    async def test_conflict(self, api):
        await api.generate_email(ADDRESS, PASSWORD)

        result = await api.generate_email(ADDRESS, PASSWORD)

        assert result.kind == ErrorKind.CONFLICT

    @pytest.mark.asyncio
    async def test_check_account_status(self, api):
        await api.generate_email(ADDRESS, PASSWORD)

        alive = await api.check_account_status(ADDRESS)
        await api.delete_address(ADDRESS)
        gone = await api.check_account_status(ADDRESS)

        assert alive.is_valid
        assert alive.data["address"] == ADDRESS
        assert not gone.is_valid
        assert gone.error.kind == ErrorKind.SESSION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_download_attachment(self, api, provider):
        await api.generate_email(ADDRESS, PASSWORD)
        message = provider.add_message(ADDRESS, "Files", attachment=b"csv,data")

        result = await api.download_attachment(ADDRESS, message["id"], "ATTACH000001")

        assert result.ok
        assert result.value.filename == "report.txt"
        assert result.value.content == b"csv,data"
        assert result.value.content_type.startswith("text/plain")

    @pytest.mark.asyncio
    async def test_get_domains(self, api):
        result = await api.get_domains()
        assert [d["domain"] for d in result.value] == ["domain.com"]


class TestFailureModes:
    """Transport failures and local validation."""

    @pytest.mark.asyncio
    async def test_invalid_address_is_rejected_locally(self, client_settings):
        calls = []
        api = api_with(lambda request: calls.append(request) or httpx.Response(200, json={}), client_settings)

        result = await api.get_inbox("")

        assert result.kind == ErrorKind.INVALID_REQUEST
        assert calls == []
        await api.aclose()

    @pytest.mark.asyncio
    async def test_network_error(self, client_settings):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with api_with(handler, client_settings) as api:
            result = await api.get_inbox(ADDRESS)

        assert result.kind == ErrorKind.UPSTREAM_UNREACHABLE
        assert result.message == "Network error - please check your connection"

    @pytest.mark.asyncio
    async def test_timeout(self, client_settings):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with api_with(handler, client_settings) as api:
            result = await api.get_inbox(ADDRESS)

        assert result.kind == ErrorKind.UPSTREAM_UNREACHABLE
        assert result.message == "Request timeout - please try again"

    @pytest.mark.asyncio
    async def test_transient_failure_keeps_account_valid(self, client_settings):
        body = {"success": False, "error": "Mail.tm API failure", "code": "UPSTREAM_FAILURE"}
        async with api_with(lambda request: httpx.Response(502, json=body), client_settings) as api:
            status = await api.check_account_status(ADDRESS)

        assert status.is_valid
        assert status.error.kind == ErrorKind.UPSTREAM_FAILURE

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope(self, client_settings):
        body = {"success": False, "error": "something odd"}
        async with api_with(lambda request: httpx.Response(200, json=body), client_settings) as api:
            result = await api.get_domains()

        assert result.kind == ErrorKind.UNKNOWN
        assert result.message == "something odd"

    @pytest.mark.asyncio
    async def test_error_without_code_uses_status(self, client_settings):
        async with api_with(lambda request: httpx.Response(404, text="missing"), client_settings) as api:
            result = await api.get_message(ADDRESS, "msg-1")

        assert result.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_clear_cache(self, api):
        await api.get_domains()
        assert len(api.cache) == 1

        api.clear_cache()

        assert len(api.cache) == 0
