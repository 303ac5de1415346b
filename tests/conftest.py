"""
Pytest fixtures for TempMail tests.
"""
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from tempmail.client.api import TempMailAPI
from tempmail.client.config import ClientSettings
from tempmail.config import Settings
from tempmail.integrations.mailtm_client import MailTmClient
from tempmail.main import create_app
from tempmail.services.session_store import SessionStore

PROVIDER_URL = "https://api.mail.tm"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self):
        self.now = datetime(2025, 2, 5, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMailTm:
    """
    In-memory stand-in for the Mail.tm REST API.

    Set `failures[(method, path)] = status` to make an endpoint fail, or
    `raise_for[(method, path)] = exc` to simulate a transport error.
    """

    def __init__(self):
        self.accounts = {}
        self.tokens = {}
        self.messages = {}
        self.attachments = {}
        self.failures = {}
        self.raise_for = {}
        self.requests = []
        self._next_id = 1

    def _new_id(self, prefix: str) -> str:
        value = f"{prefix}-{self._next_id}"
        self._next_id += 1
        return value

    def add_message(self, address: str, subject: str = "Hello", seen: bool = False, attachment: bytes = None) -> dict:
        account_id = next(a["id"] for a in self.accounts.values() if a["address"] == address)
        message = {
            "id": self._new_id("msg"),
            "accountId": account_id,
            "from": {"address": "sender@example.org", "name": "Sender"},
            "subject": subject,
            "intro": f"{subject} intro",
            "seen": seen,
            "hasAttachments": attachment is not None,
            "attachments": [],
        }
        if attachment is not None:
            attachment_id = "ATTACH000001"
            message["attachments"].append({"id": attachment_id, "filename": "report.txt"})
            self.attachments[(message["id"], attachment_id)] = attachment
        self.messages.setdefault(account_id, []).append(message)
        return message

    def _account_for(self, request: httpx.Request):
        auth = request.headers.get("authorization", "")
        return self.tokens.get(auth.removeprefix("Bearer "))

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        self.requests.append((method, path))

        if (method, path) in self.raise_for:
            raise self.raise_for[(method, path)]
        if (method, path) in self.failures:
            status = self.failures[(method, path)]
            return httpx.Response(status, json={"hydra:description": "failure", "message": "forced failure"})

        if method == "GET" and path == "/domains":
            return httpx.Response(200, json={
                "hydra:member": [{"id": "d1", "domain": "domain.com", "isActive": True}],
                "hydra:totalItems": 1,
            })

        if method == "POST" and path == "/accounts":
            body = json.loads(request.content)
            if body["address"] in self.accounts:
                return httpx.Response(409, json={"detail": "address already used"})
            account = {
                "id": self._new_id("acc"),
                "address": body["address"],
                "quota": 40000000,
                "used": 0,
                "password": body["password"],
            }
            self.accounts[body["address"]] = account
            return httpx.Response(201, json={k: v for k, v in account.items() if k != "password"})

        if method == "POST" and path == "/token":
            body = json.loads(request.content)
            account = self.accounts.get(body["address"])
            if account is None or account["password"] != body["password"]:
                return httpx.Response(401, json={"message": "Invalid credentials."})
            token = f"token-{account['id']}"
            self.tokens[token] = account
            return httpx.Response(200, json={"id": account["id"], "token": token})

        account = self._account_for(request)
        if account is None or account["address"] not in self.accounts:
            return httpx.Response(401, json={"message": "JWT Token not found"})

        parts = path.strip("/").split("/")
        if method == "GET" and parts == ["messages"]:
            messages = self.messages.get(account["id"], [])
            return httpx.Response(200, json={"hydra:member": messages, "hydra:totalItems": len(messages)})

        if method == "GET" and len(parts) == 2 and parts[0] == "messages":
            for message in self.messages.get(account["id"], []):
                if message["id"] == parts[1]:
                    return httpx.Response(200, json={**message, "text": "body text"})
            return httpx.Response(404, json={"message": "Not Found"})

        if method == "GET" and len(parts) == 4 and parts[2] == "attachment":
            content = self.attachments.get((parts[1], parts[3]))
            if content is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(
                200,
                content=content,
                headers={
                    "content-type": "text/plain",
                    "content-disposition": 'attachment; filename="report.txt"',
                },
            )

        if len(parts) == 2 and parts[0] == "accounts" and parts[1] == account["id"]:
            if method == "GET":
                return httpx.Response(200, json={k: v for k, v in account.items() if k != "password"})
            if method == "DELETE":
                del self.accounts[account["address"]]
                return httpx.Response(204)

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeMailTm()


@pytest.fixture
def mailtm_client(provider):
    """MailTmClient talking to the fake provider."""
    http_client = httpx.AsyncClient(
        base_url=PROVIDER_URL,
        transport=httpx.MockTransport(provider.handler),
    )
    return MailTmClient(base_url=PROVIDER_URL, http_client=http_client)


@pytest.fixture
def store(mailtm_client, clock):
    return SessionStore(mailtm_client, idle_seconds=24 * 3600, clock=clock)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        rate_limit_enabled=False,
        admin_token="admin-secret",
    )


@pytest.fixture
def app(settings, mailtm_client):
    return create_app(settings, mailtm_client)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def client_settings():
    return ClientSettings(_env_file=None, api_base_url="http://testserver/api")


@pytest.fixture
async def api(app, client_settings):
    """TempMailAPI wired straight into the FastAPI app."""
    http_client = httpx.AsyncClient(
        base_url=client_settings.api_base_url,
        transport=httpx.ASGITransport(app=app),
    )
    async with TempMailAPI(settings=client_settings, http_client=http_client) as instance:
        yield instance
