"""Shared fixtures: settings, in-memory store and a fake Logto provider"""

from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient

from club_subdomains.app import create_app
from club_subdomains.config import Settings
from club_subdomains.database import Database
from club_subdomains.logto import LogtoClient
from club_subdomains.session import SessionManager

ENDPOINT = "https://auth.example.com"

ALICE = {"sub": "user-alice", "email": "alice@example.com", "name": "Alice"}
BOB = {"sub": "user-bob", "email": "bob@example.com", "name": "Bob"}


class ProviderStub:
    """In-process stand-in for the Logto endpoints used by the app"""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {"tok-alice": dict(ALICE), "tok-bob": dict(BOB)}
        self.roles: Dict[str, List[Dict[str, str]]] = {}
        self.refresh_grants: Dict[str, Dict[str, Any]] = {}
        self.code_grants: Dict[str, Dict[str, Any]] = {
            "good-code": {
                "access_token": "tok-alice",
                "id_token": "id-alice",
                "refresh_token": "ref-alice",
                "expires_in": 3600,
            }
        }
        self.discovery_available = True
        self.offline = False
        self.requests: List[httpx.Request] = []

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def form(self, index: int = -1) -> Dict[str, str]:
        return {k: v[0] for k, v in parse_qs(self.requests[index].content.decode()).items()}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("provider unreachable", request=request)

        path = request.url.path
        if path == "/oidc/.well-known/openid-configuration":
            if not self.discovery_available:
                return httpx.Response(503, json={"error": "unavailable"})
            return httpx.Response(
                200,
                json={
                    "issuer": f"{ENDPOINT}/oidc",
                    "authorization_endpoint": f"{ENDPOINT}/oidc/auth",
                    "token_endpoint": f"{ENDPOINT}/oidc/token",
                    "userinfo_endpoint": f"{ENDPOINT}/oidc/me",
                    "end_session_endpoint": f"{ENDPOINT}/oidc/session/end",
                },
            )

        if path == "/oidc/me":
            token = request.headers.get("authorization", "").replace("Bearer ", "")
            if token in self.users:
                return httpx.Response(200, json=self.users[token])
            return httpx.Response(401, json={"error": "invalid_token"})

        if path == "/oidc/token":
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            if form.get("grant_type") == "authorization_code":
                tokens = self.code_grants.get(form.get("code"))
            else:
                tokens = self.refresh_grants.get(form.get("refresh_token"))
            if tokens is None:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json=tokens)

        if path.startswith("/api/users/") and path.endswith("/roles"):
            sub = path.split("/")[3]
            if sub in self.roles:
                return httpx.Response(200, json=self.roles[sub])
            return httpx.Response(403, json={"message": "Forbidden"})

        return httpx.Response(404)


def make_settings(**overrides) -> Settings:
    values = dict(
        env="development",
        base_url="http://testserver",
        logto_endpoint=ENDPOINT,
        logto_app_id="app123",
        logto_app_secret="secret",
        cookie_secret="x" * 40,
        data_store="sqlite",
        http_timeout_seconds=2,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values).validate_required()


def cookie_header(cookies: Dict[str, str]) -> Dict[str, str]:
    return {"Cookie": "; ".join(f"{k}={v}" for k, v in cookies.items())}


def set_cookies(response) -> Dict[str, str]:
    """Map cookie name -> full Set-Cookie header"""
    result = {}
    for header in response.headers.get_list("set-cookie"):
        name = header.split("=", 1)[0]
        result[name] = header
    return result


def is_cleared(header: Optional[str]) -> bool:
    return header is not None and "Max-Age=0" in header


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def provider():
    return ProviderStub()


@pytest.fixture
def http(provider):
    return httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))


@pytest.fixture
def sqlite_db():
    """Create in-memory SQLite database"""
    return Database(database_url="sqlite:///:memory:")


@pytest.fixture
def logto(settings, http):
    return LogtoClient(settings, http)


@pytest.fixture
def sessions(settings, logto):
    return SessionManager(settings, logto)


@pytest.fixture
def app(settings, sqlite_db, http):
    return create_app(settings, store=sqlite_db, http=http)


@pytest.fixture
def client(app):
    return TestClient(app)
