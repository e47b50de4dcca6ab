"""Logto (OIDC) provider client: discovery, PKCE, token, userinfo and role calls"""

import base64
import hashlib
import logging
import secrets
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from .config import Settings
from .errors import ProviderError

logger = logging.getLogger(__name__)

SCOPES = "openid profile email roles offline_access"


def generate_code_verifier() -> str:
    """Generate PKCE code verifier"""
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")


def generate_code_challenge(verifier: str) -> str:
    """Generate PKCE S256 code challenge from verifier"""
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def generate_state(redirect_path: str = "/") -> str:
    """Generate OAuth state parameter carrying the post-sign-in path"""
    return f"{secrets.token_urlsafe(16)}:{redirect_path}"


def redirect_path_from_state(state: Optional[str]) -> str:
    path = state.split(":", 1)[1] if state and ":" in state else "/"
    if not path.startswith("/") or path.startswith("//"):
        return "/"
    return path


class LogtoClient:
    """Thin async wrapper around the provider's HTTP endpoints"""

    def __init__(self, settings: Settings, http: httpx.AsyncClient):
        self.settings = settings
        self.http = http
        self.endpoint = settings.logto_base
        self._discovery: Optional[Dict[str, Any]] = None

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.endpoint}/oidc/auth"

    @property
    def token_endpoint(self) -> str:
        return f"{self.endpoint}/oidc/token"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self.endpoint}/oidc/me"

    @property
    def discovery_url(self) -> str:
        return f"{self.endpoint}/oidc/.well-known/openid-configuration"

    async def _call(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"{method} {url} failed: {e.__class__.__name__}") from e

    @staticmethod
    def _json(response: httpx.Response, what: str) -> Any:
        if response.status_code >= 400:
            raise ProviderError(f"{what} failed (status={response.status_code})", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{what} returned invalid JSON") from e

    async def discovery(self) -> Dict[str, Any]:
        """Fetch and memoize the OIDC discovery document"""
        if self._discovery is None:
            response = await self._call("GET", self.discovery_url)
            data = self._json(response, "OIDC discovery")
            if not isinstance(data, dict) or not data.get("authorization_endpoint"):
                raise ProviderError("Invalid OIDC discovery document")
            self._discovery = data
        return self._discovery

    def build_authorize_url(
        self,
        *,
        state: str,
        code_challenge: str,
        authorization_endpoint: Optional[str] = None,
    ) -> str:
        params = {
            "client_id": self.settings.logto_app_id,
            "redirect_uri": self.settings.callback_url,
            "response_type": "code",
            "scope": SCOPES,
            "prompt": "consent",
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{authorization_endpoint or self.authorization_endpoint}?{urlencode(params)}"

    async def exchange_code(
        self,
        code: str,
        code_verifier: str,
        token_endpoint: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Exchange authorization code for tokens"""
        data = {
            "grant_type": "authorization_code",
            "client_id": self.settings.logto_app_id,
            "client_secret": self.settings.logto_app_secret,
            "code": code,
            "redirect_uri": self.settings.callback_url,
            "code_verifier": code_verifier,
        }
        response = await self._call(
            "POST", token_endpoint or self.token_endpoint, data=data, headers={"Accept": "application/json"}
        )
        tokens = self._json(response, "Token exchange")
        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise ProviderError("Token response missing access_token")
        return tokens

    async def refresh(self, refresh_token: str, token_endpoint: Optional[str] = None) -> Dict[str, Any]:
        data = {
            "grant_type": "refresh_token",
            "client_id": self.settings.logto_app_id,
            "client_secret": self.settings.logto_app_secret,
            "refresh_token": refresh_token,
        }
        response = await self._call(
            "POST", token_endpoint or self.token_endpoint, data=data, headers={"Accept": "application/json"}
        )
        tokens = self._json(response, "Token refresh")
        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise ProviderError("Refresh response missing access_token")
        return tokens

    async def fetch_userinfo(self, access_token: str, userinfo_endpoint: Optional[str] = None) -> Dict[str, Any]:
        response = await self._call(
            "GET",
            userinfo_endpoint or self.userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        )
        info = self._json(response, "Userinfo")
        if not isinstance(info, dict):
            raise ProviderError("Invalid userinfo payload")
        return info

    async def fetch_user_roles(self, sub: str, access_token: str) -> List[Dict[str, Any]]:
        """Management API role lookup; the token needs management API access"""
        response = await self._call(
            "GET",
            f"{self.endpoint}/api/users/{sub}/roles",
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        )
        roles = self._json(response, "Role lookup")
        if not isinstance(roles, list):
            raise ProviderError("Invalid role lookup payload")
        return roles

    def end_session_url(self, end_session_endpoint: str, id_token: Optional[str], post_logout_redirect_uri: str) -> str:
        params = {"client_id": self.settings.logto_app_id, "post_logout_redirect_uri": post_logout_redirect_uri}
        if id_token:
            params["id_token_hint"] = id_token
        return f"{end_session_endpoint}?{urlencode(params)}"
