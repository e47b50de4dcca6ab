"""SDK-style session: tokens and sign-in state kept in one encrypted cookie

The cookie ``logto_<appId>`` holds a Fernet-encrypted JSON blob keyed from
COOKIE_SECRET. Endpoints come from OIDC discovery, so this path needs the
provider's discovery document to be reachable.
"""

import base64
import hashlib
import json
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

from cryptography.fernet import Fernet, InvalidToken

from .config import Settings
from .cookies import CookieSpec, clear
from .errors import ProviderError, SessionError
from .logto import LogtoClient, generate_code_challenge, generate_code_verifier, generate_state

logger = logging.getLogger(__name__)

SESSION_TTL = 14 * 24 * 60 * 60
EXPIRY_LEEWAY = 30


class SessionContext:
    """Outcome of resolving the SDK session from request cookies"""

    def __init__(
        self,
        authenticated: bool = False,
        userinfo: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
        cookies: Optional[List[CookieSpec]] = None,
    ):
        self.authenticated = authenticated
        self.userinfo = userinfo or {}
        self.access_token = access_token
        self.cookies = cookies or []


class SessionManager:
    """Sign-in, callback, context and sign-out handling for the encrypted session cookie"""

    def __init__(self, settings: Settings, logto: LogtoClient):
        self.settings = settings
        self.logto = logto
        key = base64.urlsafe_b64encode(hashlib.sha256(settings.cookie_secret.encode("utf-8")).digest())
        self._fernet = Fernet(key)

    @property
    def cookie_name(self) -> str:
        return self.settings.session_cookie_name

    def load(self, cookies: Mapping[str, str]) -> Dict[str, Any]:
        raw = cookies.get(self.cookie_name)
        if not raw:
            return {}
        try:
            data = json.loads(self._fernet.decrypt(raw.encode("utf-8")))
        except (InvalidToken, ValueError):
            logger.info("Ignoring unreadable session cookie")
            return {}
        return data if isinstance(data, dict) else {}

    def dump(self, data: Dict[str, Any]) -> CookieSpec:
        token = self._fernet.encrypt(json.dumps(data, separators=(",", ":")).encode("utf-8")).decode("utf-8")
        return CookieSpec(self.cookie_name, token, max_age=SESSION_TTL, secure=self.settings.cookie_secure)

    def _store_tokens(self, tokens: Dict[str, Any], previous: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        previous = previous or {}
        return {
            "access_token": tokens["access_token"],
            "id_token": tokens.get("id_token") or previous.get("id_token"),
            "refresh_token": tokens.get("refresh_token") or previous.get("refresh_token"),
            "expires_at": int(time.time()) + int(tokens.get("expires_in") or 3600),
        }

    async def handle_sign_in(self, redirect_path: str = "/") -> Optional[Tuple[str, List[CookieSpec]]]:
        """Return (authorization URL, cookies), or None when discovery is unavailable"""
        try:
            discovery = await self.logto.discovery()
        except ProviderError as e:
            logger.warning("SDK sign-in unavailable: %s", e)
            return None

        state = generate_state(redirect_path)
        verifier = generate_code_verifier()
        url = self.logto.build_authorize_url(
            state=state,
            code_challenge=generate_code_challenge(verifier),
            authorization_endpoint=discovery["authorization_endpoint"],
        )
        cookie = self.dump({"sign_in": {"state": state, "code_verifier": verifier}})
        return url, [cookie]

    async def handle_sign_in_callback(self, cookies: Mapping[str, str], code: str, state: Optional[str]) -> List[CookieSpec]:
        """Exchange the code using the verifier stored at sign-in

        Raises SessionError when there is no matching sign-in session and
        ProviderError when the provider rejects the exchange.
        """
        sign_in = self.load(cookies).get("sign_in")
        if not isinstance(sign_in, dict) or not sign_in.get("code_verifier"):
            raise SessionError("No sign-in session found")
        if not state or sign_in.get("state") != state:
            raise SessionError("State mismatch")

        discovery = await self.logto.discovery()
        tokens = await self.logto.exchange_code(
            code, sign_in["code_verifier"], token_endpoint=discovery.get("token_endpoint")
        )
        return [self.dump(self._store_tokens(tokens))]

    async def get_context(self, cookies: Mapping[str, str]) -> SessionContext:
        data = self.load(cookies)
        access_token = data.get("access_token")
        if not access_token:
            return SessionContext()

        issued: List[CookieSpec] = []
        if int(data.get("expires_at") or 0) - EXPIRY_LEEWAY <= time.time():
            refresh_token = data.get("refresh_token")
            if not refresh_token:
                return SessionContext()
            try:
                tokens = await self.logto.refresh(refresh_token)
            except ProviderError as e:
                logger.info("Session refresh failed: %s", e)
                return SessionContext()
            data = self._store_tokens(tokens, previous=data)
            access_token = data["access_token"]
            issued.append(self.dump(data))

        try:
            userinfo = await self.logto.fetch_userinfo(access_token)
        except ProviderError as e:
            logger.info("Session userinfo lookup failed: %s", e)
            return SessionContext()
        return SessionContext(authenticated=True, userinfo=userinfo, access_token=access_token, cookies=issued)

    async def handle_sign_out(
        self, cookies: Mapping[str, str], post_logout_redirect_uri: str
    ) -> Tuple[Optional[str], List[CookieSpec]]:
        """Clear the session cookie; return the provider's end-session URL when there was a session"""
        if self.cookie_name not in cookies:
            return None, []

        data = self.load(cookies)
        cleared = [clear(self.cookie_name, self.settings.cookie_secure)]
        if not data.get("access_token"):
            return None, cleared
        try:
            discovery = await self.logto.discovery()
        except ProviderError as e:
            logger.warning("End-session endpoint unavailable: %s", e)
            return None, cleared
        endpoint = discovery.get("end_session_endpoint")
        if not endpoint:
            return None, cleared
        return self.logto.end_session_url(endpoint, data.get("id_token"), post_logout_redirect_uri), cleared
