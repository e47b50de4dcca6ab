"""Sign-in, callback and sign-out flows that establish the auth cookies"""

import logging
from typing import List, Mapping, Optional
from urllib.parse import urlencode

from . import cookies as C
from .config import Settings
from .cookies import CookieSpec
from .errors import ProviderError, SessionError
from .logto import LogtoClient, generate_code_challenge, generate_code_verifier, generate_state, redirect_path_from_state
from .session import SessionManager

logger = logging.getLogger(__name__)


class FlowResult:
    """Where to redirect the browser and which cookies to set on the way"""

    def __init__(self, redirect_url: str, cookies: Optional[List[CookieSpec]] = None, via: Optional[str] = None):
        self.redirect_url = redirect_url
        self.cookies = cookies or []
        self.via = via

    def __repr__(self):
        return f"<FlowResult {self.via} -> {self.redirect_url}>"


class SessionBootstrap:
    """PKCE sign-in with SDK delegation and a manual fallback"""

    def __init__(self, settings: Settings, logto: LogtoClient, sessions: SessionManager):
        self.settings = settings
        self.logto = logto
        self.sessions = sessions

    def _root_with(self, path: str = "/", error: Optional[str] = None) -> str:
        url = f"{self.settings.base_url.rstrip('/')}{path}"
        if error:
            url = f"{url}{'&' if '?' in url else '?'}{urlencode({'error': error})}"
        return url

    def _clear_transient(self) -> List[CookieSpec]:
        return [C.clear(name, self.settings.cookie_secure) for name in C.TRANSIENT_COOKIES]

    async def sign_in(self, redirect_uri: Optional[str] = None) -> FlowResult:
        redirect_path = self.settings.same_origin_path(redirect_uri) or "/"

        delegated = await self.sessions.handle_sign_in(redirect_path)
        if delegated is not None:
            url, cookies = delegated
            return FlowResult(url, cookies, via="sdk")

        logger.info("No redirect target from SDK, constructing manual OAuth URL")
        state = generate_state(redirect_path)
        verifier = generate_code_verifier()
        url = self.logto.build_authorize_url(state=state, code_challenge=generate_code_challenge(verifier))
        secure = self.settings.cookie_secure
        cookies = [
            CookieSpec(C.STATE, state, max_age=C.TRANSIENT_TTL, secure=secure),
            CookieSpec(C.CODE_VERIFIER, verifier, max_age=C.TRANSIENT_TTL, secure=secure),
        ]
        return FlowResult(url, cookies, via="manual")

    async def callback(
        self,
        cookies: Mapping[str, str],
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> FlowResult:
        if error:
            logger.warning("OAuth error on callback: %s", error)
            return FlowResult(self._root_with(error=error), self._clear_transient(), via="error")
        if not code:
            logger.warning("No authorization code received")
            return FlowResult(self._root_with(error="no_code"), self._clear_transient(), via="error")

        stored_state = cookies.get(C.STATE)
        verifier = cookies.get(C.CODE_VERIFIER)
        if verifier and stored_state and stored_state == state:
            return await self._manual_callback(code, state, verifier)
        return await self._sdk_callback(cookies, code, state)

    async def _manual_callback(self, code: str, state: str, verifier: str) -> FlowResult:
        transient = self._clear_transient()
        try:
            tokens = await self.logto.exchange_code(code, verifier)
        except ProviderError as e:
            logger.error("Token exchange failed: %s", e)
            reason = "token_exchange_failed" if e.status_code else "callback_failed"
            return FlowResult(self._root_with(error=reason), transient, via="manual")

        logger.info("Manual OAuth callback completed")
        target = self._root_with(redirect_path_from_state(state))
        return FlowResult(target, transient + C.token_cookies(tokens, self.settings.cookie_secure), via="manual")

    async def _sdk_callback(self, cookies: Mapping[str, str], code: str, state: Optional[str]) -> FlowResult:
        transient = self._clear_transient()
        try:
            issued = await self.sessions.handle_sign_in_callback(cookies, code, state)
        except (SessionError, ProviderError) as e:
            logger.error("SDK callback error: %s", e)
            return FlowResult(self._root_with(error="sdk_callback_failed"), transient, via="sdk")
        target = self._root_with(redirect_path_from_state(state))
        return FlowResult(target, transient + issued, via="sdk")

    async def sign_out(self, cookies: Mapping[str, str], redirect_uri: Optional[str] = None) -> FlowResult:
        path = self.settings.same_origin_path(redirect_uri)
        fallback = self._root_with(path or "/")

        sdk_target, sdk_cookies = await self.sessions.handle_sign_out(cookies, fallback)

        secure = self.settings.cookie_secure
        cleared = [C.clear(name, secure) for name in C.AUTH_COOKIES] + self._clear_transient()
        return FlowResult(sdk_target or fallback, sdk_cookies + cleared, via="sdk" if sdk_target else "manual")
