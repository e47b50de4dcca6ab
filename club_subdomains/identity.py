"""Identity verification: ordered auth strategies plus role resolution

Strategies run in precedence order and the first one that authenticates
wins. A strategy that hits a provider error reports "not authenticated"
instead of raising, so the next strategy still gets its chance.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import Settings
from .cookies import ACCESS_TOKEN, REFRESH_TOKEN, CookieSpec, token_cookies
from .errors import ProviderError
from .logto import LogtoClient
from .models import Role
from .session import SessionManager

logger = logging.getLogger(__name__)


class StrategyResult:
    def __init__(self, userinfo: Dict[str, Any], access_token: Optional[str], cookies: Optional[List[CookieSpec]] = None):
        self.userinfo = userinfo
        self.access_token = access_token
        self.cookies = cookies or []


class IdentityResult:
    """Who is calling, and which cookies must be re-sent with the response"""

    def __init__(
        self,
        authenticated: bool = False,
        userinfo: Optional[Dict[str, Any]] = None,
        roles: Optional[List[Role]] = None,
        cookies: Optional[List[CookieSpec]] = None,
        via: Optional[str] = None,
    ):
        self.authenticated = authenticated
        self.userinfo = userinfo or {}
        self.roles = roles or []
        self.cookies = cookies or []
        self.via = via

    def __repr__(self):
        return f"<IdentityResult authenticated={self.authenticated} via={self.via} email={self.email}>"

    @property
    def email(self) -> Optional[str]:
        return self.userinfo.get("email") or None

    @property
    def sub(self) -> Optional[str]:
        return self.userinfo.get("sub") or None

    @property
    def name(self) -> Optional[str]:
        return self.userinfo.get("name") or self.userinfo.get("username") or None

    def has_role(self, value: str) -> bool:
        return any(role.matches(value) for role in self.roles)

    def to_user_info(self) -> Dict[str, Any]:
        info = {k: v for k, v in self.userinfo.items() if k != "roles"}
        info["roles"] = [role.to_dict() for role in self.roles]
        return info


class AuthStrategy(ABC):
    name = "abstract"

    @abstractmethod
    async def authenticate(self, cookies: Mapping[str, str]) -> Optional[StrategyResult]:
        """Return a result when this strategy authenticates the caller, else None"""


class BearerTokenStrategy(AuthStrategy):
    """``logto:access_token`` checked against the userinfo endpoint, with one refresh attempt"""

    name = "bearer"

    def __init__(self, logto: LogtoClient, cookie_secure: bool = False):
        self.logto = logto
        self.cookie_secure = cookie_secure

    async def authenticate(self, cookies: Mapping[str, str]) -> Optional[StrategyResult]:
        access_token = cookies.get(ACCESS_TOKEN)
        refresh_token = cookies.get(REFRESH_TOKEN)

        if access_token:
            try:
                userinfo = await self.logto.fetch_userinfo(access_token)
                return StrategyResult(userinfo, access_token)
            except ProviderError as e:
                logger.warning("Error verifying access token: %s", e)
                if e.status_code != 401:
                    return None

        if not refresh_token:
            return None
        try:
            tokens = await self.logto.refresh(refresh_token)
            userinfo = await self.logto.fetch_userinfo(tokens["access_token"])
        except ProviderError as e:
            logger.info("Refresh-token renewal failed: %s", e)
            return None
        logger.info("Rotated access token for %s", userinfo.get("sub"))
        return StrategyResult(userinfo, tokens["access_token"], token_cookies(tokens, self.cookie_secure))


class SessionStrategy(AuthStrategy):
    """Fallback to the encrypted SDK session cookie"""

    name = "session"

    def __init__(self, sessions: SessionManager):
        self.sessions = sessions

    async def authenticate(self, cookies: Mapping[str, str]) -> Optional[StrategyResult]:
        context = await self.sessions.get_context(cookies)
        if not context.authenticated:
            return None
        return StrategyResult(context.userinfo, context.access_token, context.cookies)


class RoleResolver:
    """Roles from the userinfo claim, then the management API, then the email allow-list"""

    def __init__(self, settings: Settings, logto: LogtoClient):
        self.settings = settings
        self.logto = logto

    async def resolve(self, userinfo: Dict[str, Any], access_token: Optional[str]) -> List[Role]:
        claimed = _parse_roles(userinfo.get("roles"))
        if claimed:
            return claimed

        sub = userinfo.get("sub")
        if sub and access_token:
            try:
                roles = _parse_roles(await self.logto.fetch_user_roles(sub, access_token))
                if roles:
                    return roles
            except ProviderError as e:
                logger.info("Management API role lookup failed: %s", e)

        email = (userinfo.get("email") or "").lower()
        if email and email in self.settings.allowlisted_emails:
            # TODO: drop ROLE_ALLOWLIST_EMAILS once every elevated account has a provider role
            logger.warning("Granting roles to %s from ROLE_ALLOWLIST_EMAILS", email)
            return [
                Role(id=self.settings.multi_subdomain_role, name=self.settings.multi_subdomain_role),
                Role(id=self.settings.admin_role, name=self.settings.admin_role),
            ]
        return []


def _parse_roles(raw: Any) -> List[Role]:
    if not isinstance(raw, list):
        return []
    return [role for role in (Role.parse(item) for item in raw) if role is not None]


class IdentityVerifier:
    def __init__(self, strategies: Sequence[AuthStrategy], roles: Optional[RoleResolver] = None):
        self.strategies = list(strategies)
        self.roles = roles

    async def verify(self, cookies: Mapping[str, str], with_roles: bool = True) -> IdentityResult:
        for strategy in self.strategies:
            result = await strategy.authenticate(cookies)
            if result is None:
                continue
            roles = await self.roles.resolve(result.userinfo, result.access_token) if (with_roles and self.roles) else []
            logger.debug("Authenticated %s via %s", result.userinfo.get("sub"), strategy.name)
            return IdentityResult(
                authenticated=True,
                userinfo=result.userinfo,
                roles=roles,
                cookies=result.cookies,
                via=strategy.name,
            )
        return IdentityResult()


def build_verifier(settings: Settings, logto: LogtoClient, sessions: SessionManager) -> IdentityVerifier:
    return IdentityVerifier(
        [BearerTokenStrategy(logto, cookie_secure=settings.cookie_secure), SessionStrategy(sessions)],
        RoleResolver(settings, logto),
    )
