"""Auth cookie names and helpers for setting and clearing them on responses"""

from typing import Any, Dict, Iterable, List, Optional

from starlette.responses import Response

ACCESS_TOKEN = "logto:access_token"
ID_TOKEN = "logto:id_token"
REFRESH_TOKEN = "logto:refresh_token"
AUTH_COOKIES = (ACCESS_TOKEN, ID_TOKEN, REFRESH_TOKEN)

STATE = "logto_state"
CODE_VERIFIER = "logto_code_verifier"
TRANSIENT_COOKIES = (STATE, CODE_VERIFIER)

DEFAULT_TOKEN_TTL = 3600
REFRESH_TOKEN_TTL = 30 * 24 * 60 * 60  # 30 days
TRANSIENT_TTL = 10 * 60


class CookieSpec:
    """A Set-Cookie instruction that can be carried around before a response exists"""

    def __init__(
        self,
        name: str,
        value: str,
        max_age: Optional[int],
        secure: bool = False,
        httponly: bool = True,
        samesite: str = "lax",
        path: str = "/",
    ):
        self.name = name
        self.value = value
        self.max_age = max_age
        self.secure = secure
        self.httponly = httponly
        self.samesite = samesite
        self.path = path

    def __repr__(self):
        return f"<CookieSpec {self.name} max_age={self.max_age}>"

    @property
    def is_deletion(self) -> bool:
        return self.max_age == 0

    def apply(self, response: Response) -> None:
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            path=self.path,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )


def clear(name: str, secure: bool) -> CookieSpec:
    return CookieSpec(name, "", max_age=0, secure=secure)


def token_cookies(tokens: Dict[str, Any], secure: bool) -> List[CookieSpec]:
    """Cookies for a token endpoint response (access/id/refresh)"""
    ttl = int(tokens.get("expires_in") or DEFAULT_TOKEN_TTL)
    cookies = []
    if tokens.get("access_token"):
        cookies.append(CookieSpec(ACCESS_TOKEN, tokens["access_token"], max_age=ttl, secure=secure))
    if tokens.get("id_token"):
        cookies.append(CookieSpec(ID_TOKEN, tokens["id_token"], max_age=ttl, secure=secure))
    if tokens.get("refresh_token"):
        cookies.append(CookieSpec(REFRESH_TOKEN, tokens["refresh_token"], max_age=REFRESH_TOKEN_TTL, secure=secure))
    return cookies


def apply_cookies(response: Response, cookies: Iterable[CookieSpec]) -> Response:
    for cookie in cookies:
        cookie.apply(response)
    return response
