"""FastAPI application: gateway, user-info and Logto auth routes plus the dashboard"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

import httpx
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from . import __version__
from .airtable import AirtableStore
from .auth import FlowResult, SessionBootstrap
from .config import Settings, load_settings
from .cookies import apply_cookies
from .database import Database, RecordStore
from .errors import AppError, NotFound, Unauthenticated, UpstreamFailure
from .gateway import CREATED_MESSAGE, UPDATED_MESSAGE, DataGateway
from .identity import IdentityResult, IdentityVerifier, build_verifier
from .logto import LogtoClient
from .session import SessionManager

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


# Pydantic models for requests
class SubdomainCreateRequest(BaseModel):
    subdomain: str
    githubRepo: Optional[str] = None
    domains: List[str] = []
    clubName: List[str] = []


class SubdomainUpdateRequest(BaseModel):
    githubRepo: Optional[str] = None


class Services:
    """Explicitly constructed clients shared by the route handlers"""

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient,
        store: RecordStore,
        verifier: Optional[IdentityVerifier] = None,
    ):
        self.settings = settings
        self.http = http
        self.logto = LogtoClient(settings, http)
        self.sessions = SessionManager(settings, self.logto)
        self.verifier = verifier or build_verifier(settings, self.logto, self.sessions)
        self.bootstrap = SessionBootstrap(settings, self.logto, self.sessions)
        self.store = store
        self.gateway = DataGateway(store, settings)


def build_store(settings: Settings, http: httpx.AsyncClient) -> RecordStore:
    if settings.data_store == "sqlite":
        return Database(sqlite_path=settings.sqlite_path)
    return AirtableStore(
        api_key=settings.airtable_api_key,
        base_id=settings.airtable_base_id,
        http=http,
        club_names_table=settings.airtable_club_names_table,
        read_retries=settings.store_read_retries,
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    http: Optional[httpx.AsyncClient] = None,
    verifier: Optional[IdentityVerifier] = None,
) -> FastAPI:
    """Build the application; every client can be injected for tests"""
    settings = settings or load_settings()
    owns_http = http is None
    http = http or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    services = Services(settings, http, store or build_store(settings, http), verifier)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting with %s store, provider %s", services.store.mode, settings.logto_base)
        yield
        if owns_http:
            await http.aclose()

    app = FastAPI(title="Club Subdomains", version=__version__, lifespan=lifespan)
    app.state.services = services

    if settings.cors_origin_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origin_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        message = exc.message
        if isinstance(exc, UpstreamFailure):
            logger.error("Upstream failure on %s: %s", request.url.path, exc.detail or exc.message)
            if exc.detail and not settings.is_production:
                message = exc.detail
        response = JSONResponse({"message": message}, status_code=exc.status_code)
        return apply_cookies(response, getattr(request.state, "session_cookies", []))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid {field}: {first.get('msg')}" if field else "Invalid request body"
        response = JSONResponse({"message": message}, status_code=400)
        return apply_cookies(response, getattr(request.state, "session_cookies", []))

    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
    register_routes(app)
    return app


# Dependencies


def get_services(request: Request) -> Services:
    return request.app.state.services


async def _resolve_identity(request: Request, response: Response, with_roles: bool) -> IdentityResult:
    services = get_services(request)
    identity = await services.verifier.verify(request.cookies, with_roles=with_roles)
    request.state.session_cookies = identity.cookies
    apply_cookies(response, identity.cookies)
    return identity


async def current_identity(request: Request, response: Response) -> IdentityResult:
    return await _resolve_identity(request, response, with_roles=True)


async def authenticated(request: Request, response: Response) -> IdentityResult:
    identity = await _resolve_identity(request, response, with_roles=False)
    if not identity.authenticated:
        raise Unauthenticated()
    return identity


async def authenticated_with_roles(identity: IdentityResult = Depends(current_identity)) -> IdentityResult:
    if not identity.authenticated:
        raise Unauthenticated()
    return identity


def _redirect(result: FlowResult) -> RedirectResponse:
    return apply_cookies(RedirectResponse(url=result.redirect_url, status_code=302), result.cookies)


def register_routes(app: FastAPI) -> None:
    @app.get("/", include_in_schema=False)
    async def dashboard():
        return FileResponse(STATIC_DIR / "index.html")

    @app.get("/health")
    async def health(services: Services = Depends(get_services)):
        """Health check"""
        return {"status": "healthy", "store": services.store.mode, "version": __version__}

    # Data gateway

    @app.get("/api/club-names")
    async def list_club_names(
        search: Optional[str] = None,
        identity: IdentityResult = Depends(authenticated),
        services: Services = Depends(get_services),
    ):
        """Club names matching ``search`` (2+ characters, at most 50)"""
        return [c.to_dict() for c in await services.gateway.list_club_names(search)]

    @app.get("/api/domains")
    async def list_domains(
        identity: IdentityResult = Depends(authenticated),
        services: Services = Depends(get_services),
    ):
        return [d.to_dict() for d in await services.gateway.list_domains()]

    @app.get("/api/subdomains")
    async def list_subdomains(
        identity: IdentityResult = Depends(authenticated),
        services: Services = Depends(get_services),
    ):
        """Subdomains owned by the caller"""
        return [s.to_dict() for s in await services.gateway.list_subdomains(identity)]

    @app.post("/api/subdomains")
    async def create_subdomain(
        body: SubdomainCreateRequest,
        identity: IdentityResult = Depends(authenticated_with_roles),
        services: Services = Depends(get_services),
    ):
        record = await services.gateway.create_subdomain(
            identity,
            subdomain=body.subdomain,
            github_repo=body.githubRepo,
            domains=body.domains,
            club_names=body.clubName,
        )
        return {"message": CREATED_MESSAGE, "record": record.to_dict()}

    @app.put("/api/subdomains/{record_id}")
    async def update_subdomain(
        record_id: str,
        body: SubdomainUpdateRequest,
        identity: IdentityResult = Depends(authenticated),
        services: Services = Depends(get_services),
    ):
        """Update the GitHub repo of a subdomain the caller owns"""
        record = await services.gateway.update_github_repo(identity, record_id, body.githubRepo)
        return {"message": UPDATED_MESSAGE, "record": record.to_dict()}

    @app.get("/api/user-info")
    async def user_info(
        identity: IdentityResult = Depends(current_identity),
        services: Services = Depends(get_services),
    ):
        if not identity.authenticated:
            return {"isAuthenticated": False, "userInfo": None}
        return {
            "isAuthenticated": True,
            "userInfo": identity.to_user_info(),
            "permissions": {
                "canCreateMultipleSubdomains": services.gateway.can_create_multiple(identity),
                "isAdmin": services.gateway.is_admin(identity),
            },
        }

    @app.get("/api/debug")
    async def debug(services: Services = Depends(get_services)):
        """Report which settings are present, never their values"""
        settings = services.settings
        if settings.is_production:
            raise NotFound()

        def flag(value: str) -> str:
            return "SET" if value else "NOT SET"

        return {
            "config": {
                "endpoint": flag(settings.logto_endpoint),
                "appId": flag(settings.logto_app_id),
                "appSecret": flag(settings.logto_app_secret),
                "baseUrl": settings.base_url,
                "cookieSecret": flag(settings.cookie_secret),
                "cookieSecure": settings.cookie_secure,
            },
            "store": {
                "mode": services.store.mode,
                "airtableApiKey": flag(settings.airtable_api_key),
                "airtableBaseId": flag(settings.airtable_base_id),
            },
            "env": settings.env,
        }

    # Logto session bootstrap

    @app.get("/api/logto/sign-in")
    async def sign_in(
        redirect_uri: Optional[str] = Query(None, alias="redirectUri"),
        services: Services = Depends(get_services),
    ):
        return _redirect(await services.bootstrap.sign_in(redirect_uri))

    @app.get("/api/logto/callback")
    async def callback(
        request: Request,
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
        services: Services = Depends(get_services),
    ):
        return _redirect(await services.bootstrap.callback(request.cookies, code, state, error))

    @app.get("/api/logto/sign-out")
    async def sign_out(
        request: Request,
        redirect_uri: Optional[str] = Query(None, alias="redirectUri"),
        services: Services = Depends(get_services),
    ):
        return _redirect(await services.bootstrap.sign_out(request.cookies, redirect_uri))
