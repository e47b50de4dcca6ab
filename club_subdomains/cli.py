"""Command line entry point

Usage:
    club-subdomains serve [--host HOST] [--port PORT]
    club-subdomains check                 # validate config, provider and store
    club-subdomains add-domain NAME       # sqlite store only
    club-subdomains add-club NAME         # sqlite store only
    club-subdomains activate RECORD_ID    # sqlite store only
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import httpx

from .app import build_store
from .config import Settings, configure_logging, load_settings
from .database import Database
from .errors import ConfigError, ProviderError, UpstreamFailure
from .logto import LogtoClient


def print_header(text):
    """Print formatted header"""
    print()
    print("=" * 60)
    print(f"  {text}")
    print("=" * 60)


def print_check(label, status, details=""):
    """Print check result"""
    status_text = "OK" if status else "FAIL"
    print(f"{label:.<50} {status_text}")
    if details:
        print(f"   - {details}")


async def run_checks(settings: Settings, http: httpx.AsyncClient) -> bool:
    """Probe OIDC discovery and the record store; True when both respond"""
    print_header("Identity provider")
    try:
        discovery = await LogtoClient(settings, http).discovery()
        print_check("OIDC discovery", True, discovery.get("issuer", ""))
        provider_ok = True
    except ProviderError as e:
        print_check("OIDC discovery", False, f"{e} (sign-in will use the manual flow)")
        provider_ok = False

    print_header("Record store")
    store = build_store(settings, http)
    try:
        await store.ping()
        print_check(f"{store.mode} store", True)
        store_ok = True
    except UpstreamFailure as e:
        print_check(f"{store.mode} store", False, e.detail or e.message)
        store_ok = False

    return provider_ok and store_ok


async def _check(settings: Settings) -> bool:
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http:
        return await run_checks(settings, http)


def cmd_check(settings: Settings, args) -> int:
    print_header("Configuration")
    print_check("Required settings", True, f"ENV={settings.env}, DATA_STORE={settings.data_store}")
    ok = asyncio.run(_check(settings))
    print()
    print("All systems validated. Ready to launch." if ok else "Some checks failed. Review errors above.")
    return 0 if ok else 1


def cmd_serve(settings: Settings, args) -> int:
    import uvicorn

    uvicorn.run("club_subdomains.app:create_app", factory=True, host=args.host, port=args.port)
    return 0


def _local_store(settings: Settings) -> Optional[Database]:
    if settings.data_store != "sqlite":
        print("This command only works with DATA_STORE=sqlite; manage Airtable rows in Airtable.", file=sys.stderr)
        return None
    return Database(sqlite_path=settings.sqlite_path)


def cmd_add_domain(settings: Settings, args) -> int:
    db = _local_store(settings)
    if db is None:
        return 2
    domain = db.add_domain(args.name)
    print(f"{domain.id}\t{domain.name}")
    return 0


def cmd_add_club(settings: Settings, args) -> int:
    db = _local_store(settings)
    if db is None:
        return 2
    club = db.add_club_name(args.name)
    print(f"{club.id}\t{club.name}")
    return 0


def cmd_activate(settings: Settings, args) -> int:
    db = _local_store(settings)
    if db is None:
        return 2
    record = db.set_active(args.record_id, not args.deactivate)
    if record is None:
        print(f"No subdomain with id {args.record_id}", file=sys.stderr)
        return 1
    print(f"{record.subdomain}: active={record.active}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="club-subdomains", description="Club subdomain request dashboard")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the web server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)

    check = sub.add_parser("check", help="Validate configuration and upstream connectivity")
    check.set_defaults(func=cmd_check)

    add_domain = sub.add_parser("add-domain", help="Add a parent domain (sqlite store)")
    add_domain.add_argument("name")
    add_domain.set_defaults(func=cmd_add_domain)

    add_club = sub.add_parser("add-club", help="Add a club name (sqlite store)")
    add_club.add_argument("name")
    add_club.set_defaults(func=cmd_add_club)

    activate = sub.add_parser("activate", help="Mark a subdomain request active (sqlite store)")
    activate.add_argument("record_id")
    activate.add_argument("--deactivate", action="store_true")
    activate.set_defaults(func=cmd_activate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level)
    return args.func(settings, args)


if __name__ == "__main__":
    sys.exit(main())
