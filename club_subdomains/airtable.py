"""Airtable REST API store for the Club Names, Domains and Subdomains tables"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .database import RecordStore
from .errors import UpstreamFailure
from .models import ClubName, Domain, Subdomain

logger = logging.getLogger(__name__)

API_URL = "https://api.airtable.com/v0"
VIEW = "Grid view"


def formula_string(value: str) -> str:
    """Quote ``value`` as an Airtable formula string literal"""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class AirtableStore(RecordStore):
    """Hosted store; reads are retried on transient failures, writes never are"""

    mode = "airtable"

    SUBDOMAINS_TABLE = "Subdomains"
    DOMAINS_TABLE = "Domains"

    # Subdomains fields
    F_SUBDOMAIN = "Subdomain"
    F_EMAIL = "Email"
    F_GITHUB_REPO = "Github Repo"
    F_DOMAINS = "Domains"
    F_CLUB_NAME = "Club Name"
    F_STATUS = "Status"
    F_DOMAIN_NAME = "Name (from Domains)"

    def __init__(
        self,
        api_key: str,
        base_id: str,
        http: httpx.AsyncClient,
        club_names_table: str = "Club Names",
        read_retries: int = 2,
        api_url: str = API_URL,
    ):
        self.api_key = api_key
        self.base_id = base_id
        self.http = http
        self.club_names_table = club_names_table
        self.read_retries = max(0, read_retries)
        self.api_url = api_url.rstrip("/")

    @property
    def club_label_field(self) -> str:
        return f"Club Name (from {self.club_names_table})"

    def _table_url(self, table: str, record_id: Optional[str] = None) -> str:
        url = f"{self.api_url}/{self.base_id}/{quote(table, safe='')}"
        if record_id:
            url = f"{url}/{quote(record_id, safe='')}"
        return url

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}

    async def _read(
        self, url: str, params: Optional[Dict[str, Any]] = None, missing_ok: bool = False
    ) -> Optional[Dict[str, Any]]:
        """GET with bounded retries

        A 404 means "no such record" only for single-record reads (``missing_ok``);
        on a table listing it means a wrong base or table name and is raised.
        """
        attempt = 0
        while True:
            try:
                response = await self.http.get(url, params=params, headers=self._headers())
            except httpx.HTTPError as e:
                if attempt < self.read_retries:
                    attempt += 1
                    logger.warning("Airtable read failed (%s), retry %d/%d", e, attempt, self.read_retries)
                    await asyncio.sleep(0.2 * attempt)
                    continue
                raise UpstreamFailure(detail=f"Airtable request failed: {e}") from e

            if response.status_code == 404 and missing_ok:
                return None
            if (response.status_code == 429 or response.status_code >= 500) and attempt < self.read_retries:
                attempt += 1
                logger.warning("Airtable returned %d, retry %d/%d", response.status_code, attempt, self.read_retries)
                await asyncio.sleep(0.2 * attempt)
                continue
            return self._json_or_raise(response)

    async def _write(self, method: str, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.http.request(method, url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise UpstreamFailure(detail=f"Airtable request failed: {e}") from e
        return self._json_or_raise(response)

    @staticmethod
    def _json_or_raise(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            error = body.get("error") if isinstance(body, dict) else (body or response.text)
            if isinstance(error, dict):
                error = error.get("message") or error.get("type")
            raise UpstreamFailure(detail=f"Airtable error {response.status_code}: {error}")
        if not isinstance(body, dict):
            raise UpstreamFailure(detail=f"Airtable returned an unexpected body (status={response.status_code})")
        return body

    async def _select(
        self,
        table: str,
        formula: Optional[str] = None,
        max_records: Optional[int] = None,
        all_pages: bool = False,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"view": VIEW}
        if formula:
            params["filterByFormula"] = formula
        if max_records:
            params["maxRecords"] = max_records

        records: List[Dict[str, Any]] = []
        while True:
            data = await self._read(self._table_url(table), params=params)
            records.extend(data.get("records", []))
            offset = data.get("offset")
            if not all_pages or not offset or (max_records and len(records) >= max_records):
                break
            params = {**params, "offset": offset}
        return records[:max_records] if max_records else records

    def _to_subdomain(self, record: Dict[str, Any]) -> Subdomain:
        fields = record.get("fields", {})
        return Subdomain(
            id=record["id"],
            subdomain=fields.get(self.F_SUBDOMAIN, ""),
            email=fields.get(self.F_EMAIL, ""),
            github_repo=fields.get(self.F_GITHUB_REPO),
            domains=fields.get(self.F_DOMAINS),
            club_names=fields.get(self.F_CLUB_NAME),
            active=bool(fields.get(self.F_STATUS, False)),
            domain_name=_first(fields.get(self.F_DOMAIN_NAME)),
            club_name_label=_first(fields.get(self.club_label_field)),
        )

    # RecordStore

    async def search_club_names(self, term: str, limit: int) -> List[ClubName]:
        formula = f"SEARCH(LOWER({formula_string(term)}), LOWER({{Club Name}})) > 0"
        records = await self._select(self.club_names_table, formula=formula, max_records=limit, all_pages=True)
        return [
            ClubName(id=r["id"], name=r.get("fields", {}).get("Club Name") or r.get("fields", {}).get("Name", ""))
            for r in records
        ]

    async def list_domains(self) -> List[Domain]:
        records = await self._select(self.DOMAINS_TABLE)
        return [Domain(id=r["id"], name=r.get("fields", {}).get("Name", "")) for r in records]

    async def list_subdomains(self, email: str) -> List[Subdomain]:
        formula = f"{{{self.F_EMAIL}}} = {formula_string(email)}"
        records = await self._select(self.SUBDOMAINS_TABLE, formula=formula)
        return [self._to_subdomain(r) for r in records]

    async def get_subdomain(self, record_id: str) -> Optional[Subdomain]:
        record = await self._read(self._table_url(self.SUBDOMAINS_TABLE, record_id), missing_ok=True)
        return self._to_subdomain(record) if record else None

    async def create_subdomain(
        self,
        subdomain: str,
        email: str,
        github_repo: Optional[str],
        domains: List[str],
        club_names: List[str],
    ) -> Subdomain:
        fields = {
            self.F_SUBDOMAIN: subdomain,
            self.F_EMAIL: email,
            self.F_GITHUB_REPO: github_repo,
            self.F_DOMAINS: domains,
            self.F_CLUB_NAME: club_names,
            self.F_STATUS: False,
        }
        data = await self._write("POST", self._table_url(self.SUBDOMAINS_TABLE), {"records": [{"fields": fields}]})
        return self._to_subdomain(data["records"][0])

    async def update_github_repo(self, record_id: str, github_repo: Optional[str]) -> Subdomain:
        payload = {"records": [{"id": record_id, "fields": {self.F_GITHUB_REPO: github_repo}}]}
        data = await self._write("PATCH", self._table_url(self.SUBDOMAINS_TABLE), payload)
        return self._to_subdomain(data["records"][0])

    async def ping(self) -> None:
        await self._read(self._table_url(self.DOMAINS_TABLE), params={"maxRecords": 1})


def _first(value: Any) -> Optional[str]:
    # Lookup fields come back as lists
    if isinstance(value, list):
        return str(value[0]) if value else None
    return value
