"""Data gateway: per-user visibility, ownership and quota rules over a RecordStore"""

import logging
import re
from typing import List, Optional

from .config import Settings
from .database import RecordStore
from .errors import Forbidden, NotFound, QuotaExceeded, Unauthenticated, ValidationFailure
from .identity import IdentityResult
from .models import ClubName, Domain, Subdomain

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2
MAX_CLUB_RESULTS = 50

LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")

CREATED_MESSAGE = "Subdomain request submitted successfully. Your subdomain will be active in 24h."
UPDATED_MESSAGE = "GitHub Repo updated successfully."


def normalize_label(label: Optional[str]) -> str:
    value = (label or "").strip().lower()
    if not value:
        raise ValidationFailure("Subdomain is required")
    if not LABEL_RE.match(value):
        raise ValidationFailure(
            "Subdomain must be 1-63 characters of letters, digits or hyphens and cannot start or end with a hyphen"
        )
    return value


class DataGateway:
    def __init__(self, store: RecordStore, settings: Settings):
        self.store = store
        self.settings = settings

    @staticmethod
    def _require_email(identity: IdentityResult) -> str:
        if not identity.authenticated:
            raise Unauthenticated()
        if not identity.email:
            raise ValidationFailure("User email not found")
        return identity.email

    def can_create_multiple(self, identity: IdentityResult) -> bool:
        return identity.has_role(self.settings.multi_subdomain_role)

    def is_admin(self, identity: IdentityResult) -> bool:
        return identity.has_role(self.settings.admin_role)

    async def list_club_names(self, search: Optional[str]) -> List[ClubName]:
        term = (search or "").strip()
        if len(term) < MIN_SEARCH_LENGTH:
            return []
        records = await self.store.search_club_names(term, MAX_CLUB_RESULTS)
        needle = term.lower()
        matches = [r for r in records if needle in (r.name or "").lower()]
        logger.info("Club name search %r returned %d rows", term, len(matches))
        return matches[:MAX_CLUB_RESULTS]

    async def list_domains(self) -> List[Domain]:
        return await self.store.list_domains()

    async def list_subdomains(self, identity: IdentityResult) -> List[Subdomain]:
        email = self._require_email(identity)
        records = await self.store.list_subdomains(email)
        return [r for r in records if r.email == email]

    async def create_subdomain(
        self,
        identity: IdentityResult,
        subdomain: Optional[str],
        github_repo: Optional[str],
        domains: Optional[List[str]],
        club_names: Optional[List[str]],
    ) -> Subdomain:
        """Create an inactive subdomain request for the caller

        Quota check and insert are not atomic: two concurrent creates from the
        same owner can both pass the check.
        """
        email = self._require_email(identity)
        label = normalize_label(subdomain)

        if not self.can_create_multiple(identity):
            existing = await self.list_subdomains(identity)
            if existing:
                logger.info("Rejected second subdomain for %s", email)
                raise QuotaExceeded()

        record = await self.store.create_subdomain(
            subdomain=label,
            email=email,
            github_repo=(github_repo or "").strip() or None,
            domains=list(domains or []),
            club_names=list(club_names or []),
        )
        logger.info("Created subdomain request %s (%s) for %s", record.subdomain, record.id, email)
        return record

    async def update_github_repo(self, identity: IdentityResult, record_id: str, github_repo: Optional[str]) -> Subdomain:
        email = self._require_email(identity)
        existing = await self.store.get_subdomain(record_id)
        if existing is None:
            raise NotFound("Subdomain not found")
        if existing.email != email:
            raise Forbidden("Forbidden: You can only edit your own subdomains.")
        record = await self.store.update_github_repo(record_id, (github_repo or "").strip() or None)
        logger.info("Updated GitHub repo for %s", record_id)
        return record
