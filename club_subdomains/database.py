"""Record store abstraction - Airtable (hosted) or SQLAlchemy (local development)"""

import logging
import secrets
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as SQLSession, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import UpstreamFailure
from .models import Base, ClubName, ClubNameRow, Domain, DomainRow, Subdomain, SubdomainRow

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """Operations the data gateway needs from the Club Names, Domains and Subdomains collections"""

    mode = "abstract"

    @abstractmethod
    async def search_club_names(self, term: str, limit: int) -> List[ClubName]:
        """Case-insensitive substring match on the club name, at most ``limit`` rows"""

    @abstractmethod
    async def list_domains(self) -> List[Domain]:
        ...

    @abstractmethod
    async def list_subdomains(self, email: str) -> List[Subdomain]:
        """Rows whose owner email equals ``email``"""

    @abstractmethod
    async def get_subdomain(self, record_id: str) -> Optional[Subdomain]:
        ...

    @abstractmethod
    async def create_subdomain(
        self,
        subdomain: str,
        email: str,
        github_repo: Optional[str],
        domains: List[str],
        club_names: List[str],
    ) -> Subdomain:
        """Write a new row; ``active`` is always stored as false"""

    @abstractmethod
    async def update_github_repo(self, record_id: str, github_repo: Optional[str]) -> Subdomain:
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the store cannot be reached"""


class Database(RecordStore):
    """SQLAlchemy-backed store, used with DATA_STORE=sqlite and in tests"""

    mode = "sqlite"

    def __init__(self, database_url: Optional[str] = None, sqlite_path: str = "./club_subdomains.db"):
        """Initialize database connection

        Args:
            database_url: SQLAlchemy URL (e.g. sqlite:///:memory:); wins over sqlite_path
            sqlite_path: SQLite file used when no URL is given
        """
        self.database_url = database_url or f"sqlite:///{sqlite_path}"

        if self.database_url.startswith("sqlite"):
            self.engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(self.database_url, pool_size=5, max_overflow=10)

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

        Base.metadata.create_all(bind=self.engine)

    def session(self) -> SQLSession:
        """Get database session"""
        return self.SessionLocal()

    @staticmethod
    def _new_id() -> str:
        return f"rec{secrets.token_urlsafe(10)}"

    def _to_record(self, session: SQLSession, row: SubdomainRow) -> Subdomain:
        domain = session.get(DomainRow, row.domain_id) if row.domain_id else None
        club = session.get(ClubNameRow, row.club_name_id) if row.club_name_id else None
        return Subdomain(
            id=row.id,
            subdomain=row.subdomain,
            email=row.email,
            github_repo=row.github_repo,
            domains=[row.domain_id] if row.domain_id else [],
            club_names=[row.club_name_id] if row.club_name_id else [],
            active=bool(row.active),
            domain_name=domain.name if domain else None,
            club_name_label=club.name if club else None,
        )

    # Gateway operations

    async def search_club_names(self, term: str, limit: int) -> List[ClubName]:
        with self.session() as session:
            stmt = (
                select(ClubNameRow)
                .where(func.lower(ClubNameRow.name).contains(term.lower(), autoescape=True))
                .order_by(ClubNameRow.name)
                .limit(limit)
            )
            return [row.to_record() for row in session.scalars(stmt)]

    async def list_domains(self) -> List[Domain]:
        with self.session() as session:
            stmt = select(DomainRow).order_by(DomainRow.name)
            return [row.to_record() for row in session.scalars(stmt)]

    async def list_subdomains(self, email: str) -> List[Subdomain]:
        with self.session() as session:
            stmt = select(SubdomainRow).where(SubdomainRow.email == email).order_by(SubdomainRow.created_at)
            return [self._to_record(session, row) for row in session.scalars(stmt)]

    async def get_subdomain(self, record_id: str) -> Optional[Subdomain]:
        with self.session() as session:
            row = session.get(SubdomainRow, record_id)
            return self._to_record(session, row) if row else None

    async def create_subdomain(
        self,
        subdomain: str,
        email: str,
        github_repo: Optional[str],
        domains: List[str],
        club_names: List[str],
    ) -> Subdomain:
        row = SubdomainRow(
            id=self._new_id(),
            subdomain=subdomain,
            email=email,
            github_repo=github_repo,
            domain_id=domains[0] if domains else None,
            club_name_id=club_names[0] if club_names else None,
            active=False,
        )
        with self.session() as session:
            session.add(row)
            session.commit()
            return self._to_record(session, row)

    async def update_github_repo(self, record_id: str, github_repo: Optional[str]) -> Subdomain:
        with self.session() as session:
            row = session.get(SubdomainRow, record_id)
            if row is None:
                raise LookupError(record_id)
            row.github_repo = github_repo
            session.commit()
            return self._to_record(session, row)

    async def ping(self) -> None:
        try:
            with self.session() as session:
                session.execute(select(1))
        except SQLAlchemyError as e:
            raise UpstreamFailure(detail=f"{self.database_url}: {e}") from e

    # Operator operations (out of band, see the CLI)

    def add_domain(self, name: str) -> Domain:
        row = DomainRow(id=self._new_id(), name=name)
        with self.session() as session:
            session.add(row)
            session.commit()
            return row.to_record()

    def add_club_name(self, name: str) -> ClubName:
        row = ClubNameRow(id=self._new_id(), name=name)
        with self.session() as session:
            session.add(row)
            session.commit()
            return row.to_record()

    def set_active(self, record_id: str, active: bool = True) -> Optional[Subdomain]:
        with self.session() as session:
            row = session.get(SubdomainRow, record_id)
            if row is None:
                return None
            row.active = active
            session.commit()
            logger.info("Subdomain %s marked active=%s", row.subdomain, active)
            return self._to_record(session, row)
