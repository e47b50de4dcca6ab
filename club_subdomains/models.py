"""Record types shared by every store, plus SQLAlchemy tables for the local store"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ClubName:
    """Club name option (read-only)"""

    def __init__(self, id: str, name: str):
        self.id = id
        self.name = name

    def __repr__(self):
        return f"<ClubName {self.name}>"

    def to_dict(self):
        return {"id": self.id, "name": self.name}


class Domain:
    """Parent domain option (read-only)"""

    def __init__(self, id: str, name: str):
        self.id = id
        self.name = name

    def __repr__(self):
        return f"<Domain {self.name}>"

    def to_dict(self):
        return {"id": self.id, "name": self.name}


class Subdomain:
    """Subdomain request owned by a single email address"""

    def __init__(
        self,
        id: str,
        subdomain: str,
        email: str,
        github_repo: Optional[str] = None,
        domains: Optional[List[str]] = None,
        club_names: Optional[List[str]] = None,
        active: bool = False,
        domain_name: Optional[str] = None,
        club_name_label: Optional[str] = None,
    ):
        self.id = id
        self.subdomain = subdomain
        self.email = email
        self.github_repo = github_repo
        self.domains = list(domains or [])
        self.club_names = list(club_names or [])
        self.active = active
        self.domain_name = domain_name
        self.club_name_label = club_name_label

    def __repr__(self):
        return f"<Subdomain {self.subdomain} ({self.email})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses"""
        return {
            "id": self.id,
            "subdomain": self.subdomain,
            "email": self.email,
            "githubRepo": self.github_repo,
            "domains": self.domains,
            "domainName": self.domain_name,
            "clubName": self.club_names,
            "clubNameLabel": self.club_name_label,
            "status": self.active,
        }


class Role:
    """Provider role attached to a user"""

    def __init__(self, id: str, name: str):
        self.id = id
        self.name = name

    def __repr__(self):
        return f"<Role {self.name}>"

    def __eq__(self, other):
        return isinstance(other, Role) and (self.id, self.name) == (other.id, other.name)

    def __hash__(self):
        return hash((self.id, self.name))

    def matches(self, value: str) -> bool:
        return bool(value) and value in (self.id, self.name)

    def to_dict(self):
        return {"id": self.id, "name": self.name}

    @classmethod
    def parse(cls, raw: Any) -> Optional["Role"]:
        """Accept a bare role name or a ``{id, name}`` mapping"""
        if isinstance(raw, str) and raw:
            return cls(id=raw, name=raw)
        if isinstance(raw, dict):
            role_id = str(raw.get("id") or raw.get("name") or "")
            name = str(raw.get("name") or role_id)
            if role_id:
                return cls(id=role_id, name=name)
        return None


# SQLAlchemy tables (DATA_STORE=sqlite)


class ClubNameRow(Base):
    __tablename__ = "club_names"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, index=True)

    def to_record(self) -> ClubName:
        return ClubName(id=self.id, name=self.name)


class DomainRow(Base):
    __tablename__ = "domains"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)

    def to_record(self) -> Domain:
        return Domain(id=self.id, name=self.name)


class SubdomainRow(Base):
    __tablename__ = "subdomains"

    id = Column(String, primary_key=True)
    subdomain = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False, index=True)
    github_repo = Column(String, nullable=True)
    domain_id = Column(String, nullable=True)
    club_name_id = Column(String, nullable=True)
    active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<SubdomainRow {self.subdomain} ({self.email})>"
