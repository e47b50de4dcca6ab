"""Club Subdomains - authenticated dashboard for requesting club DNS subdomains

Logto handles sign-in; Airtable (or a local SQLite store) holds the records.
"""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .database import Database, RecordStore
from .gateway import DataGateway
from .identity import IdentityResult, IdentityVerifier

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "RecordStore",
    "DataGateway",
    "IdentityResult",
    "IdentityVerifier",
]
