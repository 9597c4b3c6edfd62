# Core module - configuration, store and auth plumbing
from orgchart.core.config import Settings, get_settings
from orgchart.core.database import Base, Database, database, get_db_session
from orgchart.core.redis import TokenRevocationStore, revocation_store, get_revocation_store

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # PostgreSQL
    "Base",
    "Database",
    "database",
    "get_db_session",
    # Redis
    "TokenRevocationStore",
    "revocation_store",
    "get_revocation_store",
]
