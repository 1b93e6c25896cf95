"""
Database module for lead imports.

Provides the persistence gateways the importer hands validated leads to:
Supabase for hosted storage, SQLite for local runs.
"""

from .sqlite_store import SQLiteProspectStore
from .supabase_client import (
    SupabaseClient,
    DatabaseConfig,
    get_client
)

__all__ = [
    "SupabaseClient",
    "DatabaseConfig",
    "SQLiteProspectStore",
    "get_client"
]
