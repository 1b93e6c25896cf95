"""
Supabase Database Client for lead imports

Persists imported prospects to a hosted Supabase (Postgres) table and
reports which ones were new, which already existed and which failed.

Duplicate detection keys on the digits-only phone, stored alongside each
prospect in ``phone_digits``. Re-sending the same records is safe: anything
already stored comes back as a duplicate instead of being inserted twice.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from supabase import Client, create_client

from leads.models import BulkImportError, BulkImportResult, NormalizedRecord
from leads.normalize import phone_identity

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "prospects"
DEFAULT_CHUNK_SIZE = 50
DEFAULT_DEAL_VALUE = 199
DEFAULT_PROBABILITY = 50


@dataclass
class DatabaseConfig:
    """Supabase connection configuration."""
    url: str
    key: str  # anon/public key for client-side, service key for server-side
    table: str = DEFAULT_TABLE
    owner_id: Optional[str] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """
        Load config from environment variables.

        Environment variables:
            SUPABASE_URL: Required project URL
            SUPABASE_KEY: Required API key
            SUPABASE_PROSPECTS_TABLE: Optional table name (default: prospects)
            SUPABASE_OWNER_ID: Optional profile id stamped on imported rows
            SUPABASE_CHUNK_SIZE: Optional insert batch size (default: 50)
        """
        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_KEY")

        if not url or not key:
            raise ValueError(
                "Missing Supabase credentials. Set SUPABASE_URL and SUPABASE_KEY environment variables."
            )

        return cls(
            url=url,
            key=key,
            table=os.getenv("SUPABASE_PROSPECTS_TABLE", DEFAULT_TABLE),
            owner_id=os.getenv("SUPABASE_OWNER_ID") or None,
            chunk_size=int(os.getenv("SUPABASE_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE))),
        )


def _first_set(*values: Any) -> Any:
    """First value that is not None; an explicit 0 counts as set."""
    for value in values:
        if value is not None:
            return value
    return None


class SupabaseClient:
    """
    Supabase-backed persistence gateway for the lead importer.

    Handles all database interactions with proper error handling
    and type safety.
    """

    def __init__(self, config: Optional[DatabaseConfig] = None, client: Optional[Client] = None):
        """
        Initialize Supabase client.

        Args:
            config: Database configuration. If None, loads from environment.
            client: Pre-built supabase client (mainly for tests)
        """
        if config is None:
            config = DatabaseConfig.from_env()

        self.config = config
        self.client: Client = client or create_client(config.url, config.key)

    def to_prospect_row(self, record: NormalizedRecord) -> Dict[str, Any]:
        """Shape a normalized import record into a prospects table row."""
        name = record.get("name") or ""
        row = {
            "company_name": record.get("company_name") or name or "Unknown Company",
            "contact_name": record.get("contact_name") or name,
            "phone": record.get("phone") or "",
            "phone_digits": phone_identity(record.get("phone", "")),
            "email": record.get("email"),
            "address": record.get("address"),
            "status": record.get("status") or "lead",
            "deal_value": _first_set(
                record.get("deal_value"), record.get("estimated_value"), DEFAULT_DEAL_VALUE
            ),
            "probability": _first_set(
                record.get("probability"), record.get("score"), DEFAULT_PROBABILITY
            ),
            "source": record.get("source") or "import",
            "roof_type": record.get("roof_type"),
            "company_size": record.get("company_size"),
            "current_crm": record.get("current_crm"),
            "pain_points": record.get("pain_points"),
            "decision_maker": record.get("decision_maker") or False,
            "notes": record.get("notes"),
        }
        if self.config.owner_id:
            row["owner_id"] = self.config.owner_id
        return row

    def existing_phone_digits(self, keys: List[str]) -> Set[str]:
        """Which of ``keys`` are already stored."""
        if not keys:
            return set()
        result = (
            self.client.table(self.config.table)
            .select("phone_digits")
            .in_("phone_digits", keys)
            .execute()
        )
        return {row["phone_digits"] for row in (result.data or [])}

    def get_prospect_by_phone(self, phone: str) -> Optional[Dict]:
        """Fetch prospect by phone number (any formatting)."""
        result = (
            self.client.table(self.config.table)
            .select("*")
            .eq("phone_digits", phone_identity(phone))
            .execute()
        )
        return result.data[0] if result.data else None

    def bulk_import(self, records: List[NormalizedRecord]) -> BulkImportResult:
        """
        Insert new prospects in chunks, skipping phones already stored.

        A failed insert marks that chunk as failed and moves on. If the
        duplicate lookup itself fails, the records from that chunk onwards are
        marked failed and BulkImportError is raised carrying the results so far.
        """
        result = BulkImportResult()

        pending: List[Tuple[NormalizedRecord, str]] = []
        seen: Set[str] = set()
        for record in records:
            key = phone_identity(record.get("phone", ""))
            if key in seen:
                result.duplicates.append(record)
                continue
            seen.add(key)
            pending.append((record, key))

        size = max(1, self.config.chunk_size)
        for start in range(0, len(pending), size):
            chunk = pending[start:start + size]
            try:
                existing = self.existing_phone_digits([key for _, key in chunk])
            except Exception as e:
                logger.error("Duplicate lookup failed: %s", e)
                # Nothing from this chunk onwards was attempted
                result.failed.extend(
                    {"record": record, "error": str(e)} for record, _ in pending[start:]
                )
                raise BulkImportError(
                    f"Failed to check existing prospects: {e}",
                    import_results=result,
                    details=getattr(e, "details", None),
                ) from e

            fresh = []
            for record, key in chunk:
                if key in existing:
                    result.duplicates.append(record)
                else:
                    fresh.append(record)

            if not fresh:
                continue

            try:
                self.client.table(self.config.table).insert(
                    [self.to_prospect_row(record) for record in fresh]
                ).execute()
            except Exception as e:
                logger.error("Insert of %d prospects failed: %s", len(fresh), e)
                result.failed.extend({"record": record, "error": str(e)} for record in fresh)
                continue

            result.success.extend(fresh)

        logger.info(
            "Bulk import: %d inserted, %d duplicates, %d failed",
            len(result.success),
            len(result.duplicates),
            len(result.failed),
        )
        return result


# Singleton instance for convenience
_client: Optional[SupabaseClient] = None


def get_client() -> SupabaseClient:
    """Get or create singleton Supabase client."""
    global _client
    if _client is None:
        _client = SupabaseClient()
    return _client
