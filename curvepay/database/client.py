"""
Supabase data store client for CurvePay
Non-authoritative side channel: purchase records and song token addresses
"""

from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from curvepay.config import DataStoreConfig, get_datastore_config
from curvepay.errors import RecorderWriteFailed
from curvepay.models import PurchaseRecord

logger = structlog.get_logger()

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"

# Supplies the bearer token for authenticated writes
TokenProvider = Callable[[], Awaitable[str]]


class DataStoreClient:
    """
    Supabase client for CurvePay writes and lookups
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        config: Optional[DataStoreConfig] = None,
    ):
        """Initialize Supabase client"""
        self.client: Client = create_client(supabase_url, supabase_key)
        self.config = config or get_datastore_config()

    def _authenticated(self, access_token: str) -> Client:
        """Attach the caller's bearer token to PostgREST requests"""
        self.client.postgrest.auth(access_token)
        return self.client

    # ===== PURCHASES =====

    async def insert_purchase(self, record: PurchaseRecord, access_token: str) -> Dict[str, Any]:
        """
        Append a purchase record.
        A duplicate (buyer, song) pair counts as already recorded.
        """
        row = {
            "song_id": record.content_id,
            "token_address": record.token_id.lower(),
            "buyer_wallet_address": record.buyer.lower(),
            "artist_wallet_address": record.issuer.lower() if record.issuer else None,
            "purchased_at": record.timestamp.isoformat(),
        }
        client = self._authenticated(access_token)
        try:
            result = client.table(self.config.purchases_table).insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.info("purchase_already_recorded", buyer=row["buyer_wallet_address"], song_id=record.content_id)
                return {"already_exists": True}
            raise RecorderWriteFailed(e.message or str(e)) from e

        return result.data[0] if result.data else {}

    # ===== SONGS =====

    async def get_song(self, content_id: str) -> Optional[Dict[str, Any]]:
        """Get song by ID"""
        result = self.client.table(self.config.songs_table).select("*").eq("id", content_id).execute()
        return result.data[0] if result.data else None

    async def update_token_address(
        self,
        content_id: str,
        token_address: str,
        issuer: str,
        access_token: str,
    ) -> bool:
        """
        Persist a freshly deployed token address for the issuer's song.
        Returns False when no row matched.
        """
        client = self._authenticated(access_token)
        try:
            result = (
                client.table(self.config.songs_table)
                .update({"token_address": token_address})
                .eq("id", content_id)
                .eq("wallet_address", issuer.lower())
                .execute()
            )
        except APIError as e:
            raise RecorderWriteFailed(e.message or str(e)) from e
        return len(result.data) > 0


# Singleton instance
_store_client: Optional[DataStoreClient] = None


def get_store_client() -> DataStoreClient:
    """
    Get or create singleton data store client
    Reads configuration from environment variables
    """
    global _store_client

    if _store_client is None:
        config = get_datastore_config()

        if not config.supabase_url or not config.supabase_anon_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_ANON_KEY must be set in environment."
            )

        _store_client = DataStoreClient(config.supabase_url, config.supabase_anon_key, config)

    return _store_client
