"""
Purchase Recorder
Best-effort holder analytics written after a confirmed buy
"""

import structlog

from curvepay.database.client import DataStoreClient, TokenProvider
from curvepay.models import PaymentIntent, Pipeline, PurchaseRecord

logger = structlog.get_logger()


class PurchaseRecorder:
    """
    Appends {token, buyer, issuer, timestamp} to the data store.

    The on-chain purchase is authoritative; a failed write is logged and
    never rolls back or fails the purchase.
    """

    def __init__(self, store: DataStoreClient, token_provider: TokenProvider):
        self.store = store
        self.token_provider = token_provider

    async def record(self, pipeline: Pipeline) -> bool:
        intent = pipeline.intent
        if not isinstance(intent, PaymentIntent):
            return False

        record = PurchaseRecord(
            token_id=intent.target_curve_token,
            buyer=intent.payer,
            issuer=intent.issuer,
            content_id=intent.content_id,
        )

        try:
            access_token = await self.token_provider()
            await self.store.insert_purchase(record, access_token)
        except Exception as e:
            logger.warning(
                "purchase_record_failed",
                pipeline_id=pipeline.pipeline_id,
                token_id=record.token_id,
                error_kind=type(e).__name__,
                error=str(e),
            )
            return False

        logger.info("purchase_recorded", pipeline_id=pipeline.pipeline_id, token_id=record.token_id)
        return True
