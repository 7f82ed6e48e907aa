"""
Deployment Initiator
Mints a bonding curve for a song and persists the new token address
"""

from typing import Optional

import structlog

from curvepay.chain.base import ChainClient, TxReceipt, WalletPrecondition
from curvepay.chain.events import (
    SONG_CREATED_TOPIC,
    event_topic,
    find_song_created,
    topic_to_address,
)
from curvepay.config import ChainConfig, get_chain_config
from curvepay.database.client import DataStoreClient, TokenProvider
from curvepay.errors import AlreadyDeployed, AmbiguousDeployment, TransactionReverted
from curvepay.models import DeploymentResult

logger = structlog.get_logger()


def default_ticker(title: str) -> str:
    return title.replace(" ", "")[:4].upper()


def extract_token_address(
    receipt: TxReceipt, factory: str, topic0: str = SONG_CREATED_TOPIC
) -> Optional[str]:
    """New song token address from the creation event's first indexed topic"""
    log = find_song_created(receipt, factory, topic0)
    if log is None:
        return None
    return topic_to_address(log.topics[1])


class DeploymentInitiator:
    """One-shot: factory call -> receipt parsing -> authenticated persist"""

    def __init__(
        self,
        chain: ChainClient,
        store: DataStoreClient,
        token_provider: TokenProvider,
        config: Optional[ChainConfig] = None,
    ):
        self.chain = chain
        self.store = store
        self.token_provider = token_provider
        self.config = config or get_chain_config()

    async def deploy(
        self,
        issuer: str,
        content_id: str,
        title: str,
        precondition: WalletPrecondition,
        ticker: Optional[str] = None,
        metadata_uri: Optional[str] = None,
        audio_cid: Optional[str] = None,
    ) -> DeploymentResult:
        """
        Deploy a curve for `content_id`.

        Raises AmbiguousDeployment when the transaction confirmed but no
        creation event can be found: funds are spent and the address is unknown.
        """
        song = await self.store.get_song(content_id)
        if song and song.get("token_address"):
            raise AlreadyDeployed()

        ticker = ticker or (song or {}).get("ticker") or default_ticker(title)
        if metadata_uri is None:
            audio_cid = audio_cid or (song or {}).get("audio_cid") or content_id
            metadata_uri = f"{audio_cid}_metadata"

        await precondition.ensure_connected(issuer)
        tx_hash = await self.chain.create_curve(issuer, title, ticker, metadata_uri)
        logger.info("deployment_submitted", content_id=content_id, tx_hash=tx_hash, ticker=ticker)

        if not self.chain.supports_receipts:
            raise AmbiguousDeployment(
                "Deployment submitted but the chain client cannot return its receipt",
                tx_hash=tx_hash,
            )

        receipt = await self.chain.wait_for_receipt(tx_hash)
        if not receipt.succeeded:
            raise TransactionReverted(tx_hash=tx_hash)

        token_address = extract_token_address(
            receipt,
            self.config.factory_address,
            event_topic(self.config.song_created_event),
        )
        if token_address is None:
            logger.error("deployment_event_missing", content_id=content_id, tx_hash=tx_hash)
            raise AmbiguousDeployment(tx_hash=tx_hash)

        logger.info("deployment_confirmed", content_id=content_id, token_address=token_address)

        try:
            access_token = await self.token_provider()
            persisted = await self.store.update_token_address(
                content_id, token_address, issuer, access_token
            )
            error = None if persisted else "No song row matched this issuer"
        except Exception as e:
            persisted, error = False, str(e)

        if not persisted:
            logger.error(
                "token_address_persist_failed",
                content_id=content_id,
                token_address=token_address,
                error=error,
            )

        return DeploymentResult(
            content_id=content_id,
            token_address=token_address,
            tx_hash=tx_hash,
            persisted=persisted,
            error=error,
        )
