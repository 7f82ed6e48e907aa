"""
Receipt log matching and decoding
"""

from decimal import Decimal
from typing import Optional

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from curvepay.chain.abi import SONG_CREATED_EVENT, SONG_TOKEN_BOUGHT_EVENT
from curvepay.chain.base import LogEntry, TxReceipt


def event_topic(signature: str) -> str:
    """keccak topic0 for an event signature, 0x-prefixed lowercase hex"""
    return Web3.to_hex(Web3.keccak(text=signature)).lower()


SONG_CREATED_TOPIC = event_topic(SONG_CREATED_EVENT)
SONG_TOKEN_BOUGHT_TOPIC = event_topic(SONG_TOKEN_BOUGHT_EVENT)


def topic_to_address(topic: str) -> str:
    """An indexed address topic is left-padded to 32 bytes"""
    return Web3.to_checksum_address("0x" + topic[-40:])


def find_log(receipt: TxReceipt, emitter: str, topic0: Optional[str] = None) -> Optional[LogEntry]:
    """First log emitted by `emitter` (and matching `topic0` when given)"""
    for log in receipt.logs:
        if log.address.lower() != emitter.lower():
            continue
        if topic0 and (not log.topics or log.topics[0].lower() != topic0):
            continue
        return log
    return None


def find_song_created(
    receipt: TxReceipt, factory: str, topic0: str = SONG_CREATED_TOPIC
) -> Optional[LogEntry]:
    """
    The factory's creation log. Prefers a log matching `topic0`; otherwise the
    first factory log with an indexed topic is taken, since the factory emits
    nothing else during createSong.
    """
    candidates = [
        log for log in receipt.logs
        if log.address.lower() == factory.lower() and len(log.topics) > 1
    ]
    for log in candidates:
        if log.topics[0].lower() == topic0.lower():
            return log
    return candidates[0] if candidates else None


def decode_tokens_bought(receipt: TxReceipt, curve: str, decimals: int = 18) -> Optional[Decimal]:
    """
    Song tokens bought according to the SongTokenBought event, or None when the
    receipt carries no decodable event.
    """
    log = find_log(receipt, curve, SONG_TOKEN_BOUGHT_TOPIC)
    if log is None:
        return None
    try:
        _spent, bought = decode(["uint256", "uint256"], bytes.fromhex(log.data.removeprefix("0x")))
    except (DecodingError, ValueError):
        return None
    return Decimal(bought) / Decimal(10 ** decimals)
