import logging
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.db.models import Property, Transfer
from app.schemas.registry_schema import (
    LandDetails,
    Receipt,
    ReceiptParties,
    ReceiptTransaction,
)

logger = logging.getLogger(__name__)


def explorer_url(explorer_host: str, tx_hash: str) -> str:
    return f"https://{explorer_host}/tx/{tx_hash}"


def build_registration_receipt(prop: Property, explorer_host: str) -> Receipt:
    return Receipt(
        type="registration",
        property_id=prop.property_id,
        property_details=LandDetails(**prop.land_details),
        parties=ReceiptParties(owner=prop.owner_name, owner_wallet=prop.owner_wallet),
        transaction=ReceiptTransaction(
            hash=prop.transaction_hash,
            block_number=prop.block_number,
            timestamp=prop.created_at,
        ),
        explorer_url=explorer_url(explorer_host, prop.transaction_hash),
    )


def build_transfer_receipt(prop: Property, transfer: Transfer, explorer_host: str) -> Receipt:
    return Receipt(
        type="transfer",
        property_id=transfer.property_id,
        property_details=LandDetails(**prop.land_details),
        parties=ReceiptParties(
            seller=transfer.seller_name,
            seller_wallet=transfer.seller_wallet,
            buyer=transfer.buyer_name,
            buyer_wallet=transfer.buyer_wallet,
        ),
        transaction=ReceiptTransaction(
            hash=transfer.transaction_hash,
            block_number=transfer.block_number,
            timestamp=transfer.created_at,
        ),
        explorer_url=explorer_url(explorer_host, transfer.transaction_hash),
    )


class ReceiptCache:
    """Holds the latest receipt per wallet until it is dismissed or expires."""

    def __init__(self, redis: Redis, ttl_seconds: int = 3600):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key_for(wallet: str) -> str:
        return f"receipt:wallet:{wallet.lower()}"

    async def save(self, wallet: str, receipt: Receipt) -> None:
        try:
            await self.redis.set(self.key_for(wallet), receipt.model_dump_json(), ex=self.ttl_seconds)
            logger.info(f"Receipt for property {receipt.property_id} cached for {wallet}")
        except RedisError as e:
            # The registry is the source of truth, a lost receipt is not fatal
            logger.error(f"Failed to cache receipt for {wallet}: {e}")

    async def get(self, wallet: str) -> Optional[Receipt]:
        cached = await self.redis.get(self.key_for(wallet))
        if not cached:
            return None
        return Receipt.model_validate_json(cached)

    async def clear(self, wallet: str) -> None:
        await self.redis.delete(self.key_for(wallet))
