import asyncio
import logging
import random
import re
from typing import Optional, Protocol

from app.core.exceptions import SettlementFailed, SettlementTimeout
from app.schemas.registry_schema import TransactionRef

logger = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")
FIRST_BLOCK = 5_000_000
BLOCK_SPAN = 1_000_000


class SettlementClient(Protocol):
    async def settle(self) -> TransactionRef:
        ...


class SimulatedSettlement:
    """
    Stands in for a ledger client. Waits for `delay_seconds`, then returns a
    random transaction hash and block number. A real client only has to
    provide the same `settle` coroutine.
    """

    def __init__(self, delay_seconds: float = 2.0, rng: Optional[random.Random] = None):
        self.delay_seconds = delay_seconds
        self.rng = rng or random.Random()

    async def settle(self) -> TransactionRef:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        tx_hash = "0x" + format(self.rng.getrandbits(256), "064x")
        block_number = FIRST_BLOCK + self.rng.randrange(BLOCK_SPAN)
        return TransactionRef(hash=tx_hash, block_number=block_number)


async def settle_with_timeout(client: SettlementClient, timeout: Optional[float] = 30.0) -> TransactionRef:
    """
    Runs one settlement and normalises every failure into the settlement errors.

    Args:
        client (SettlementClient): The ledger client or the simulated one.
        timeout (float, optional): Seconds to wait. None disables the limit.

    Raises:
        SettlementTimeout: If the client did not answer within `timeout`.
        SettlementFailed: If the client raised, or returned a malformed reference.

    Returns:
        TransactionRef: The confirmed hash and block number.
    """
    try:
        ref = await asyncio.wait_for(client.settle(), timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error(f"Settlement timed out after {timeout}s")
        raise SettlementTimeout(f"Settlement did not complete within {timeout} seconds") from e
    except SettlementFailed:
        raise
    except Exception as e:
        logger.exception("Settlement client raised an error")
        raise SettlementFailed("Settlement failed") from e

    if not TX_HASH_PATTERN.fullmatch(ref.hash.lower()) or ref.block_number <= 0:
        logger.error(f"Settlement returned a malformed reference: {ref!r}")
        raise SettlementFailed("Settlement returned a malformed transaction reference")

    logger.info(f"Settled transaction {ref.hash} in block {ref.block_number}")
    return ref
