import logging
import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from app.core.config import Settings
from app.services.document_service import DocumentStore
from app.services.receipt_service import ReceiptCache
from app.services.registry_store import RegistryStore
from app.services.settlement_service import SettlementClient

logger = logging.getLogger(__name__)

BASE36_DIGITS = string.digits + string.ascii_uppercase
_id_random = random.SystemRandom()


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_property_id() -> str:
    # Millisecond timestamp plus six random characters, e.g. PROP-MB1X2K3L-7Q9ZC4
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(_id_random.choice(BASE36_DIGITS) for _ in range(6))
    return f"PROP-{timestamp}-{suffix}".upper()


class OperationState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SETTLING = "settling"
    PERSISTING = "persisting"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class Operation:
    """Tracks where one registration or transfer is in its lifecycle."""

    kind: str
    state: OperationState = OperationState.IDLE
    errors: Dict[str, str] = field(default_factory=dict)
    history: List[OperationState] = field(default_factory=list)

    def advance(self, state: OperationState) -> None:
        logger.info(f"{self.kind}: {self.state.value} -> {state.value}")
        self.history.append(state)
        self.state = state

    def reject(self, errors: Dict[str, str]) -> None:
        self.errors = errors
        self.advance(OperationState.IDLE)

    def fail(self, reason: Exception) -> None:
        logger.warning(f"{self.kind} failed during {self.state.value}: {reason}")
        self.advance(OperationState.FAILED)


@dataclass
class RegistryContext:
    """Collaborators shared by the registration and transfer flows."""

    store: RegistryStore
    settlement: SettlementClient
    documents: DocumentStore
    receipts: Optional[ReceiptCache] = None
    explorer_host: str = "sepolia.etherscan.io"
    settlement_timeout: Optional[float] = 30.0
    property_id_attempts: int = 5
    id_factory: Callable[[], str] = generate_property_id

    @classmethod
    def from_settings(cls, settings: Settings, store: RegistryStore, settlement: SettlementClient,
                      documents: DocumentStore, receipts: Optional[ReceiptCache] = None) -> "RegistryContext":
        return cls(
            store=store,
            settlement=settlement,
            documents=documents,
            receipts=receipts,
            explorer_host=settings.explorer_host,
            settlement_timeout=settings.settlement_timeout_seconds,
            property_id_attempts=settings.property_id_attempts,
        )
