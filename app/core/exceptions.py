"""Exception hierarchy for the registry pipeline."""

from typing import Dict, Optional


class RegistryError(Exception):
    """Base exception for all registry errors."""


class ValidationFailed(RegistryError):
    """Raised when a submission breaks one or more field rules."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__(f"Validation failed for: {', '.join(sorted(errors))}")
        self.errors = errors


class NotConnected(RegistryError):
    """Raised when there is no acting wallet address."""


class PropertyNotFound(RegistryError):
    """Raised when a property id does not exist in the registry."""

    def __init__(self, property_id: str):
        super().__init__(f"Property {property_id} not found")
        self.property_id = property_id


class Unauthorized(RegistryError):
    """Raised when the acting wallet is not the current owner."""


class DuplicateKey(RegistryError):
    """Raised when a generated property id already exists."""

    def __init__(self, property_id: str):
        super().__init__(f"Property id {property_id} already exists")
        self.property_id = property_id


class SettlementFailed(RegistryError):
    """Raised when the ledger could not settle a transaction."""


class SettlementTimeout(SettlementFailed):
    """Raised when settlement did not complete in time."""


class DocumentUploadFailed(RegistryError):
    """Raised by a document backend when a single upload fails."""


class PersistenceFailed(RegistryError):
    """Raised when the registry store could not complete a write or read."""


class StaleOwnership(PersistenceFailed):
    """Raised when a property changed owner since it was read."""


class ReconciliationRequired(PersistenceFailed):
    """Raised when settlement succeeded but the registry did not record it."""

    def __init__(self, message: str, transaction_hash: str, block_number: int,
                 property_id: Optional[str] = None):
        super().__init__(message)
        self.transaction_hash = transaction_hash
        self.block_number = block_number
        self.property_id = property_id
