import logging
from typing import Mapping, Optional

from app.core.exceptions import (
    PropertyNotFound,
    ReconciliationRequired,
    RegistryError,
    Unauthorized,
    ValidationFailed,
)
from app.core.identity import Identity
from app.schemas.registry_schema import Receipt, TransferForm, UploadedDocument
from app.services.orchestrator import Operation, OperationState, RegistryContext
from app.services.receipt_service import build_transfer_receipt
from app.services.settlement_service import settle_with_timeout
from app.services.validation_service import validate_transfer

logger = logging.getLogger(__name__)


async def process_transfer(
    payload: TransferForm,
    identity: Identity,
    ctx: RegistryContext,
    documents: Optional[Mapping[str, Optional[UploadedDocument]]] = None,
    operation: Optional[Operation] = None,
) -> Receipt:
    """
    Transfers a registered property from its current owner to the buyer.

    Steps:
    1.  Validates the form (and the transfer documents when supplied).
    2.  Loads the property from the registry store and checks that both the
        acting wallet and the seller wallet are the current owner.
    3.  Settles the transfer on the ledger.
    4.  Writes the transfer row and moves ownership to the buyer in a single
        database transaction, guarded by the property revision read in step 2.
    5.  Builds the receipt and keeps it in the receipt cache.

    Nothing is written before settlement. If step 4 fails the ledger has a
    transaction the registry does not know about; this is raised as
    ReconciliationRequired and logged at CRITICAL level for manual repair.
    No compensating transaction is attempted.

    Args:
        payload (TransferForm): Property id plus seller and buyer details.
        identity (Identity): The acting wallet.
        ctx (RegistryContext): Store, settlement and receipt cache.
        documents (Mapping, optional): Transfer documents, when the caller collects them.
        operation (Operation, optional): Receives the state transitions.

    Raises:
        NotConnected: If no wallet is connected.
        ValidationFailed: With the field error map when the form is rejected.
        PropertyNotFound: If the property id is unknown.
        Unauthorized: If the acting or seller wallet is not the current owner.
        SettlementFailed / SettlementTimeout: If the ledger did not confirm.
        ReconciliationRequired: If settlement succeeded but the commit failed.

    Returns:
        Receipt: The transfer receipt.
    """
    operation = operation or Operation("transfer")
    try:
        acting_wallet = identity.require_address()

        operation.advance(OperationState.VALIDATING)
        errors = validate_transfer(payload, documents)
        if errors:
            operation.reject(errors)
            raise ValidationFailed(errors)

        property_id = payload.property_id.strip()
        # Always read the owner from the store, never from a cached copy
        prop = await ctx.store.get_property_by_id(property_id)
        if prop is None:
            raise PropertyNotFound(property_id)
        if not identity.matches(prop.owner_wallet):
            raise Unauthorized("You are not the owner of this property.")
        if payload.seller_wallet.lower() != prop.owner_wallet.lower():
            raise Unauthorized("Seller wallet does not match the current owner.")
        expected_revision = prop.revision

        operation.advance(OperationState.SETTLING)
        ref = await settle_with_timeout(ctx.settlement, ctx.settlement_timeout)

        operation.advance(OperationState.PERSISTING)
        record = {
            "property_id": property_id,
            "seller_name": payload.seller_name.strip(),
            "seller_wallet": payload.seller_wallet,
            "seller_phone": payload.seller_phone,
            "seller_email": payload.seller_email.strip(),
            "buyer_name": payload.buyer_name.strip(),
            "buyer_wallet": payload.buyer_wallet,
            "buyer_phone": payload.buyer_phone,
            "buyer_email": payload.buyer_email.strip(),
            "transaction_hash": ref.hash,
            "block_number": ref.block_number,
        }
        try:
            transfer, updated = await ctx.store.commit_transfer(
                record, expected_revision=expected_revision, changed_by=acting_wallet
            )
        except RegistryError as e:
            logger.critical(
                f"RECONCILIATION REQUIRED: transaction {ref.hash} (block {ref.block_number}) "
                f"settled the transfer of {property_id} to {payload.buyer_wallet} "
                f"but the registry did not record it: {e}"
            )
            raise ReconciliationRequired(
                "Transfer settled but could not be recorded",
                transaction_hash=ref.hash,
                block_number=ref.block_number,
                property_id=property_id,
            ) from e
    except ValidationFailed:
        raise
    except RegistryError as e:
        operation.fail(e)
        raise

    receipt = build_transfer_receipt(updated, transfer, ctx.explorer_host)
    if ctx.receipts is not None:
        await ctx.receipts.save(acting_wallet, receipt)
    operation.advance(OperationState.COMPLETE)
    return receipt
