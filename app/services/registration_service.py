import logging
from typing import Mapping, Optional

from app.core.exceptions import (
    DuplicateKey,
    PersistenceFailed,
    RegistryError,
    ValidationFailed,
)
from app.core.identity import Identity
from app.db.models import Property
from app.schemas.registry_schema import Receipt, RegistrationForm, TransactionRef, UploadedDocument
from app.services.document_service import upload_documents
from app.services.orchestrator import Operation, OperationState, RegistryContext
from app.services.receipt_service import build_registration_receipt
from app.services.settlement_service import settle_with_timeout
from app.services.validation_service import REGISTRATION_DOCUMENTS, validate_registration

logger = logging.getLogger(__name__)


async def register_property(
    payload: RegistrationForm,
    documents: Mapping[str, Optional[UploadedDocument]],
    identity: Identity,
    ctx: RegistryContext,
    operation: Optional[Operation] = None,
) -> Receipt:
    """
    Registers a new property for the acting wallet.

    The flow is: validate the form and documents, settle on the ledger,
    upload the documents under a freshly generated property id, then create
    the property row carrying the settlement reference. A property row is only
    ever written after settlement succeeded, so no row exists without a
    transaction hash.

    A generated id is checked against the store before any upload, so
    documents are not written under an existing property's id. Two writers
    that draw the same id between that check and the insert would still upload
    to the same keys, and the loser's documents would replace the winner's
    before its insert fails with DuplicateKey. The registry assumes a single
    writer per property id, which the random id suffix makes practical.

    Args:
        payload (RegistrationForm): Owner and land details.
        documents (Mapping): Document type to uploaded file (None when missing).
        identity (Identity): The acting wallet, which becomes the owner.
        ctx (RegistryContext): Store, settlement, documents and receipt cache.
        operation (Operation, optional): Receives the state transitions.

    Raises:
        NotConnected: If no wallet is connected.
        ValidationFailed: With the field error map when the submission is rejected.
        SettlementFailed / SettlementTimeout: If the ledger did not confirm.
        PersistenceFailed: If the property row could not be written.

    Returns:
        Receipt: The registration receipt.
    """
    operation = operation or Operation("registration")
    try:
        owner_wallet = identity.require_address()

        operation.advance(OperationState.VALIDATING)
        errors = validate_registration(payload, documents)
        if errors:
            operation.reject(errors)
            raise ValidationFailed(errors)

        operation.advance(OperationState.SETTLING)
        ref = await settle_with_timeout(ctx.settlement, ctx.settlement_timeout)

        operation.advance(OperationState.PERSISTING)
        try:
            prop = await _create_with_fresh_id(payload, documents, owner_wallet, ref, ctx)
        except PersistenceFailed:
            logger.error(
                f"Transaction {ref.hash} (block {ref.block_number}) settled "
                f"but no property was recorded for {owner_wallet}"
            )
            raise
    except ValidationFailed:
        raise
    except RegistryError as e:
        operation.fail(e)
        raise

    receipt = build_registration_receipt(prop, ctx.explorer_host)
    if ctx.receipts is not None:
        await ctx.receipts.save(owner_wallet, receipt)
    operation.advance(OperationState.COMPLETE)
    return receipt


async def _create_with_fresh_id(
    payload: RegistrationForm,
    documents: Mapping[str, Optional[UploadedDocument]],
    owner_wallet: str,
    ref: TransactionRef,
    ctx: RegistryContext,
) -> Property:
    for attempt in range(1, ctx.property_id_attempts + 1):
        property_id = ctx.id_factory()
        # Uploading under a taken id would overwrite another property's documents
        if await ctx.store.get_property_by_id(property_id) is not None:
            logger.warning(f"Property id {property_id} already taken, regenerating (attempt {attempt})")
            continue

        urls = await upload_documents(ctx.documents, property_id, documents)
        record = {
            "property_id": property_id,
            "owner_name": payload.owner_name.strip(),
            "owner_wallet": owner_wallet,
            "aadhaar_number": payload.aadhaar_number,
            "voter_id": payload.voter_id.upper(),
            "phone": payload.phone,
            "email": payload.email.strip(),
            "land_address": payload.land_address.strip(),
            "land_area": payload.land_area.strip(),
            "survey_number": payload.survey_number.strip(),
            "district": payload.district.strip(),
            "state": payload.state.strip(),
            "transaction_hash": ref.hash,
            "block_number": ref.block_number,
        }
        record.update({
            f"{doc_type}_url": url for doc_type, url in urls.items() if doc_type in REGISTRATION_DOCUMENTS
        })
        try:
            return await ctx.store.create_property(record, changed_by=owner_wallet)
        except DuplicateKey:
            logger.warning(f"Property id {property_id} collided on insert, regenerating (attempt {attempt})")

    raise PersistenceFailed(f"Could not allocate a unique property id in {ctx.property_id_attempts} attempts")
