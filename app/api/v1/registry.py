import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status

from app.core.exceptions import (
    NotConnected,
    PropertyNotFound,
    RegistryError,
    SettlementFailed,
    SettlementTimeout,
    Unauthorized,
    ValidationFailed,
)
from app.core.identity import Identity, get_identity
from app.schemas.registry_schema import (
    DashboardSummary,
    PropertyOut,
    RegistrationForm,
    TransferForm,
    TransferOut,
    UploadedDocument,
)
from app.services.orchestrator import RegistryContext
from app.services.registration_service import register_property
from app.services.transfer_initiation_service import process_transfer

logger = logging.getLogger(__name__)

router = APIRouter()

GENERIC_ERROR = "An error occurred while processing your request. Please try again."


def get_context(request: Request) -> RegistryContext:
    return request.app.state.registry


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ValidationFailed):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Please fix the highlighted fields.", "errors": exc.errors},
        )
    if isinstance(exc, NotConnected):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, PropertyNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                             detail="No property found with this ID.")
    if isinstance(exc, Unauthorized):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, SettlementTimeout):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                             detail="The ledger did not respond in time. Please try again.")
    if isinstance(exc, SettlementFailed):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                             detail="The ledger is unavailable. Please try again.")
    if not isinstance(exc, RegistryError):
        logger.exception("Unexpected error while handling request", exc_info=exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=GENERIC_ERROR)


async def _read_upload(upload: Optional[UploadFile]) -> Optional[UploadedDocument]:
    if upload is None or not upload.filename:
        return None
    return UploadedDocument(
        filename=upload.filename,
        content=await upload.read(),
        content_type=upload.content_type,
    )


@router.post("/properties", status_code=status.HTTP_201_CREATED)
async def create_property(
    owner_name: str = Form(""),
    aadhaar_number: str = Form(""),
    voter_id: str = Form(""),
    phone: str = Form(""),
    email: str = Form(""),
    land_address: str = Form(""),
    land_area: str = Form(""),
    survey_number: str = Form(""),
    district: str = Form(""),
    state: str = Form(""),
    aadhaar_front: Optional[UploadFile] = File(None),
    aadhaar_back: Optional[UploadFile] = File(None),
    pan_card: Optional[UploadFile] = File(None),
    owner_photo: Optional[UploadFile] = File(None),
    property_photo: Optional[UploadFile] = File(None),
    ownership_document: Optional[UploadFile] = File(None),
    identity: Identity = Depends(get_identity),
    ctx: RegistryContext = Depends(get_context),
):
    """
    Registers a new property owned by the connected wallet.

    The form carries the owner's identity details, the land details and the
    six required documents. All field problems are reported together.

    Raises:
        HTTPException:
            - 401 UNAUTHORIZED: If no wallet is connected.
            - 422 UNPROCESSABLE ENTITY: With a field -> message map.
            - 503 / 504: If the ledger is unavailable or timed out.
            - 500 INTERNAL SERVER ERROR: If the registry could not be written.

    Returns:
        dict: "status" and the registration "receipt".
    """
    payload = RegistrationForm(
        owner_name=owner_name,
        aadhaar_number=aadhaar_number,
        voter_id=voter_id,
        phone=phone,
        email=email,
        land_address=land_address,
        land_area=land_area,
        survey_number=survey_number,
        district=district,
        state=state,
    )
    documents = {
        "aadhaar_front": await _read_upload(aadhaar_front),
        "aadhaar_back": await _read_upload(aadhaar_back),
        "pan_card": await _read_upload(pan_card),
        "owner_photo": await _read_upload(owner_photo),
        "property_photo": await _read_upload(property_photo),
        "ownership_document": await _read_upload(ownership_document),
    }
    try:
        receipt = await register_property(payload, documents, identity, ctx)
        return {"status": "success", "receipt": receipt}
    except HTTPException as http_exc:
        raise http_exc
    except Exception as e:
        raise _http_error(e)


@router.get("/properties")
async def list_properties(
    owner_wallet: Optional[str] = Query(None, description="Only properties currently owned by this wallet."),
    ctx: RegistryContext = Depends(get_context),
):
    try:
        properties = await ctx.store.list_properties(owner_wallet=owner_wallet)
        return {"status": "success", "properties": [PropertyOut.from_record(p) for p in properties]}
    except Exception as e:
        raise _http_error(e)


@router.get("/properties/{property_id}")
async def get_property(property_id: str, ctx: RegistryContext = Depends(get_context)):
    try:
        prop = await ctx.store.get_property_by_id(property_id)
        if prop is None:
            raise PropertyNotFound(property_id)
        return {"status": "success", "property": PropertyOut.from_record(prop)}
    except Exception as e:
        raise _http_error(e)


@router.get("/properties/{property_id}/transfers")
async def get_property_transfers(property_id: str, ctx: RegistryContext = Depends(get_context)):
    """Transfer history of one property, newest first."""
    try:
        if await ctx.store.get_property_by_id(property_id) is None:
            raise PropertyNotFound(property_id)
        transfers = await ctx.store.list_transfers(property_id=property_id)
        return {"status": "success", "transfers": [TransferOut.model_validate(t) for t in transfers]}
    except Exception as e:
        raise _http_error(e)


@router.post("/transfers", status_code=status.HTTP_201_CREATED)
async def create_transfer(
    payload: TransferForm,
    identity: Identity = Depends(get_identity),
    ctx: RegistryContext = Depends(get_context),
):
    """
    Transfers a property from the connected wallet to the buyer.

    The connected wallet and the seller wallet must both be the current
    owner. On success the property shows the buyer as owner and the transfer
    appears first in the transfer list.

    Raises:
        HTTPException:
            - 401 UNAUTHORIZED: If no wallet is connected.
            - 403 FORBIDDEN: If the wallet is not the current owner.
            - 404 NOT FOUND: If the property id is unknown.
            - 422 UNPROCESSABLE ENTITY: With a field -> message map.
            - 503 / 504: If the ledger is unavailable or timed out.
            - 500 INTERNAL SERVER ERROR: If the transfer could not be recorded.

    Returns:
        dict: "status" and the transfer "receipt".
    """
    try:
        receipt = await process_transfer(payload, identity, ctx)
        return {"status": "success", "receipt": receipt}
    except HTTPException as http_exc:
        raise http_exc
    except Exception as e:
        raise _http_error(e)


@router.get("/transfers")
async def list_transfers(ctx: RegistryContext = Depends(get_context)):
    try:
        transfers = await ctx.store.list_transfers()
        return {"status": "success", "transfers": [TransferOut.model_validate(t) for t in transfers]}
    except Exception as e:
        raise _http_error(e)


@router.get("/receipts/current")
async def get_current_receipt(
    identity: Identity = Depends(get_identity),
    ctx: RegistryContext = Depends(get_context),
):
    """The last receipt issued to the connected wallet, until it is dismissed."""
    try:
        wallet = identity.require_address()
        if ctx.receipts is None:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                                detail="Receipts are not available.")
        receipt = await ctx.receipts.get(wallet)
        if receipt is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No receipt to show.")
        return {"status": "success", "receipt": receipt}
    except HTTPException as http_exc:
        raise http_exc
    except Exception as e:
        raise _http_error(e)


@router.delete("/receipts/current", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_receipt(
    identity: Identity = Depends(get_identity),
    ctx: RegistryContext = Depends(get_context),
):
    try:
        wallet = identity.require_address()
        if ctx.receipts is not None:
            await ctx.receipts.clear(wallet)
    except Exception as e:
        raise _http_error(e)


@router.get("/dashboard")
async def get_dashboard(
    identity: Identity = Depends(get_identity),
    ctx: RegistryContext = Depends(get_context),
):
    """Property and transfer counts for the connected wallet, or for everyone when not connected."""
    try:
        counts = await ctx.store.count_summary(owner_wallet=identity.address)
        return {"status": "success", "dashboard": DashboardSummary(wallet=identity.address, **counts)}
    except Exception as e:
        raise _http_error(e)
