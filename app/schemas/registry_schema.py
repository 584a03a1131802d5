from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Literal, Optional
from datetime import datetime
from uuid import UUID


class UploadedDocument(BaseModel):
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        _, dot, ext = self.filename.rpartition(".")
        return ext.lower() if dot and ext else "bin"


class RegistrationForm(BaseModel):
    # Formats are checked by the validation service so every failure is reported
    owner_name: str = ""
    aadhaar_number: str = ""
    voter_id: str = ""
    phone: str = ""
    email: str = ""
    land_address: str = ""
    land_area: str = ""
    survey_number: str = ""
    district: str = ""
    state: str = ""


class TransferForm(BaseModel):
    property_id: str = ""
    seller_name: str = ""
    seller_wallet: str = ""
    seller_phone: str = ""
    seller_email: str = ""
    buyer_name: str = ""
    buyer_wallet: str = ""
    buyer_phone: str = ""
    buyer_email: str = ""


class TransactionRef(BaseModel):
    hash: str
    block_number: int


class LandDetails(BaseModel):
    address: str
    area: str
    survey_number: str
    district: str
    state: str


class ReceiptParties(BaseModel):
    owner: Optional[str] = None
    owner_wallet: Optional[str] = None
    seller: Optional[str] = None
    seller_wallet: Optional[str] = None
    buyer: Optional[str] = None
    buyer_wallet: Optional[str] = None


class ReceiptTransaction(BaseModel):
    hash: str
    block_number: int
    timestamp: datetime


class Receipt(BaseModel):
    type: Literal["registration", "transfer"]
    property_id: str
    property_details: LandDetails
    parties: ReceiptParties
    transaction: ReceiptTransaction
    explorer_url: str


class PropertyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    property_id: str
    owner_name: str
    owner_wallet: str
    land_details: LandDetails
    transaction: TransactionRef
    document_urls: Dict[str, Optional[str]] = Field(default_factory=dict)
    revision: int
    registration_date: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record) -> "PropertyOut":
        return cls(
            id=record.id,
            property_id=record.property_id,
            owner_name=record.owner_name,
            owner_wallet=record.owner_wallet,
            land_details=LandDetails(**record.land_details),
            transaction=TransactionRef(
                hash=record.transaction_hash, block_number=record.block_number
            ),
            document_urls=record.document_urls,
            revision=record.revision,
            registration_date=record.created_at,
            updated_at=record.updated_at,
        )


class TransferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    property_id: str
    seller_name: str
    seller_wallet: str
    buyer_name: str
    buyer_wallet: str
    transaction_hash: str
    block_number: int
    created_at: datetime


class DashboardSummary(BaseModel):
    wallet: Optional[str] = None
    property_count: int
    transfer_count: int
