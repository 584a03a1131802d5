from sqlalchemy import (
    Column, String, ForeignKey, DateTime, Integer, JSON, CheckConstraint, Uuid
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.schema import Index
from datetime import datetime, timezone
import uuid
from app.db.base import Base


def utcnow():
    return datetime.now(timezone.utc)


class Property(Base):
    __tablename__ = "properties"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id = Column(String, unique=True, nullable=False)
    owner_name = Column(String, nullable=False)
    owner_wallet = Column(String, nullable=False)
    aadhaar_number = Column(String, nullable=False)
    voter_id = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    email = Column(String, nullable=False)
    land_address = Column(String, nullable=False)
    land_area = Column(String, nullable=False)
    survey_number = Column(String, nullable=False)
    district = Column(String, nullable=False)
    state = Column(String, nullable=False)
    transaction_hash = Column(String, nullable=False)
    block_number = Column(Integer, nullable=False)
    revision = Column(Integer, nullable=False, default=1)
    aadhaar_front_url = Column(String)
    aadhaar_back_url = Column(String)
    pan_card_url = Column(String)
    owner_photo_url = Column(String)
    property_photo_url = Column(String)
    ownership_document_url = Column(String)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("block_number > 0", name="check_property_block_number"),
        Index("idx_properties_owner_wallet", "owner_wallet"),
        Index("idx_properties_created_at", "created_at"),
    )

    @property
    def land_details(self) -> dict:
        return {
            "address": self.land_address,
            "area": self.land_area,
            "survey_number": self.survey_number,
            "district": self.district,
            "state": self.state,
        }

    @property
    def document_urls(self) -> dict:
        return {
            "aadhaar_front": self.aadhaar_front_url,
            "aadhaar_back": self.aadhaar_back_url,
            "pan_card": self.pan_card_url,
            "owner_photo": self.owner_photo_url,
            "property_photo": self.property_photo_url,
            "ownership_document": self.ownership_document_url,
        }


class Transfer(Base):
    __tablename__ = "transfers"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id = Column(String, ForeignKey("properties.property_id"), nullable=False)
    seller_name = Column(String, nullable=False)
    seller_wallet = Column(String, nullable=False)
    seller_phone = Column(String, nullable=False)
    seller_email = Column(String, nullable=False)
    buyer_name = Column(String, nullable=False)
    buyer_wallet = Column(String, nullable=False)
    buyer_phone = Column(String, nullable=False)
    buyer_email = Column(String, nullable=False)
    transaction_hash = Column(String, nullable=False)
    block_number = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("block_number > 0", name="check_transfer_block_number"),
        Index("idx_transfers_property_id", "property_id"),
        Index("idx_transfers_created_at", "created_at"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"
    log_id = Column(Integer, primary_key=True)
    table_name = Column(String, nullable=False)
    record_id = Column(String, nullable=False)
    action = Column(String, nullable=False)
    new_values = Column(JSON().with_variant(JSONB, "postgresql"))
    changed_by = Column(String)
    change_reason = Column(String)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_audit_logs_record_id", "record_id"),
        Index("idx_audit_logs_changed_by", "changed_by"),
    )
