"""Pytest configuration and fixtures."""

import asyncio
import random
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from app.db.database import build_engine, build_sessionmaker, init_models
from app.schemas.registry_schema import RegistrationForm, TransferForm, UploadedDocument
from app.services.document_service import LocalDocumentStore
from app.services.orchestrator import RegistryContext
from app.services.registry_store import RegistryStore
from app.services.settlement_service import SimulatedSettlement
from app.services.validation_service import REGISTRATION_DOCUMENTS

ALICE_WALLET = "0xAAAA" + "0" * 32 + "1111"
BOB_WALLET = "0xBBBB" + "0" * 32 + "2222"
CAROL_WALLET = "0xCCCC" + "0" * 32 + "3333"


class FakeRedis:
    """In-memory stand-in for the async Redis client."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, Optional[int]] = {}

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        self.data[key] = value
        self.expiry[key] = ex

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """SQLite database file private to one test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'registry.db'}"


@pytest.fixture
def store(database_url: str) -> RegistryStore:
    """A registry store over a freshly created schema."""
    engine = build_engine(database_url)
    asyncio.run(init_models(engine))
    return RegistryStore(build_sessionmaker(engine))


@pytest.fixture
def document_store(tmp_path: Path) -> LocalDocumentStore:
    return LocalDocumentStore(tmp_path / "documents", "http://testserver/documents")


@pytest.fixture
def settlement() -> SimulatedSettlement:
    """Zero-delay, seeded settlement."""
    return SimulatedSettlement(delay_seconds=0, rng=random.Random(42))


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def ctx(store: RegistryStore, settlement: SimulatedSettlement,
        document_store: LocalDocumentStore) -> RegistryContext:
    return RegistryContext(store=store, settlement=settlement, documents=document_store)


@pytest.fixture
def registration_form() -> RegistrationForm:
    return RegistrationForm(
        owner_name="Alice",
        aadhaar_number="123456789012",
        voter_id="ABC1234567",
        phone="9876543210",
        email="alice@example.com",
        land_address="12 MG Road, Shivaji Nagar",
        land_area="1000 sqft",
        survey_number="SY-42/1",
        district="Pune",
        state="Maharashtra",
    )


@pytest.fixture
def registration_documents() -> Dict[str, UploadedDocument]:
    return {
        doc_type: UploadedDocument(
            filename=f"{doc_type}.pdf", content=f"{doc_type} scan".encode(), content_type="application/pdf"
        )
        for doc_type in REGISTRATION_DOCUMENTS
    }


@pytest.fixture
def make_transfer_form() -> Callable[..., TransferForm]:
    """Builds a valid Alice -> Bob transfer form for a property id."""

    def _make(property_id: str, /, **overrides) -> TransferForm:
        fields = dict(
            property_id=property_id,
            seller_name="Alice",
            seller_wallet=ALICE_WALLET,
            seller_phone="9876543210",
            seller_email="alice@example.com",
            buyer_name="Bob",
            buyer_wallet=BOB_WALLET,
            buyer_phone="9123456780",
            buyer_email="bob@example.com",
        )
        fields.update(overrides)
        return TransferForm(**fields)

    return _make
