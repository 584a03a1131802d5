from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from app.api.v1 import registry
from app.core.config import Settings, get_settings
from app.core.logging_config import setup_logging
from app.core.redis_client import get_redis_client
from app.db.database import build_engine, build_sessionmaker, init_models
from app.services.document_service import DocumentStore, LocalDocumentStore, build_document_store
from app.services.orchestrator import RegistryContext
from app.services.receipt_service import ReceiptCache
from app.services.registry_store import RegistryStore
from app.services.settlement_service import SettlementClient, SimulatedSettlement


def create_app(
    settings: Optional[Settings] = None,
    redis=None,
    settlement: Optional[SettlementClient] = None,
    document_store: Optional[DocumentStore] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)
    documents = document_store or build_document_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings.database_url)
        await init_models(engine)
        if isinstance(documents, LocalDocumentStore):
            documents.root.mkdir(parents=True, exist_ok=True)
        app.state.registry = RegistryContext.from_settings(
            settings,
            store=RegistryStore(build_sessionmaker(engine)),
            settlement=settlement or SimulatedSettlement(settings.settlement_delay_seconds),
            documents=documents,
            receipts=ReceiptCache(redis or get_redis_client(settings.redis_url), settings.receipt_ttl_seconds),
        )
        yield
        await engine.dispose()

    app = FastAPI(title="Property Registry", lifespan=lifespan)

    @app.get("/", tags=["Health Check"])
    async def read_root():
        return {"status": "ok", "message": "Welcome to the Property Registry"}

    app.include_router(registry.router, prefix="/api/v1")

    if isinstance(documents, LocalDocumentStore):
        app.mount("/documents", StaticFiles(directory=documents.root, check_dir=False), name="documents")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
