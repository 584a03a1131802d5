from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv(override=True)


@dataclass
class Settings:
    """Runtime configuration for the registry service."""

    database_url: str = "sqlite+aiosqlite:///./registry.db"
    redis_url: Optional[str] = None
    document_backend: str = "local"
    document_root: Path = Path("documents")
    document_base_url: str = "http://localhost:8000/documents"
    s3_bucket: Optional[str] = None
    aws_region: str = "us-west-1"
    explorer_host: str = "sepolia.etherscan.io"
    settlement_delay_seconds: float = 2.0
    settlement_timeout_seconds: float = 30.0
    property_id_attempts: int = 5
    receipt_ttl_seconds: int = 3600
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            redis_url=os.getenv("REDIS_URL") or None,
            document_backend=os.getenv("DOCUMENT_BACKEND", "local").lower(),
            document_root=Path(os.getenv("DOCUMENT_ROOT", "documents")),
            document_base_url=os.getenv("DOCUMENT_BASE_URL", cls.document_base_url),
            s3_bucket=os.getenv("S3_BUCKET") or None,
            aws_region=os.getenv("AWS_REGION", "us-west-1"),
            explorer_host=os.getenv("EXPLORER_HOST", cls.explorer_host),
            settlement_delay_seconds=float(os.getenv("SETTLEMENT_DELAY_SECONDS", "2.0")),
            settlement_timeout_seconds=float(os.getenv("SETTLEMENT_TIMEOUT_SECONDS", "30.0")),
            property_id_attempts=int(os.getenv("PROPERTY_ID_ATTEMPTS", "5")),
            receipt_ttl_seconds=int(os.getenv("RECEIPT_TTL_SECONDS", "3600")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
