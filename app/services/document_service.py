import asyncio
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings
from app.core.exceptions import DocumentUploadFailed
from app.schemas.registry_schema import UploadedDocument

logger = logging.getLogger(__name__)


def object_key(property_id: str, doc_type: str, document: UploadedDocument) -> str:
    return f"{property_id}/{doc_type}.{document.extension}"


class DocumentStore:
    """
    Base for document backends. `store` never raises: a failed upload is
    logged and reported as a missing URL.
    """

    async def store(self, document: UploadedDocument, property_id: str, doc_type: str) -> Optional[str]:
        key = object_key(property_id, doc_type, document)
        try:
            await self._put(key, document)
        except DocumentUploadFailed as e:
            logger.error(f"Failed to upload {doc_type} for property {property_id}: {e}")
            return None
        except Exception:
            logger.exception(f"Unexpected error uploading {doc_type} for property {property_id}")
            return None
        logger.info(f"Uploaded {key}")
        return self.url_for(key)

    async def _put(self, key: str, document: UploadedDocument) -> None:
        raise NotImplementedError

    def url_for(self, key: str) -> str:
        raise NotImplementedError


class LocalDocumentStore(DocumentStore):
    """Keeps documents on the local filesystem, served by the app under /documents."""

    def __init__(self, root: Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _write(self, key: str, content: bytes) -> None:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        # One object per document type, whatever the extension
        for stale in path.parent.glob(f"{path.stem}.*"):
            if stale != path:
                stale.unlink()
        path.write_bytes(content)

    async def _put(self, key: str, document: UploadedDocument) -> None:
        try:
            await asyncio.to_thread(self._write, key, document.content)
        except OSError as e:
            raise DocumentUploadFailed(str(e)) from e

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"


class S3DocumentStore(DocumentStore):
    """Keeps documents in a public S3 bucket. put_object overwrites existing keys."""

    def __init__(self, bucket: str, region: str, client=None):
        self.bucket = bucket
        self.region = region
        self.client = client or boto3.client("s3", region_name=region)

    async def _put(self, key: str, document: UploadedDocument) -> None:
        extra = {"ContentType": document.content_type} if document.content_type else {}
        try:
            await asyncio.to_thread(
                self.client.put_object, Bucket=self.bucket, Key=key, Body=document.content, **extra
            )
        except (ClientError, BotoCoreError) as e:
            raise DocumentUploadFailed(str(e)) from e

    def url_for(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


def build_document_store(settings: Settings) -> DocumentStore:
    if settings.document_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET must be set when DOCUMENT_BACKEND is s3")
        return S3DocumentStore(settings.s3_bucket, settings.aws_region)
    return LocalDocumentStore(settings.document_root, settings.document_base_url)


async def upload_documents(
    store: DocumentStore,
    property_id: str,
    documents: Mapping[str, Optional[UploadedDocument]],
) -> Dict[str, Optional[str]]:
    """
    Uploads every document concurrently and waits for all of them.

    Returns:
        Dict[str, Optional[str]]: Document type to URL, None where the upload failed.
    """
    doc_types = [doc_type for doc_type, doc in documents.items() if doc is not None]
    urls = await asyncio.gather(
        *(store.store(documents[doc_type], property_id, doc_type) for doc_type in doc_types)
    )
    result = dict(zip(doc_types, urls))
    failed = [doc_type for doc_type, url in result.items() if url is None]
    if failed:
        logger.warning(f"Property {property_id} registered without documents: {', '.join(failed)}")
    return result
