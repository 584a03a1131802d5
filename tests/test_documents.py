"""Tests for the document store adapters."""

import asyncio
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from app.core.config import Settings
from app.schemas.registry_schema import UploadedDocument
from app.services.document_service import (
    LocalDocumentStore,
    S3DocumentStore,
    build_document_store,
    upload_documents,
)


def _doc(filename: str = "front.png", content: bytes = b"image") -> UploadedDocument:
    return UploadedDocument(filename=filename, content=content, content_type="image/png")


class TestUploadedDocument:
    def test_extension_is_lowercased(self) -> None:
        assert _doc("Scan.PDF").extension == "pdf"

    def test_missing_extension_defaults_to_bin(self) -> None:
        assert _doc("scan").extension == "bin"


class TestLocalDocumentStore:
    """Tests for LocalDocumentStore."""

    def test_store_writes_file_and_returns_url(self, document_store: LocalDocumentStore) -> None:
        url = asyncio.run(document_store.store(_doc(), "PROP-1", "aadhaar_front"))

        assert url == "http://testserver/documents/PROP-1/aadhaar_front.png"
        assert (document_store.root / "PROP-1" / "aadhaar_front.png").read_bytes() == b"image"

    def test_reupload_overwrites(self, document_store: LocalDocumentStore) -> None:
        asyncio.run(document_store.store(_doc(content=b"first"), "PROP-1", "pan_card"))
        url = asyncio.run(document_store.store(_doc(content=b"second"), "PROP-1", "pan_card"))

        files = list((document_store.root / "PROP-1").iterdir())
        assert len(files) == 1
        assert files[0].read_bytes() == b"second"
        assert url.endswith("/PROP-1/pan_card.png")

    def test_reupload_with_new_extension_replaces_old_object(self, document_store: LocalDocumentStore) -> None:
        asyncio.run(document_store.store(_doc("deed.png"), "PROP-1", "ownership_document"))
        asyncio.run(document_store.store(_doc("deed.pdf"), "PROP-1", "ownership_document"))

        names = [p.name for p in (document_store.root / "PROP-1").iterdir()]
        assert names == ["ownership_document.pdf"]

    def test_write_failure_returns_none(self, tmp_path) -> None:
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")
        store = LocalDocumentStore(blocker, "http://testserver/documents")

        assert asyncio.run(store.store(_doc(), "PROP-1", "owner_photo")) is None


class TestS3DocumentStore:
    """Tests for S3DocumentStore with a mocked boto3 client."""

    def test_store_puts_object_and_returns_public_url(self) -> None:
        client = MagicMock()
        store = S3DocumentStore("property-documents", "ap-south-1", client=client)

        url = asyncio.run(store.store(_doc(), "PROP-1", "owner_photo"))

        client.put_object.assert_called_once_with(
            Bucket="property-documents", Key="PROP-1/owner_photo.png", Body=b"image", ContentType="image/png"
        )
        assert url == "https://property-documents.s3.ap-south-1.amazonaws.com/PROP-1/owner_photo.png"

    def test_client_error_returns_none(self) -> None:
        client = MagicMock()
        client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        store = S3DocumentStore("property-documents", "ap-south-1", client=client)

        assert asyncio.run(store.store(_doc(), "PROP-1", "owner_photo")) is None

    def test_unexpected_client_error_returns_none(self, caplog) -> None:
        client = MagicMock()
        client.put_object.side_effect = RuntimeError("connection pool closed")
        store = S3DocumentStore("property-documents", "ap-south-1", client=client)

        assert asyncio.run(store.store(_doc(), "PROP-1", "owner_photo")) is None
        assert "Unexpected error uploading owner_photo" in caplog.text


class TestUploadDocuments:
    """Tests for upload_documents."""

    def test_partial_success_is_reported_per_document(self) -> None:
        client = MagicMock()

        def put_object(**kwargs):
            if kwargs["Key"].startswith("PROP-1/pan_card"):
                raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")

        client.put_object.side_effect = put_object
        store = S3DocumentStore("bucket", "us-west-1", client=client)

        urls = asyncio.run(upload_documents(store, "PROP-1", {
            "aadhaar_front": _doc(),
            "pan_card": _doc(),
            "owner_photo": None,
        }))

        assert urls["pan_card"] is None
        assert urls["aadhaar_front"].endswith("PROP-1/aadhaar_front.png")
        assert "owner_photo" not in urls


class TestBuildDocumentStore:
    def test_local_backend_by_default(self, tmp_path) -> None:
        store = build_document_store(Settings(document_root=tmp_path))
        assert isinstance(store, LocalDocumentStore)
