import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from app.services.storage import (
    StorageError,
    StorageService,
    evidence_key,
    locked_pdf_key,
)


def _configure(mock_settings):
    mock_settings.s3_endpoint_url = "http://localhost:9000"
    mock_settings.s3_access_key = "test-key"
    mock_settings.s3_secret_key = "test-secret"
    mock_settings.s3_region = "us-east-1"
    mock_settings.s3_bucket_name = "document-pdfs"
    mock_settings.s3_presigned_url_expiry = 3600


class TestKeys:
    def test_locked_pdf_key_is_per_document(self):
        assert locked_pdf_key("org", "fam", "doc") == "org/fam/doc/locked.pdf"

    def test_evidence_key_under_family(self):
        key = evidence_key("org", "fam", "abc123", "photo.jpg")
        assert key == "org/fam/evidence/abc123/photo.jpg"


class TestStorageService:
    def test_is_configured_false_by_default(self):
        assert StorageService.is_configured() is False

    def test_unconfigured_put_raises(self):
        with pytest.raises(StorageError):
            StorageService.put_bytes("a/b.pdf", b"%PDF")

    @patch("app.services.storage.boto3")
    @patch("app.services.storage.settings")
    def test_put_bytes(self, mock_settings, mock_boto3):
        _configure(mock_settings)
        mock_client = MagicMock()
        mock_boto3.client.return_value = mock_client

        StorageService.put_bytes("org/fam/doc/locked.pdf", b"%PDF-1.4")
        mock_client.put_object.assert_called_once_with(
            Bucket="document-pdfs",
            Key="org/fam/doc/locked.pdf",
            Body=b"%PDF-1.4",
            ContentType="application/pdf",
        )

    @patch("app.services.storage.boto3")
    @patch("app.services.storage.settings")
    def test_put_bytes_client_error(self, mock_settings, mock_boto3):
        _configure(mock_settings)
        mock_client = MagicMock()
        mock_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "503", "Message": "Slow Down"}}, "PutObject"
        )
        mock_boto3.client.return_value = mock_client

        with pytest.raises(StorageError):
            StorageService.put_bytes("org/fam/doc/locked.pdf", b"%PDF-1.4")

    @patch("app.services.storage.boto3")
    @patch("app.services.storage.settings")
    def test_get_bytes(self, mock_settings, mock_boto3):
        _configure(mock_settings)
        mock_client = MagicMock()
        mock_client.get_object.return_value = {"Body": io.BytesIO(b"%PDF-1.4 data")}
        mock_boto3.client.return_value = mock_client

        assert StorageService.get_bytes("org/fam/doc/locked.pdf") == b"%PDF-1.4 data"

    @patch("app.services.storage.boto3")
    @patch("app.services.storage.settings")
    def test_get_bytes_missing_key(self, mock_settings, mock_boto3):
        _configure(mock_settings)
        mock_client = MagicMock()
        mock_client.get_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
        )
        mock_boto3.client.return_value = mock_client

        with pytest.raises(StorageError):
            StorageService.get_bytes("org/fam/doc/locked.pdf")

    @patch("app.services.storage.boto3")
    @patch("app.services.storage.settings")
    def test_generate_download_url(self, mock_settings, mock_boto3):
        _configure(mock_settings)
        mock_client = MagicMock()
        mock_client.generate_presigned_url.return_value = "https://example.com/download"
        mock_boto3.client.return_value = mock_client

        url = StorageService.generate_download_url("org/fam/doc/locked.pdf")
        assert url == "https://example.com/download"
        mock_client.generate_presigned_url.assert_called_once()
