from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from resume_publisher.exceptions import ObjectStoreError
from resume_publisher.storage.s3_object_store import S3ObjectStore


def _client_error(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, operation)


def _make_store() -> tuple[S3ObjectStore, MagicMock]:
    client = MagicMock()
    return S3ObjectStore(client, "resumes", url_ttl_seconds=900), client


class TestPresign:
    def test_sign_put_is_pdf_only(self) -> None:
        store, client = _make_store()
        client.generate_presigned_url.return_value = "https://signed/put"

        assert store.sign_put("temp/a/x.pdf") == "https://signed/put"
        client.generate_presigned_url.assert_called_once_with(
            "put_object",
            Params={"Bucket": "resumes", "Key": "temp/a/x.pdf", "ContentType": "application/pdf"},
            ExpiresIn=900,
        )

    def test_sign_get(self) -> None:
        store, client = _make_store()

        store.sign_get("users/u/1/x.pdf")

        assert client.generate_presigned_url.call_args.args[0] == "get_object"

    def test_presign_error_is_mapped(self) -> None:
        store, client = _make_store()
        client.generate_presigned_url.side_effect = _client_error("GeneratePresignedUrl")

        with pytest.raises(ObjectStoreError):
            store.sign_get("x")


class TestCopyAndDelete:
    def test_copy_within_bucket(self) -> None:
        store, client = _make_store()

        store.copy("temp/a/x.pdf", "users/u/1/x.pdf")

        client.copy_object.assert_called_once_with(
            Bucket="resumes",
            CopySource={"Bucket": "resumes", "Key": "temp/a/x.pdf"},
            Key="users/u/1/x.pdf",
        )

    def test_copy_error_is_mapped(self) -> None:
        store, client = _make_store()
        client.copy_object.side_effect = _client_error("CopyObject")

        with pytest.raises(ObjectStoreError):
            store.copy("a", "b")

    def test_delete_error_is_mapped(self) -> None:
        store, client = _make_store()
        client.delete_object.side_effect = _client_error("DeleteObject")

        with pytest.raises(ObjectStoreError):
            store.delete("a")


class TestListOlderThan:
    def test_filters_by_last_modified(self) -> None:
        store, client = _make_store()
        cutoff = datetime(2024, 5, 1, tzinfo=timezone.utc)
        client.get_paginator.return_value.paginate.return_value = [
            {
                "Contents": [
                    {"Key": "temp/old.pdf", "LastModified": datetime(2024, 4, 1, tzinfo=timezone.utc)},
                    {"Key": "temp/new.pdf", "LastModified": datetime(2024, 5, 2, tzinfo=timezone.utc)},
                ]
            },
            {},
        ]

        assert store.list_older_than("temp/", cutoff) == ["temp/old.pdf"]
        client.get_paginator.return_value.paginate.assert_called_once_with(
            Bucket="resumes", Prefix="temp/"
        )
