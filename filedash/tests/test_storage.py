import io
import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from filedash.errors import NotFoundError, StorageFault, ValidationError
from filedash.storage import InMemoryStorageClient, S3StorageClient, object_key


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class ObjectKeyTests(unittest.TestCase):
    def test_valid_key(self):
        self.assertEqual(object_key("uploads", "a/b.txt"), "uploads/a/b.txt")

    def test_rejects_traversal_and_bad_names(self):
        for container, name in [
            ("uploads", "../secret"),
            ("uploads", "/abs"),
            ("uploads", ""),
            ("up/loads", "a.txt"),
            ("", "a.txt"),
        ]:
            with self.assertRaises(ValidationError):
                object_key(container, name)


class InMemoryStorageClientTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient()

    def test_upload_list_download_delete(self):
        stored = self.storage.upload_bytes("uploads", "notes.txt", b"hello")
        self.assertEqual(stored.size, 5)
        self.assertIn("uploads/notes.txt", stored.url)
        self.storage.upload_bytes("other", "skip.txt", b"x")

        files = self.storage.list_files("uploads")
        self.assertEqual([f.name for f in files], ["notes.txt"])
        self.assertEqual(
            self.storage.download_file("uploads", "notes.txt"),
            (b"hello", "application/octet-stream"),
        )

        self.storage.delete_file("uploads", "notes.txt")
        self.assertEqual(self.storage.list_files("uploads"), [])

    def test_missing_file(self):
        with self.assertRaises(NotFoundError):
            self.storage.download_file("uploads", "missing.txt")
        with self.assertRaises(NotFoundError):
            self.storage.delete_file("uploads", "missing.txt")


class S3StorageClientTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("filedash.storage.boto3.client")
        self.boto_client = patcher.start()
        self.addCleanup(patcher.stop)
        self.s3 = MagicMock()
        self.boto_client.return_value = self.s3
        self.storage = S3StorageClient(
            bucket="bucket", region="us-east-1", endpoint="http://minio:9000"
        )

    def test_upload(self):
        stored = self.storage.upload_bytes("uploads", "a.txt", b"abc", "text/plain")
        self.s3.put_object.assert_called_once_with(
            Bucket="bucket", Key="uploads/a.txt", Body=b"abc", ContentType="text/plain"
        )
        self.assertEqual(stored.url, "http://minio:9000/bucket/uploads/a.txt")

    def test_download(self):
        self.s3.get_object.return_value = {
            "Body": io.BytesIO(b"data"),
            "ContentType": "text/csv",
        }
        self.assertEqual(
            self.storage.download_file("uploads", "a.txt"), (b"data", "text/csv")
        )

    def test_download_missing_is_not_found(self):
        self.s3.get_object.side_effect = _client_error("NoSuchKey", "GetObject")
        with self.assertRaises(NotFoundError):
            self.storage.download_file("uploads", "a.txt")

    def test_delete_missing_is_not_found(self):
        self.s3.head_object.side_effect = _client_error("404", "HeadObject")
        with self.assertRaises(NotFoundError):
            self.storage.delete_file("uploads", "a.txt")
        self.s3.delete_object.assert_not_called()

    def test_other_errors_are_storage_faults(self):
        self.s3.put_object.side_effect = _client_error("AccessDenied", "PutObject")
        with self.assertRaises(StorageFault):
            self.storage.upload_bytes("uploads", "a.txt", b"abc")

    def test_list_files(self):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "uploads/a.txt", "Size": 3}]},
            {"Contents": [{"Key": "uploads/dir/b.txt", "Size": 4}]},
        ]
        self.s3.get_paginator.return_value = paginator
        files = self.storage.list_files("uploads")
        paginator.paginate.assert_called_once_with(Bucket="bucket", Prefix="uploads/")
        self.assertEqual([f.name for f in files], ["a.txt", "dir/b.txt"])
        self.assertEqual(files[1].size, 4)


if __name__ == "__main__":
    unittest.main()
