import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from crowdsolve.errors import UploadFailed
from crowdsolve.storage import InMemoryAssetStore, S3AssetStore, public_id_from_reference
from crowdsolve.tests.testing_utils import image_bytes


def _client_error(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "500", "Message": "boom"}}, operation)


class PublicIdTests(unittest.TestCase):
    def test_trailing_segment_without_extension(self):
        self.assertEqual(
            public_id_from_reference("https://cdn.example.com/crowdsolve/abc123.jpg"), "abc123"
        )
        self.assertEqual(
            public_id_from_reference("https://cdn.example.com/crowdsolve/abc123"), "abc123"
        )

    def test_query_string_is_ignored(self):
        self.assertEqual(
            public_id_from_reference("https://cdn.example.com/crowdsolve/abc.png?v=2"), "abc"
        )

    def test_bare_identifier(self):
        self.assertEqual(public_id_from_reference("abc"), "abc")


class InMemoryAssetStoreTests(unittest.TestCase):
    def test_upload_and_delete(self):
        store = InMemoryAssetStore()
        reference = store.upload(b"data")
        self.assertTrue(reference.startswith("https://example.test/assets/crowdsolve/"))
        self.assertEqual(list(store.objects.values()), [b"data"])

        store.delete(reference)
        self.assertEqual(store.objects, {})
        self.assertEqual(store.deleted, [reference])

    def test_simulated_failures(self):
        store = InMemoryAssetStore(fail_uploads=True)
        with self.assertRaises(UploadFailed):
            store.upload(b"data")

        store = InMemoryAssetStore(fail_deletes=True)
        reference = store.upload(b"data")
        store.delete(reference)
        self.assertEqual(len(store.objects), 1)


class S3AssetStoreTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("crowdsolve.storage.boto3.client")
        self.mock_client_factory = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = MagicMock()
        self.mock_client_factory.return_value = self.client
        self.store = S3AssetStore(
            bucket="problems",
            region="us-east-1",
            public_base_url="https://cdn.example.com",
            max_width=100,
            max_height=50,
        )

    def test_client_has_timeouts_and_no_retries(self):
        config = self.mock_client_factory.call_args.kwargs["config"]
        self.assertEqual(config.connect_timeout, 5.0)
        self.assertEqual(config.read_timeout, 30.0)
        self.assertEqual(config.retries, {"total_max_attempts": 1})

    def test_upload_normalizes_and_returns_reference(self):
        reference = self.store.upload(image_bytes(size=(400, 400)))

        self.client.put_object.assert_called_once()
        kwargs = self.client.put_object.call_args.kwargs
        self.assertEqual(kwargs["Bucket"], "problems")
        self.assertTrue(kwargs["Key"].startswith("crowdsolve/"))
        self.assertEqual(kwargs["ContentType"], "image/jpeg")
        self.assertEqual(reference, f"https://cdn.example.com/{kwargs['Key']}")

    def test_upload_failure_raises(self):
        self.client.put_object.side_effect = _client_error("PutObject")
        with self.assertRaises(UploadFailed):
            self.store.upload(image_bytes())

    def test_undecodable_upload_never_reaches_storage(self):
        with self.assertRaises(UploadFailed):
            self.store.upload(b"definitely not an image")
        self.client.put_object.assert_not_called()

    def test_delete_uses_trailing_segment(self):
        self.store.delete("https://cdn.example.com/crowdsolve/abc123")
        self.client.delete_object.assert_called_once_with(
            Bucket="problems", Key="crowdsolve/abc123"
        )

    def test_delete_failure_is_logged_and_swallowed(self):
        self.client.delete_object.side_effect = _client_error("DeleteObject")
        with self.assertLogs("crowdsolve.storage", level="ERROR"):
            self.store.delete("https://cdn.example.com/crowdsolve/abc123")

    def test_default_public_base_url(self):
        aws = S3AssetStore(bucket="problems", region="eu-west-1")
        self.assertEqual(aws.public_base_url, "https://problems.s3.eu-west-1.amazonaws.com")
        compatible = S3AssetStore(
            bucket="problems", endpoint="https://cos.ap-shanghai.myqcloud.com"
        )
        self.assertEqual(
            compatible.public_base_url, "https://problems.cos.ap-shanghai.myqcloud.com"
        )


if __name__ == "__main__":
    unittest.main()
