"""Tests for StorageClient with mocked S3."""

import asyncio
import os
import typing
import unittest
from unittest import mock

from botocore import exceptions as botocore_exceptions

from archive_cache.storage import client, errors
from tests import base


class StorageClientSingletonTestCase(unittest.TestCase):
    """Test cases for StorageClient singleton pattern."""

    def setUp(self) -> None:
        client.StorageClient._instance = None

    def tearDown(self) -> None:
        client.StorageClient._instance = None

    def test_get_instance_creates_singleton(self) -> None:
        """Test that get_instance creates a singleton."""
        instance1 = client.StorageClient.get_instance()
        instance2 = client.StorageClient.get_instance()
        self.assertIs(instance1, instance2)

    def test_get_instance_returns_new_after_reset(self) -> None:
        """Test that resetting creates a new instance."""
        instance1 = client.StorageClient.get_instance()
        client.StorageClient._instance = None
        instance2 = client.StorageClient.get_instance()
        self.assertIsNot(instance1, instance2)

    def test_new_instance_is_uninitialized(self) -> None:
        storage_client = client.StorageClient.get_instance()
        self.assertEqual(
            storage_client.state,
            client.ConnectionState.uninitialized,
        )
        self.assertIsNone(storage_client.bucket)

    def test_require_ready_when_uninitialized(self) -> None:
        storage_client = client.StorageClient.get_instance()
        with self.assertRaises(errors.NotInitialized) as ctx:
            storage_client.require_ready()
        self.assertEqual(ctx.exception.state, 'uninitialized')


class StorageClientInitializeTestCase(unittest.IsolatedAsyncioTestCase):
    """Test cases for the connection lifecycle."""

    async def asyncSetUp(self) -> None:
        self.client = client.StorageClient()
        self.mock_s3 = mock.AsyncMock()
        self.ctx = base.async_ctx(self.mock_s3)

    def _patch_s3(self) -> typing.Any:
        return mock.patch.object(
            self.client,
            '_s3_client',
            return_value=self.ctx,
        )

    async def test_disabled_never_builds_client(self) -> None:
        """Test that disabled storage does not touch the network."""
        config = base.storage_settings(enabled=False)
        with mock.patch.object(client.aioboto3, 'Session') as session:
            state = await self.client.initialize(config)

        self.assertEqual(state, client.ConnectionState.disabled)
        self.assertEqual(self.client.state, client.ConnectionState.disabled)
        session.assert_not_called()

    async def test_missing_fields_fail_without_network(self) -> None:
        """Test that incomplete settings are a configuration error."""
        config = base.storage_settings(s3_bucket=None, s3_secret_key='  ')
        with mock.patch.object(client.aioboto3, 'Session') as session:
            with self.assertRaises(errors.ConfigurationError) as ctx:
                await self.client.initialize(config)

        self.assertEqual(
            ctx.exception.missing,
            ['s3_bucket', 's3_secret_key'],
        )
        self.assertIn('s3_bucket', str(ctx.exception))
        self.assertEqual(self.client.state, client.ConnectionState.failed)
        session.assert_not_called()

    async def test_invalid_environment_is_configuration_error(self) -> None:
        """Test that settings rejected by validation end in failed."""
        environ = {
            'CLOUD_STORAGE_ENABLED': 'true',
            'CLOUD_STORAGE_SIGNED_URL_EXPIRY': '0',
            'CLOUD_STORAGE_MULTIPART_CHUNK_SIZE': '1024',
        }
        with mock.patch.dict(os.environ, environ):
            with mock.patch.object(client.aioboto3, 'Session') as session:
                with self.assertRaises(errors.ConfigurationError) as ctx:
                    await self.client.initialize()

        self.assertEqual(
            ctx.exception.invalid,
            ['signed_url_expiry', 'multipart_chunk_size'],
        )
        self.assertEqual(ctx.exception.missing, [])
        self.assertIn('signed_url_expiry', str(ctx.exception))
        self.assertEqual(self.client.state, client.ConnectionState.failed)
        session.assert_not_called()

    async def test_unparseable_flag_is_configuration_error(self) -> None:
        with mock.patch.dict(os.environ, {'CLOUD_STORAGE_ENABLED': 'maybe'}):
            with self.assertRaises(errors.ConfigurationError) as ctx:
                await self.client.initialize()

        self.assertEqual(ctx.exception.invalid, ['enabled'])
        self.assertEqual(self.client.state, client.ConnectionState.failed)

    async def test_initialize_probes_bucket(self) -> None:
        with self._patch_s3():
            state = await self.client.initialize(base.storage_settings())

        self.assertEqual(state, client.ConnectionState.ready)
        self.mock_s3.head_bucket.assert_awaited_once_with(
            Bucket='media-cache',
        )
        self.assertEqual(self.client.bucket, 'media-cache')

    async def test_initialize_twice_probes_once(self) -> None:
        """Test that a ready client short-circuits initialize."""
        config = base.storage_settings()
        with self._patch_s3() as s3_client:
            await self.client.initialize(config)
            state = await self.client.initialize(config)

        self.assertEqual(state, client.ConnectionState.ready)
        self.mock_s3.head_bucket.assert_awaited_once()
        s3_client.assert_called_once()

    async def test_concurrent_initialize_probes_once(self) -> None:
        async def slow_probe(**_kwargs: object) -> None:
            await asyncio.sleep(0.01)

        self.mock_s3.head_bucket.side_effect = slow_probe
        config = base.storage_settings()
        with self._patch_s3():
            results = await asyncio.gather(
                self.client.initialize(config),
                self.client.initialize(config),
            )

        self.assertEqual(results, [client.ConnectionState.ready] * 2)
        self.mock_s3.head_bucket.assert_awaited_once()

    async def test_operations_during_initialize_are_not_ready(self) -> None:
        """Test that an in-flight initialize reports NotInitialized."""
        observed: list[str] = []

        async def probe(**_kwargs: object) -> None:
            try:
                self.client.require_ready()
            except errors.NotInitialized as err:
                observed.append(err.state)

        self.mock_s3.head_bucket.side_effect = probe
        with self._patch_s3():
            await self.client.initialize(base.storage_settings())

        self.assertEqual(observed, ['initializing'])
        self.client.require_ready()

    async def test_probe_failure_raises_connectivity_error(self) -> None:
        self.mock_s3.head_bucket.side_effect = base.client_error(
            '403',
            'HeadBucket',
            403,
        )
        with self._patch_s3():
            with self.assertRaises(errors.ConnectivityError) as ctx:
                await self.client.initialize(base.storage_settings())

        self.assertEqual(ctx.exception.code, '403')
        self.assertEqual(ctx.exception.bucket, 'media-cache')
        self.assertIsInstance(
            ctx.exception.__cause__,
            botocore_exceptions.ClientError,
        )
        self.assertEqual(self.client.state, client.ConnectionState.failed)
        self.assertTrue(self.ctx.exited)
        self.assertIsNone(self.client._s3)

    async def test_network_failure_raises_connectivity_error(self) -> None:
        self.mock_s3.head_bucket.side_effect = (
            botocore_exceptions.EndpointConnectionError(
                endpoint_url='https://s3.example.com',
            )
        )
        with self._patch_s3():
            with self.assertRaises(errors.ConnectivityError) as ctx:
                await self.client.initialize(base.storage_settings())

        self.assertIsNone(ctx.exception.code)
        self.assertEqual(self.client.state, client.ConnectionState.failed)

    async def test_retry_after_failure(self) -> None:
        """Test that a failed client can be initialized again."""
        self.mock_s3.head_bucket.side_effect = [
            base.client_error('NoSuchBucket', 'HeadBucket', 404),
            None,
        ]
        with mock.patch.object(
            self.client,
            '_s3_client',
            side_effect=lambda _config: base.async_ctx(self.mock_s3),
        ):
            with self.assertRaises(errors.ConnectivityError):
                await self.client.initialize(base.storage_settings())
            state = await self.client.initialize(base.storage_settings())

        self.assertEqual(state, client.ConnectionState.ready)
        self.assertEqual(self.mock_s3.head_bucket.await_count, 2)

    async def test_reinitialize_after_disabled(self) -> None:
        await self.client.initialize(base.storage_settings(enabled=False))
        with self._patch_s3():
            state = await self.client.initialize(base.storage_settings())
        self.assertEqual(state, client.ConnectionState.ready)

    async def test_cancelled_probe_leaves_failed_state(self) -> None:
        self.mock_s3.head_bucket.side_effect = asyncio.CancelledError()
        with self._patch_s3():
            with self.assertRaises(asyncio.CancelledError):
                await self.client.initialize(base.storage_settings())

        self.assertEqual(self.client.state, client.ConnectionState.failed)
        self.assertTrue(self.ctx.exited)

    async def test_aclose(self) -> None:
        """Test that aclose releases the client and resets state."""
        with self._patch_s3():
            await self.client.initialize(base.storage_settings())
        await self.client.aclose()

        self.assertEqual(
            self.client.state,
            client.ConnectionState.uninitialized,
        )
        self.assertTrue(self.ctx.exited)
        with self.assertRaises(errors.NotInitialized):
            self.client.require_ready()

    async def test_aclose_when_never_initialized(self) -> None:
        await self.client.aclose()
        self.assertEqual(
            self.client.state,
            client.ConnectionState.uninitialized,
        )


class StorageClientSessionTestCase(unittest.TestCase):
    """Test cases for building the aioboto3 client."""

    def test_s3_client_uses_credentials(self) -> None:
        config = base.storage_settings(s3_region='eu-west-1')
        with mock.patch.object(client.aioboto3, 'Session') as session:
            client.StorageClient()._s3_client(config)

        session.assert_called_once_with(
            aws_access_key_id='AKIAEXAMPLE',
            aws_secret_access_key='secret',
            region_name='eu-west-1',
        )
        args, kwargs = session.return_value.client.call_args
        self.assertEqual(args, ('s3',))
        self.assertNotIn('endpoint_url', kwargs)
        self.assertEqual(kwargs['config'].signature_version, 's3v4')

    def test_s3_client_with_endpoint_url(self) -> None:
        config = base.storage_settings(
            s3_endpoint_url='http://localhost:9000',
        )
        with mock.patch.object(client.aioboto3, 'Session') as session:
            client.StorageClient()._s3_client(config)

        _args, kwargs = session.return_value.client.call_args
        self.assertEqual(kwargs['endpoint_url'], 'http://localhost:9000')


class StorageClientOperationsTestCase(unittest.IsolatedAsyncioTestCase):
    """Test cases for StorageClient S3 operations."""

    async def asyncSetUp(self) -> None:
        self.client, self.mock_s3 = base.ready_client()

    async def test_put_object(self) -> None:
        """Test uploading bytes to S3."""
        await self.client.put_object(
            'archives/li_1.zip',
            b'data',
            'application/zip',
        )

        self.mock_s3.put_object.assert_awaited_once_with(
            Bucket='media-cache',
            Key='archives/li_1.zip',
            Body=b'data',
            ContentType='application/zip',
        )

    async def test_multipart_upload(self) -> None:
        fileobj = mock.Mock()
        await self.client.multipart_upload(
            'archives/li_1.zip',
            fileobj,
            'application/zip',
        )

        self.mock_s3.upload_fileobj.assert_awaited_once()
        args, kwargs = self.mock_s3.upload_fileobj.call_args
        self.assertEqual(args, (fileobj, 'media-cache', 'archives/li_1.zip'))
        self.assertEqual(
            kwargs['ExtraArgs'],
            {'ContentType': 'application/zip'},
        )
        self.assertEqual(kwargs['Config'].multipart_chunksize, 8 * 1024**2)
        self.assertEqual(kwargs['Config'].max_request_concurrency, 4)

    async def test_head_object(self) -> None:
        self.mock_s3.head_object.return_value = {'ContentLength': 4}
        result = await self.client.head_object('archives/li_1.zip')

        self.assertEqual(result, {'ContentLength': 4})
        self.mock_s3.head_object.assert_awaited_once_with(
            Bucket='media-cache',
            Key='archives/li_1.zip',
        )

    async def test_presign_get(self) -> None:
        """Test generating a presigned URL."""
        self.mock_s3.generate_presigned_url.return_value = (
            'https://s3.example.com/signed'
        )

        url = await self.client.presign_get('archives/li_1.zip', 600)

        self.assertEqual(url, 'https://s3.example.com/signed')
        self.mock_s3.generate_presigned_url.assert_awaited_once_with(
            'get_object',
            Params={'Bucket': 'media-cache', 'Key': 'archives/li_1.zip'},
            ExpiresIn=600,
        )

    def test_key_for_archive(self) -> None:
        self.assertEqual(self.client.key_for('li_1'), 'archives/li_1.zip')

    def test_key_for_filename(self) -> None:
        self.assertEqual(
            self.client.key_for('li_1', 'Dune (Unabridged).M4B'),
            'dune-unabridged.m4b',
        )

    def test_key_for_custom_prefix(self) -> None:
        storage_client, _mock_s3 = base.ready_client(
            base.storage_settings(archive_prefix='/cache/zips/'),
        )
        self.assertEqual(
            storage_client.key_for('li_1'),
            'cache/zips/li_1.zip',
        )

    def test_key_for_requires_ready(self) -> None:
        self.client._state = client.ConnectionState.failed
        with self.assertRaises(errors.NotInitialized):
            self.client.key_for('li_1')

    def test_key_for_rejects_empty_body(self) -> None:
        with self.assertRaises(errors.InvalidKey):
            self.client.key_for('li_1', '===.WAV')
