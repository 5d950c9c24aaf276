"""Tests for storage status endpoints."""

import os
import unittest
from unittest import mock

from fastapi import testclient

from archive_cache import app, storage
from archive_cache.storage import client
from tests import base


class StatusEndpointsTestCase(unittest.TestCase):
    def setUp(self) -> None:
        client.StorageClient._instance = None
        self.client = testclient.TestClient(app.create_app())

    def tearDown(self) -> None:
        client.StorageClient._instance = None

    def test_status_uninitialized(self) -> None:
        response = self.client.get('/storage/status')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['state'], 'uninitialized')
        self.assertFalse(response.json()['enabled'])

    def test_status_ready(self) -> None:
        client.StorageClient._instance, _mock_s3 = base.ready_client()

        response = self.client.get('/storage/status')

        self.assertEqual(
            response.json(),
            {
                'state': 'ready',
                'enabled': True,
                'bucket': 'media-cache',
                'region': 'us-east-1',
            },
        )

    @mock.patch(
        'archive_cache.storage.initialize',
        new_callable=mock.AsyncMock,
    )
    def test_initialize(self, mock_initialize: mock.AsyncMock) -> None:
        response = self.client.post('/storage/initialize')

        self.assertEqual(response.status_code, 200)
        mock_initialize.assert_awaited_once_with()

    @mock.patch(
        'archive_cache.storage.initialize',
        new_callable=mock.AsyncMock,
        side_effect=storage.ConfigurationError(['s3_bucket']),
    )
    def test_initialize_configuration_error(
        self,
        _mock_initialize: mock.AsyncMock,
    ) -> None:
        response = self.client.post('/storage/initialize')

        self.assertEqual(response.status_code, 500)
        self.assertIn('s3_bucket', response.json()['detail'])

    @mock.patch(
        'archive_cache.storage.initialize',
        new_callable=mock.AsyncMock,
        side_effect=storage.ConnectivityError('media-cache', '403'),
    )
    def test_initialize_connectivity_error(
        self,
        _mock_initialize: mock.AsyncMock,
    ) -> None:
        response = self.client.post('/storage/initialize')

        self.assertEqual(response.status_code, 502)
        self.assertIn('media-cache', response.json()['detail'])

    @mock.patch(
        'archive_cache.storage.initialize',
        new_callable=mock.AsyncMock,
    )
    @mock.patch('archive_cache.storage.aclose', new_callable=mock.AsyncMock)
    def test_initialize_reset(
        self,
        mock_aclose: mock.AsyncMock,
        mock_initialize: mock.AsyncMock,
    ) -> None:
        response = self.client.post(
            '/storage/initialize',
            params={'reset': 'true'},
        )

        self.assertEqual(response.status_code, 200)
        mock_aclose.assert_awaited_once()
        mock_initialize.assert_awaited_once()

    def test_initialize_invalid_environment(self) -> None:
        environ = {'CLOUD_STORAGE_SIGNED_URL_EXPIRY': '0'}
        with mock.patch.dict(os.environ, environ):
            response = self.client.post('/storage/initialize')

        self.assertEqual(response.status_code, 500)
        self.assertIn('signed_url_expiry', response.json()['detail'])
        self.assertEqual(storage.state(), storage.ConnectionState.failed)
