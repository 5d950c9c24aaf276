"""S3 client singleton owning the object storage connection lifecycle."""

import asyncio
import contextlib
import enum
import logging
import typing

import aioboto3
import pydantic
from aiobotocore import config as aiobotocore_config
from boto3.s3 import transfer as s3_transfer
from botocore import exceptions as botocore_exceptions

from archive_cache import settings

from . import errors, keys

LOGGER = logging.getLogger(__name__)

# Errors the bucket probe converts into ConnectivityError
PROBE_ERRORS = (
    botocore_exceptions.ClientError,
    botocore_exceptions.BotoCoreError,
    OSError,
)


class ConnectionState(str, enum.Enum):
    uninitialized = 'uninitialized'
    initializing = 'initializing'
    disabled = 'disabled'
    ready = 'ready'
    failed = 'failed'


class StorageClient:
    """Singleton S3 client for the archive cache.

    Owns the connection state and the long-lived aioboto3 client. Cache
    operations may only run while the state is ``ready``; every other
    state, including an initialization that is still in flight, is
    reported as :class:`~archive_cache.storage.errors.NotInitialized`.

    Works with AWS S3 and S3-compatible services such as MinIO or
    DigitalOcean Spaces via ``s3_endpoint_url``.

    """

    _instance: typing.ClassVar[typing.Optional['StorageClient']] = None

    def __init__(self) -> None:
        self._settings: settings.CloudStorage | None = None
        self._state = ConnectionState.uninitialized
        self._lock = asyncio.Lock()
        self._exit_stack: contextlib.AsyncExitStack | None = None
        self._s3: typing.Any = None

    @classmethod
    def get_instance(cls) -> 'StorageClient':
        """Get the singleton StorageClient instance.

        Returns:
            The singleton StorageClient instance.

        """
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def config(self) -> settings.CloudStorage | None:
        return self._settings

    @property
    def bucket(self) -> str | None:
        if self._settings is None:
            return None
        return self._settings.s3_bucket

    def require_ready(self) -> None:
        """Fail fast unless storage is ready for cache operations.

        Raises:
            NotInitialized: If the state is anything but ``ready``.

        """
        if self._state is not ConnectionState.ready:
            raise errors.NotInitialized(self._state.value)

    def key_for(self, item_id: str, filename: str | None = None) -> str:
        """Return the key an item is (or would be) cached under.

        Raises:
            NotInitialized: If storage is not ready.
            InvalidKey: If no usable key can be derived.

        """
        self.require_ready()
        config = typing.cast(settings.CloudStorage, self._settings)
        return keys.require_usable(
            keys.derive_key(item_id, filename, config.archive_prefix),
            filename if filename is not None else item_id,
        )

    async def initialize(
        self,
        config: settings.CloudStorage | None = None,
    ) -> ConnectionState:
        """Validate configuration and connect to the configured bucket.

        A no-op once ``ready``. From any other state the configuration is
        evaluated again, so a failed or disabled client can be retried.

        Args:
            config: Storage settings (loaded from the environment if None)

        Returns:
            The resulting connection state.

        Raises:
            ConfigurationError: If the settings are invalid, or enabled with
                required settings missing.
            ConnectivityError: If the bucket probe fails.

        """
        if self._state is ConnectionState.ready:
            return self._state

        async with self._lock:
            if self._state is ConnectionState.ready:
                return self._state

            self._state = ConnectionState.initializing
            if config is None:
                try:
                    config = settings.CloudStorage()
                except pydantic.ValidationError as err:
                    self._state = ConnectionState.failed
                    error = errors.ConfigurationError(
                        (), invalid=_invalid_fields(err)
                    )
                    LOGGER.error('Failed to initialize storage: %s', error)
                    raise error from err
            self._settings = config

            if not config.enabled:
                self._state = ConnectionState.disabled
                LOGGER.info('Cloud storage disabled')
                return self._state

            missing = config.missing_fields()
            if missing:
                self._state = ConnectionState.failed
                error = errors.ConfigurationError(missing)
                LOGGER.error('Failed to initialize storage: %s', error)
                raise error

            LOGGER.info(
                'Configuring S3 storage - region: %s, bucket: %s',
                config.s3_region,
                config.s3_bucket,
            )
            try:
                await self._connect(config)
            except BaseException:
                await self._close_client()
                self._state = ConnectionState.failed
                raise

            self._state = ConnectionState.ready
            LOGGER.info('Storage initialized successfully')
            return self._state

    async def aclose(self) -> None:
        """Release the S3 client and return to ``uninitialized``."""
        async with self._lock:
            await self._close_client()
            self._state = ConnectionState.uninitialized
            LOGGER.debug('Storage client closed')

    async def put_object(
        self,
        key: str,
        body: bytes | bytearray | memoryview,
        content_type: str,
    ) -> None:
        """Store an in-memory payload with a single request.

        Args:
            key: S3 object key
            body: Complete object content
            content_type: MIME type of the object

        """
        await self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=bytes(body),
            ContentType=content_type,
        )
        LOGGER.debug('Put %s (%d bytes)', key, len(body))

    async def multipart_upload(
        self,
        key: str,
        fileobj: typing.Any,
        content_type: str,
    ) -> None:
        """Stream a file-like object to S3 in bounded-size parts.

        ``fileobj`` needs a ``read(size)`` method, which may be a
        coroutine. On failure the multipart upload is aborted by aioboto3
        so no partial object becomes visible.

        Args:
            key: S3 object key
            fileobj: Readable binary source
            content_type: MIME type of the object

        """
        config = typing.cast(settings.CloudStorage, self._settings)
        transfer_config = s3_transfer.TransferConfig(
            multipart_threshold=config.multipart_chunk_size,
            multipart_chunksize=config.multipart_chunk_size,
            max_concurrency=config.multipart_concurrency,
        )
        await self._client.upload_fileobj(
            fileobj,
            self.bucket,
            key,
            ExtraArgs={'ContentType': content_type},
            Config=transfer_config,
        )
        LOGGER.debug('Streamed %s', key)

    async def head_object(self, key: str) -> dict[str, typing.Any]:
        """Fetch object metadata.

        Raises:
            botocore.exceptions.ClientError: With code ``404`` when the
                object does not exist.

        """
        response: dict[str, typing.Any] = await self._client.head_object(
            Bucket=self.bucket,
            Key=key,
        )
        return response

    async def head_bucket(self) -> None:
        await self._client.head_bucket(Bucket=self.bucket)

    async def presign_get(self, key: str, expires_in: int) -> str:
        """Generate a presigned GET URL for an S3 object.

        Args:
            key: S3 object key
            expires_in: URL expiration time in seconds

        Returns:
            Presigned URL string

        """
        url: str = await self._client.generate_presigned_url(
            'get_object',
            Params={'Bucket': self.bucket, 'Key': key},
            ExpiresIn=expires_in,
        )
        return url

    @property
    def _client(self) -> typing.Any:
        if self._s3 is None:
            raise errors.NotInitialized(self._state.value)
        return self._s3

    def _s3_client(self, config: settings.CloudStorage) -> typing.Any:
        """Create an S3 client context manager.

        Returns:
            Async context manager yielding an S3 client.

        """
        session = aioboto3.Session(
            aws_access_key_id=config.s3_access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.s3_region,
        )
        kwargs: dict[str, typing.Any] = {
            'config': aiobotocore_config.AioConfig(signature_version='s3v4'),
        }
        if config.s3_endpoint_url:
            kwargs['endpoint_url'] = config.s3_endpoint_url
        return session.client('s3', **kwargs)

    async def _connect(self, config: settings.CloudStorage) -> None:
        """Open the S3 client and probe the configured bucket."""
        self._exit_stack = contextlib.AsyncExitStack()
        self._s3 = await self._exit_stack.enter_async_context(
            self._s3_client(config),
        )
        try:
            await self.head_bucket()
        except PROBE_ERRORS as err:
            code = None
            if isinstance(err, botocore_exceptions.ClientError):
                code = err.response.get('Error', {}).get('Code')
            LOGGER.error(
                'Failed to access S3 bucket %s: %s',
                config.s3_bucket,
                err,
            )
            raise errors.ConnectivityError(
                typing.cast(str, config.s3_bucket),
                code,
            ) from err
        LOGGER.info('Successfully connected to S3 bucket: %s', self.bucket)

    async def _close_client(self) -> None:
        exit_stack, self._exit_stack = self._exit_stack, None
        self._s3 = None
        if exit_stack is not None:
            await exit_stack.aclose()


def _invalid_fields(err: pydantic.ValidationError) -> list[str]:
    """Return the setting names rejected by validation, in error order."""
    fields: list[str] = []
    for detail in err.errors():
        name = '.'.join(str(part) for part in detail['loc']) or '<root>'
        if name not in fields:
            fields.append(name)
    return fields
