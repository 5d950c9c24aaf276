"""Exceptions raised by the archive cache storage layer.

A missing object is not an error: lookups report it as ``False`` or
``None``.

"""

import typing


class StorageError(Exception):
    """Base class for storage layer failures."""


class ConfigurationError(StorageError):
    """Raised when cloud storage settings are invalid or incomplete."""

    def __init__(
        self,
        missing: typing.Sequence[str],
        invalid: typing.Sequence[str] = (),
    ) -> None:
        self.missing = list(missing)
        self.invalid = list(invalid)
        problems = []
        if self.missing:
            problems.append(
                'Cloud storage is enabled but missing required settings: '
                + ', '.join(self.missing)
            )
        if self.invalid:
            problems.append(
                'Invalid cloud storage settings: ' + ', '.join(self.invalid)
            )
        super().__init__('; '.join(problems))


class ConnectivityError(StorageError):
    """Raised when the bucket reachability probe fails."""

    def __init__(self, bucket: str, code: str | None = None) -> None:
        self.bucket = bucket
        self.code = code
        message = f'Unable to access bucket {bucket!r}'
        if code:
            message = f'{message} ({code})'
        super().__init__(message)


class NotInitialized(StorageError):
    """Raised when an operation is attempted before storage is ready."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f'Cloud storage is not available (state: {state})')


class InvalidKey(StorageError, ValueError):
    """Raised when an item id or filename cannot produce a usable key."""

    def __init__(self, value: str, reason: str) -> None:
        self.value = value
        super().__init__(f'Cannot derive a key from {value!r}: {reason}')


class UploadError(StorageError):
    """Raised when storing an object fails."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f'Failed to store {key!r}')


class SignError(StorageError):
    """Raised when a signed URL cannot be produced for an object."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f'Failed to sign a URL for {key!r}')
