import posixpath

import pydantic

__all__ = [
    'CacheEntry',
    'CacheStatus',
    'SignedUrl',
    'StorageStatus',
]


class CacheEntry(pydantic.BaseModel):
    """An object committed to the cache by a successful store."""

    item_id: str
    key: str
    size: int | None = None
    content_type: str

    @pydantic.computed_field  # type: ignore[prop-decorator]
    @property
    def filename(self) -> str:
        return posixpath.basename(self.key)


class CacheStatus(pydantic.BaseModel):
    item_id: str
    key: str
    exists: bool


class SignedUrl(pydantic.BaseModel):
    item_id: str
    key: str
    url: str
    expires_in: int


class StorageStatus(pydantic.BaseModel):
    state: str
    enabled: bool
    bucket: str | None = None
    region: str | None = None
