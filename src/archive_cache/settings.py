import pydantic
import pydantic_settings

MIB = 1024 * 1024

# Upper bound imposed by SigV4 query-string authentication
MAX_SIGNED_URL_EXPIRY = 604800
DEFAULT_SIGNED_URL_EXPIRY = 3600


class CloudStorage(pydantic_settings.BaseSettings):
    """S3-compatible object storage used as the archive cache tier."""

    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix='CLOUD_STORAGE_',
        case_sensitive=False,
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )

    enabled: bool = False
    s3_region: str | None = None
    s3_bucket: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: pydantic.SecretStr | None = None
    s3_endpoint_url: str | None = None

    archive_prefix: str = 'archives'
    archive_content_type: str = 'application/zip'
    signed_url_expiry: int = pydantic.Field(
        default=DEFAULT_SIGNED_URL_EXPIRY,
        ge=1,
        le=MAX_SIGNED_URL_EXPIRY,
        description='Default lifetime of signed URLs, in seconds',
    )

    # S3 rejects multipart parts smaller than 5 MiB (except the last)
    multipart_chunk_size: int = pydantic.Field(default=8 * MIB, ge=5 * MIB)
    multipart_concurrency: int = pydantic.Field(default=4, ge=1)

    @pydantic.field_validator(
        's3_region',
        's3_bucket',
        's3_access_key',
        's3_endpoint_url',
        mode='before',
    )
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        """Treat empty and whitespace-only values as unset."""
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @pydantic.field_validator('s3_secret_key', mode='before')
    @classmethod
    def blank_secret_to_none(cls, value: object) -> object:
        if isinstance(value, pydantic.SecretStr):
            value = value.get_secret_value()
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @pydantic.field_validator('archive_prefix')
    @classmethod
    def normalize_prefix(cls, value: str) -> str:
        return value.strip().strip('/')

    def missing_fields(self) -> list[str]:
        """Return the names of required S3 fields that are not set.

        Only meaningful when ``enabled`` is true; the order matches the
        order in which an operator would usually fill them in.

        """
        required = {
            's3_region': self.s3_region,
            's3_bucket': self.s3_bucket,
            's3_access_key': self.s3_access_key,
            's3_secret_key': self.s3_secret_key,
        }
        return [name for name, value in required.items() if value is None]

    @property
    def secret_key(self) -> str | None:
        if self.s3_secret_key is None:
            return None
        return self.s3_secret_key.get_secret_value()


class ServerConfig(pydantic_settings.BaseSettings):
    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix='ARCHIVE_CACHE_',
        case_sensitive=False,
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )
    environment: str = 'development'
    host: str = 'localhost'
    port: int = 8000
