import asyncio
import logging.config
import pathlib
import tomllib
import typing
from importlib import resources

import typer
import uvicorn

from archive_cache import settings, storage, version

main = typer.Typer()


class UvicornParameters(typing.TypedDict):
    factory: bool
    host: str
    log_config: dict[str, typing.Any]
    port: int
    reload: typing.NotRequired[bool]
    reload_dirs: typing.NotRequired[list[str]]
    reload_excludes: typing.NotRequired[list[str]]
    proxy_headers: typing.NotRequired[bool]
    headers: typing.NotRequired[list[tuple[str, str]]]
    date_header: typing.NotRequired[bool]
    server_header: typing.NotRequired[bool]
    # Uploads may take minutes; keep idle connections open long enough
    timeout_keep_alive: int


def load_log_config() -> dict[str, typing.Any]:
    log_config_file = resources.files('archive_cache') / 'log-config.toml'
    return tomllib.loads(log_config_file.read_text())


@main.command()
def serve(
    *,
    dev: bool = False,
) -> None:
    """Start the archive cache HTTP server"""
    config = settings.ServerConfig()
    log_config = load_log_config()

    params: UvicornParameters = {
        'factory': True,
        'host': config.host,
        'port': config.port,
        'log_config': log_config,
        'proxy_headers': True,
        'headers': [('Server', f'archive-cache/{version}')],
        'date_header': True,
        'server_header': False,
        'timeout_keep_alive': 300,
    }

    if dev or config.environment == 'development':
        loggers = typing.cast(
            'dict[str, dict[str, object]]',
            log_config.setdefault('loggers', {}),
        )
        loggers.setdefault('archive_cache', {})
        loggers['archive_cache']['level'] = 'DEBUG'

        params.update(
            {
                'reload': True,
                'reload_dirs': [
                    str(pathlib.Path.cwd() / 'src' / 'archive_cache')
                ],
                'reload_excludes': ['**/*.pyc'],
            }
        )

    uvicorn.run('archive_cache.app:create_app', **params)


@main.command()
def check() -> None:
    """Validate storage settings and probe the configured bucket."""
    logging.config.dictConfig(load_log_config())
    asyncio.run(_check_async())


async def _check_async() -> None:
    try:
        state = await storage.initialize()
    except storage.StorageError as e:
        typer.echo(f'✗ {e}', err=True)
        raise typer.Exit(code=1) from e
    try:
        status = storage.status()
        if state is storage.ConnectionState.disabled:
            typer.echo('⚠ Cloud storage is disabled')
            return
        typer.echo(
            f'✓ Connected to bucket {status.bucket} ({status.region})'
        )
    finally:
        await storage.aclose()


@main.command()
def store(
    item_id: str,
    path: typing.Annotated[
        pathlib.Path,
        typer.Argument(exists=True, dir_okay=False, readable=True),
    ],
    filename: typing.Annotated[
        str | None,
        typer.Option(help='Store under this filename instead of the archive'),
    ] = None,
    content_type: typing.Annotated[
        str | None,
        typer.Option(help='MIME type of the file'),
    ] = None,
) -> None:
    """Offload a local file to the cache and print its key."""
    logging.config.dictConfig(load_log_config())
    asyncio.run(_store_async(item_id, path, filename, content_type))


async def _store_async(
    item_id: str,
    path: pathlib.Path,
    filename: str | None,
    content_type: str | None,
) -> None:
    try:
        await storage.initialize()
        entry = await storage.store(
            item_id,
            path,
            filename=filename,
            content_type=content_type,
        )
    except storage.StorageError as e:
        typer.echo(f'✗ {e}', err=True)
        raise typer.Exit(code=1) from e
    finally:
        await storage.aclose()
    typer.echo(entry.key)


@main.command()
def url(
    item_id: str,
    filename: typing.Annotated[
        str | None,
        typer.Option(help='Look up this filename instead of the archive'),
    ] = None,
    expires_in: typing.Annotated[
        int | None,
        typer.Option(min=1, max=settings.MAX_SIGNED_URL_EXPIRY),
    ] = None,
) -> None:
    """Print a signed URL for a cached item."""
    logging.config.dictConfig(load_log_config())
    asyncio.run(_url_async(item_id, filename, expires_in))


async def _url_async(
    item_id: str,
    filename: str | None,
    expires_in: int | None,
) -> None:
    try:
        await storage.initialize()
        signed = await storage.signed_url(item_id, filename, expires_in)
    except storage.StorageError as e:
        typer.echo(f'✗ {e}', err=True)
        raise typer.Exit(code=1) from e
    finally:
        await storage.aclose()
    if signed is None:
        typer.echo(f'✗ Item {item_id!r} is not cached', err=True)
        raise typer.Exit(code=1)
    typer.echo(signed)
