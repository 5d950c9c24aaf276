from importlib import metadata

try:
    version = metadata.version('archive-cache')
except metadata.PackageNotFoundError:  # pragma: nocover
    version = '0.0.0'

__all__ = ['version']
