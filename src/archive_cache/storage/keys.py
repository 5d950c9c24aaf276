"""Object key derivation.

Two shapes of key are produced:

- Archive keys, built from an opaque item id with a fixed pattern
  (``archives/<item_id>.zip``).
- Sanitized keys, built from a free-form filename. The body is reduced to
  lowercase alphanumerics separated by dashes, forward slashes are kept as
  path separators, and the extension is preserved as a lowercase ``.ext``
  suffix.

The mapping is lossy: ``"My Book!"`` and ``"my book?"`` produce the same
key. Callers that need distinct objects must supply distinct names.

"""

import re

from . import errors

ARCHIVE_EXTENSION = '.zip'

_UNSAFE_CHARS = re.compile(r'[^a-zA-Z0-9\s/]')
_WHITESPACE_RUN = re.compile(r'\s+')
_SEPARATOR_PADDING = re.compile(r'\s*/\s*')
_UNSAFE_EXTENSION_CHARS = re.compile(r'[^a-z0-9.]')


def split_extension(name: str) -> tuple[str, str]:
    """Split ``name`` into body and extension at the last dot.

    The extension keeps its leading dot. A name without a dot, or whose
    only dot is the first character, has no extension.

    """
    index = name.rfind('.')
    if index <= 0:
        return name, ''
    return name[:index], name[index:]


def replace_unsafe(body: str) -> str:
    """Replace every char that is not an ASCII letter, digit, whitespace
    or forward slash with a space."""
    return _UNSAFE_CHARS.sub(' ', body)


def collapse_whitespace(text: str) -> str:
    """Trim, collapse whitespace runs and unpad path separators."""
    text = _WHITESPACE_RUN.sub(' ', text.strip())
    return _SEPARATOR_PADDING.sub('/', text)


def kebab_case(text: str) -> str:
    return text.lower().replace(' ', '-')


def strip_leading_slash(text: str) -> str:
    # Keys must never begin with a separator
    return text.lstrip('/')


def sanitize_extension(ext: str) -> str:
    return _UNSAFE_EXTENSION_CHARS.sub('', ext.lower())


def safe_key(filename: str) -> str:
    """Convert an arbitrary filename into an object-store-safe key.

    May return an empty string, or a bare extension such as ``.wav``, when
    the name has no alphanumeric content; see :func:`require_usable`.

    """
    body, ext = split_extension(filename)
    body = replace_unsafe(body)
    body = collapse_whitespace(body)
    body = kebab_case(body)
    body = strip_leading_slash(body)
    return body + sanitize_extension(ext)


def archive_key(item_id: str, prefix: str = 'archives') -> str:
    """Return the fixed-pattern key for an item's cached archive."""
    item_id = item_id.strip()
    if not item_id:
        raise errors.InvalidKey(item_id, 'item id is empty')
    if prefix:
        return f'{prefix}/{item_id}{ARCHIVE_EXTENSION}'
    return f'{item_id}{ARCHIVE_EXTENSION}'


def derive_key(
    item_id: str,
    filename: str | None = None,
    prefix: str = 'archives',
) -> str:
    """Derive the key for an item.

    Without a filename the archive key is returned; with one, the key is
    the sanitized filename.

    """
    if filename is None:
        return archive_key(item_id, prefix)
    return safe_key(filename)


def require_usable(key: str, source: str) -> str:
    """Reject keys whose final path segment has an empty body.

    Raises:
        InvalidKey: If ``key`` is empty, ends in a separator, or its last
            segment is only an extension.

    """
    if not key:
        raise errors.InvalidKey(source, 'no usable characters')
    name = key.rsplit('/', 1)[-1]
    if not name:
        raise errors.InvalidKey(source, 'file name is empty')
    if name.startswith('.'):
        raise errors.InvalidKey(source, 'name has nothing before extension')
    return key
