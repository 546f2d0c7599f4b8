"""Object key composition.

Keys are joined with POSIX path semantics:

    compute_key("files", "a/b.pdf")          -> "files/a/b.pdf"
    compute_key("", None, "report.pdf")      -> "report.pdf"
    compute_key("files", "x", "1.pdf", True) -> "files/x/<token>.pdf"
"""

import posixpath
import secrets

from serve_s3.errors import ConfigurationError

# 16 random bytes, URL-safe base64 encoded (22 characters)
_RANDOM_KEY_BYTES = 16


def random_token() -> str:
    """Return a fresh URL-safe random token for key basenames."""
    return secrets.token_urlsafe(_RANDOM_KEY_BYTES)


def randomize_key(key: str) -> str:
    """Replace the basename of ``key`` with a random token.

    The extension of the final segment and every parent segment are kept.

    Args:
        key: The object key to randomize.

    Returns:
        The randomized key.
    """
    dirname, basename = posixpath.split(key)
    _, ext = posixpath.splitext(basename)
    return posixpath.join(dirname, random_token() + ext)


def compute_key(
    base: str | None,
    path: str | None = None,
    form_filename: str | None = None,
    randomize: bool = False,
) -> str:
    """Compose the final object key.

    Args:
        base: Literal key or key prefix from the route configuration. A key
            produced by a resolver is passed here as well, with ``path`` and
            ``form_filename`` left empty, so it is used as-is.
        path: The route's ``path`` path-parameter, if any.
        form_filename: For uploads, the key derived from the form part.
        randomize: Replace the basename with a random token.

    Returns:
        The object key.

    Raises:
        ConfigurationError: If all of ``base``, ``path`` and
            ``form_filename`` are empty.
    """
    segments = [s for s in (base, path, form_filename) if s]
    if not segments:
        raise ConfigurationError('cannot resolve "key"')

    # a leading slash on a later segment must not discard the prefix
    key = posixpath.join(segments[0], *(s.lstrip("/") for s in segments[1:]))
    if randomize:
        key = randomize_key(key)
    return key
