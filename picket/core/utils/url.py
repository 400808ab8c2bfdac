# picket/core/utils/url.py
"""Database URL helpers for log output."""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit


def mask_database_url(url: str) -> str:
    """Replace the password of a database URL with ``***``.

    URLs without credentials are returned unchanged. Anything urlsplit
    cannot handle is masked by string surgery around the last ``@``.
    """
    try:
        parts = urlsplit(url)
        if not parts.password:
            return url
        host = parts.netloc.rsplit('@', 1)[1]
        netloc = f'{parts.username}:***@{host}'
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    except ValueError:
        if '@' not in url:
            return url
        credentials, host = url.rsplit('@', 1)
        user_part = credentials.rsplit(':', 1)[0]
        return f'{user_part}:***@{host}'
