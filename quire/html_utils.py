"""HTML and URL helpers for Quire.

Functions:
    escape_html: Escape text for HTML and XML output.
    join_base_url: Prefix a site path with the configured ``base_url``.
"""

from __future__ import annotations

from markupsafe import escape


def escape_html(text: str) -> str:
    """Escape ``&``, ``<``, ``>`` and quotes, returning a plain string.

    Examples:
        >>> escape_html('Tom & "Jerry"')
        'Tom &amp; &#34;Jerry&#34;'
    """
    return str(escape(text))


def join_base_url(base_url: str, path: str) -> str:
    """Join a base URL and a site path without doubling slashes.

    An empty base URL yields a root-relative path.

    Examples:
        >>> join_base_url('https://example.com/', 'about/')
        'https://example.com/about/'
        >>> join_base_url('', 'about/')
        '/about/'
    """
    path = path if path.startswith("/") else f"/{path}"
    return f"{base_url.rstrip('/')}{path}"
