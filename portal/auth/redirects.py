"""
Redirect target validation for the captive portal.

Grant URLs come from the access point as query parameters and come back
through the provider's form post, so both are client controlled. Every
redirect to such a value is checked here first.
"""

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def _has_unsafe_characters(url: str) -> bool:
    # Browsers read "\" as "/" and drop tabs/newlines, so the host they see
    # can differ from the one urlsplit reports.
    return any(c == "\\" or c.isspace() or ord(c) < 0x20 or ord(c) == 0x7f for c in url)


def is_valid_redirect_domain(url: str, trusted_domain: str) -> bool:
    """
    Check that a URL's host is the trusted domain or one of its subdomains.

    ``evil-network-auth.com`` does not match ``network-auth.com``; only an
    exact host or a ``.network-auth.com`` suffix does.

    Args:
        url: Candidate redirect URL
        trusted_domain: Configured grant domain (e.g. network-auth.com)

    Returns:
        True if the host is trusted, False otherwise (including any URL that
        cannot be parsed)
    """
    if not isinstance(url, str) or not url or not trusted_domain:
        return False

    if _has_unsafe_characters(url):
        return False

    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return False

    if not hostname:
        return False

    domain = trusted_domain.lower().strip(".")
    return hostname == domain or hostname.endswith("." + domain)


def is_http_url(url: str) -> bool:
    """True if the URL uses the http or https scheme."""
    try:
        return urlsplit(url).scheme in ("http", "https")
    except ValueError:
        return False


def build_success_redirect(base_grant_url: str, user_continue_url: str) -> str:
    """
    Append the guest's continue URL to the grant URL.

    The access point reads it back from the ``continue_url`` query
    parameter once the device has been admitted.
    """
    parts = urlsplit(base_grant_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append(("continue_url", user_continue_url))
    return urlunsplit(parts._replace(query=urlencode(query)))
