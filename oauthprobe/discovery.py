import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .mutator import parse_authorization_url
from .utils.http import HttpSession

logger = logging.getLogger(__name__)

OPENID_CONFIGURATION_PATH = "/.well-known/openid-configuration"
WEBFINGER_PATH = "/.well-known/webfinger"

OPENID_SUMMARY_KEYS = (
    'authorization_endpoint',
    'token_endpoint',
    'userinfo_endpoint',
    'jwks_uri',
    'registration_endpoint',
)


@dataclass
class DiscoveryResult:
    """Presence of one well-known discovery document."""
    name: str
    url: str
    exists: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    document: Any = None
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'url': self.url,
            'exists': self.exists,
            'status_code': self.status_code,
            'error': self.error,
            'document': self.document,
            'summary': self.summary
        }


def origin_of(url: str) -> str:
    """Return scheme://host[:port] of an absolute URL."""
    parts = parse_authorization_url(url)
    return f"{parts.scheme}://{parts.netloc.rpartition('@')[2]}"


def _summarize_openid(document: Any) -> Dict[str, Any]:
    if not isinstance(document, dict):
        return {}
    return {key: document[key] for key in OPENID_SUMMARY_KEYS if key in document}


def _summarize_webfinger(document: Any) -> Dict[str, Any]:
    if not isinstance(document, dict):
        return {}
    summary = {}
    if 'subject' in document:
        summary['subject'] = document['subject']
    links = document.get('links')
    if isinstance(links, list):
        summary['link_rels'] = [link.get('rel') for link in links if isinstance(link, dict)]
    return summary


class DiscoveryFetcher:
    """Fetches the OpenID configuration and WebFinger documents of an origin."""

    def __init__(self, session: HttpSession, webfinger_resource: str = 'acct:admin'):
        """
        Initialize the discovery fetcher.

        Args:
            session: Session used for both requests
            webfinger_resource: Fixed resource sent to the WebFinger endpoint
        """
        self.session = session
        self.webfinger_resource = webfinger_resource

    async def fetch_openid_configuration(self, origin: str) -> DiscoveryResult:
        url = f"{origin}{OPENID_CONFIGURATION_PATH}"
        return await self._fetch('openid_configuration', url, 'application/json', _summarize_openid)

    async def fetch_webfinger(self, origin: str) -> DiscoveryResult:
        url = f"{origin}{WEBFINGER_PATH}?resource={quote(self.webfinger_resource, safe=':@')}"
        return await self._fetch('webfinger', url, 'application/jrd+json, application/json', _summarize_webfinger)

    async def _fetch(self, name: str, url: str, accept: str, summarize) -> DiscoveryResult:
        """
        Fetch one discovery document.

        A 2xx response with a JSON body marks the document present. Any other
        status, an unparseable body or a transport failure marks it absent and
        keeps the status or error for the report.
        """
        try:
            response = await self.session.get(url, headers={'Accept': accept})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            message = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
            logger.warning(f"Discovery fetch failed for {url}: {message}")
            return DiscoveryResult(name=name, url=url, exists=False, error=message)

        if not 200 <= response.status_code < 300:
            logger.debug(f"{name} not present at {url}: HTTP {response.status_code}")
            return DiscoveryResult(name=name, url=url, exists=False, status_code=response.status_code)

        try:
            document = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.debug(f"{name} at {url} is not JSON: {e}")
            return DiscoveryResult(
                name=name,
                url=url,
                exists=False,
                status_code=response.status_code,
                error=f"Invalid JSON: {e}"
            )

        logger.info(f"{name} present at {url}")
        return DiscoveryResult(
            name=name,
            url=url,
            exists=True,
            status_code=response.status_code,
            document=document,
            summary=summarize(document)
        )
