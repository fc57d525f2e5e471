"""
Wrapper around httpx for credential-free, non-following probe requests
"""

import logging
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Dict, Optional
import httpx
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


def _blocking_cookie_jar() -> CookieJar:
    """Cookie jar that never stores or returns a cookie."""
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


class HttpSession:
    """
    Wrapper around httpx.AsyncClient for probe traffic.

    Redirects are never followed and no cookies are stored or sent, so one
    probe response cannot leak state into the next request.
    """

    def __init__(self,
                 timeout: float = 15.0,
                 verify_ssl: bool = True,
                 headers: Optional[Dict[str, str]] = None,
                 proxy: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize HTTP session.

        Args:
            timeout: Request timeout in seconds
            verify_ssl: Whether to verify SSL certificates
            headers: Default headers to include in requests
            proxy: Optional proxy URL for all requests
            transport: Optional transport, used to replace the network in tests
        """
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.default_headers = headers or {}
        self.proxy = proxy
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the HTTP client."""
        if self._client is None:
            kwargs = {}
            if self.transport is not None:
                kwargs['transport'] = self.transport
            elif self.proxy:
                kwargs['proxy'] = self.proxy

            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify_ssl,
                follow_redirects=False,
                headers=self.default_headers,
                cookies=_blocking_cookie_jar(),
                **kwargs
            )

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        """
        Make a single GET request without retries.

        Args:
            url: Target URL, sent as given
            headers: Extra request headers

        Returns:
            httpx.Response object, including 3xx responses

        Raises:
            httpx.HTTPError: On transport failure
            httpx.InvalidURL: If httpx rejects the URL
        """
        if not self._client:
            await self.start()

        logger.debug(f"GET {url}")
        response = await self._client.get(url, headers=headers)
        logger.debug(f"Response: {response.status_code} for GET {url}")
        return response


@asynccontextmanager
async def create_session(**kwargs):
    """Create an HTTP session as an async context manager."""
    session = HttpSession(**kwargs)
    try:
        await session.start()
        yield session
    finally:
        await session.close()
