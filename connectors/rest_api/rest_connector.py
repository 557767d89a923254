"""
TopoTable - REST API Fetcher
Fetches JSON documents from a network controller's REST API (OpenDaylight RESTCONF).
"""

import time
import asyncio
import httpx
from typing import Dict, Any, Optional

from connectors.base import BaseFetcher, ConnectionTestResult, FetchError, register_fetcher
from core.engine.logger import get_logger

log = get_logger(__name__)

RETRYABLE_STATUS = [429, 503]


@register_fetcher("rest_api")
class RESTFetcher(BaseFetcher):
    """
    Fetcher for JSON REST APIs.
    Options: verify_ssl, timeout, max_retries, retry_backoff, auth_type
    (none, basic, bearer), username, password, token, transport.
    """

    def __init__(self, base_url: str, options: Optional[Dict[str, Any]] = None):
        super().__init__(base_url, options)
        self.verify_ssl = self.options.get("verify_ssl", False)
        self.timeout = self.options.get("timeout", 15)
        self.max_retries = max(1, self.options.get("max_retries", 3))
        self.retry_backoff = self.options.get("retry_backoff", 2)

        # Auth Config
        self.auth_type = self.options.get("auth_type", "none")  # none, basic, bearer

        # Injected transport (tests, proxies)
        self.transport: Optional[httpx.AsyncBaseTransport] = self.options.get("transport")
        self.client: Optional[httpx.AsyncClient] = None

    def _get_auth_params(self) -> Dict[str, Any]:
        """Prepare authentication headers or basic auth tuple."""
        headers = {"Accept": "application/json"}

        if self.auth_type == "basic":
            user = self.options.get("username") or ""
            pwd = self.options.get("password") or ""
            return {"headers": headers, "auth": (user, pwd)}
        elif self.auth_type == "bearer":
            token = self.options.get("token") or ""
            headers["Authorization"] = f"Bearer {token}"

        return {"headers": headers}

    async def connect(self) -> bool:
        """Initialize the HTTP client."""
        if not self.client:
            self.client = httpx.AsyncClient(
                verify=self.verify_ssl,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            )
        self._is_connected = True
        return True

    async def disconnect(self):
        """Close the HTTP client."""
        if self.client:
            await self.client.aclose()
            self.client = None
        self._is_connected = False

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Internal helper for making requests with retry logic."""
        if not self.client:
            await self.connect()

        auth_params = self._get_auth_params()
        headers = kwargs.pop("headers", {})
        headers.update(auth_params["headers"])
        kwargs["headers"] = headers
        if "auth" not in kwargs and "auth" in auth_params:
            kwargs["auth"] = auth_params["auth"]

        for attempt in range(self.max_retries):
            try:
                response = await self.client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                if e.response.status_code in RETRYABLE_STATUS and attempt < self.max_retries - 1:
                    wait_time = (attempt + 1) * self.retry_backoff
                    log.warning(f"Transient error {e.response.status_code} for {url}. Retrying in {wait_time}s...")
                    await asyncio.sleep(wait_time)
                    continue
                raise FetchError(
                    f"HTTP {e.response.status_code} from {url}",
                    url=url,
                    status_code=e.response.status_code,
                ) from e
            except (httpx.RequestError, asyncio.TimeoutError) as e:
                if attempt < self.max_retries - 1:
                    wait_time = (attempt + 1) * self.retry_backoff
                    log.warning(f"Request error {str(e)} for {url}. Retrying in {wait_time}s...")
                    await asyncio.sleep(wait_time)
                    continue
                raise FetchError(f"Error in http get {url}: {e}", url=url) from e

        # Only reachable with max_retries < 1, which __init__ prevents
        raise FetchError(f"Max retries exceeded for {url}", url=url)

    async def fetch(self, uri: str) -> Any:
        """GET base_url + uri and decode the JSON body."""
        url = self.get_url(uri)
        log.debug(f"Performing request {url}")
        response = await self._request("GET", url)
        try:
            document = response.json()
        except ValueError as e:
            raise FetchError(f"Response from {url} is not valid JSON: {e}", url=url) from e
        log.debug(f"Fetched {len(response.content)} bytes from {url}")
        return document

    async def test_connection(self) -> ConnectionTestResult:
        """Test reachability of the base URL."""
        start_time = time.time()
        try:
            await self._request("GET", self.get_url("/"))
            latency = (time.time() - start_time) * 1000
            return ConnectionTestResult(success=True, latency_ms=latency)
        except FetchError as e:
            latency = (time.time() - start_time) * 1000
            log.error(f"Connection test failed for {self.base_url}: {str(e)}")
            return ConnectionTestResult(success=False, latency_ms=latency, error_message=str(e))
