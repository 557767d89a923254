"""
TopoTable - Document Fetcher Base Module
Defines the abstract base class and registry for upstream document fetchers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Any, Optional, Type


class FetchError(Exception):
    """Upstream document could not be fetched or parsed."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


@dataclass
class ConnectionTestResult:
    """Result of a connection test attempt."""
    success: bool
    latency_ms: float
    error_message: Optional[str] = None


class BaseFetcher(ABC):
    """
    Abstract Base Class for document fetchers.
    A fetcher turns a query URI into a parsed JSON document; it owns retries,
    authentication and transport concerns so the extraction engine has none.
    """

    def __init__(self, base_url: str, options: Optional[Dict[str, Any]] = None):
        self.base_url = base_url or ""
        self.options = options or {}
        self._is_connected = False

    @abstractmethod
    async def connect(self) -> bool:
        """Prepare the underlying client."""
        pass

    @abstractmethod
    async def disconnect(self):
        """Release the underlying client."""
        pass

    @abstractmethod
    async def fetch(self, uri: str) -> Any:
        """Fetch `uri` relative to the base URL and return parsed JSON. Raises FetchError."""
        pass

    @abstractmethod
    async def test_connection(self) -> ConnectionTestResult:
        """Test if the upstream API is reachable."""
        pass

    def get_url(self, uri: str) -> str:
        """Upstream URL for a query URI (plain concatenation)."""
        return f"{self.base_url}{uri or ''}"

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()


# Fetcher Registry
_FETCHER_REGISTRY: Dict[str, Type[BaseFetcher]] = {}


def register_fetcher(name: str):
    """Decorator to register a fetcher class in the registry."""
    def decorator(cls: Type[BaseFetcher]):
        _FETCHER_REGISTRY[name] = cls
        return cls
    return decorator


def get_fetcher(name: str) -> Optional[Type[BaseFetcher]]:
    """Retrieve a fetcher class by its registered name."""
    return _FETCHER_REGISTRY.get(name)


def list_fetchers() -> List[str]:
    """Return a list of all registered fetcher names."""
    return list(_FETCHER_REGISTRY.keys())
