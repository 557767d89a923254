"""
Test helpers shared across TopoTable test modules
"""
import copy
from typing import Any, Dict, Optional

from connectors.base import BaseFetcher, ConnectionTestResult, FetchError

TOPOLOGY_URI = "/rests/data/network-topology:network-topology"

TOPOLOGY_DOCUMENT = {
    "network-topology:network-topology": {
        "topology": [
            {
                "topology-id": "flow:1",
                "link": [
                    {
                        "link-id": "link-1",
                        "speed": 1000,
                        "source": {"source-node": "openflow:router=16909060", "source-tp": "eth0"},
                        "destination": {"dest-node": "router=3232235953", "dest-tp": "eth1"},
                    },
                    {
                        "link-id": "link-2",
                        "speed": 10000,
                        "source": {"source-node": "router=167772161", "source-tp": "eth2"},
                        "destination": {"dest-node": "router=16909060", "dest-tp": "eth3"},
                    },
                ],
            }
        ]
    }
}


class FakeFetcher(BaseFetcher):
    """In-memory fetcher serving canned documents by URI."""

    def __init__(self, documents: Optional[Dict[str, Any]] = None, base_url: str = "http://odl.test:8181"):
        super().__init__(base_url)
        self.documents = documents or {}
        self.calls = []

    async def connect(self) -> bool:
        self._is_connected = True
        return True

    async def disconnect(self):
        self._is_connected = False

    async def fetch(self, uri: str) -> Any:
        self.calls.append(uri)
        if uri not in self.documents:
            raise FetchError(f"HTTP 404 from {self.get_url(uri)}", url=self.get_url(uri), status_code=404)
        return copy.deepcopy(self.documents[uri])

    async def test_connection(self) -> ConnectionTestResult:
        return ConnectionTestResult(success=True, latency_ms=1.0)
