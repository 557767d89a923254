"""
TopoTable - Datasource Engine
Runs dashboard queries: fetch the upstream document, extract the table, and
package one response per query refId.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from connectors.base import BaseFetcher, FetchError, get_fetcher
from core.config import DatasourceConfig, EngineConfig
from core.engine.converters import ConverterRegistry
from core.engine.errors import ConfigurationError, ExtractionTimeout
from core.engine.logger import get_logger
from core.engine.pipeline import RowPipeline, compile_query
from core.models.query import Query
from core.models.table import Table

# Registers the built-in fetchers
import connectors.rest_api.rest_connector  # noqa: F401

logger = get_logger(__name__)

STATUS_OK = 200
STATUS_BAD_REQUEST = 400
STATUS_BAD_GATEWAY = 502
STATUS_TIMEOUT = 504
STATUS_INTERNAL = 500


@dataclass
class DataResponse:
    """Outcome of one query: frames on success, a single message on failure."""
    frames: List[Dict[str, Any]] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)
    error: Optional[str] = None
    status: int = STATUS_OK

    @classmethod
    def failure(cls, status: int, message: str) -> "DataResponse":
        return cls(frames=[], error=message, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frames": self.frames,
            "notices": self.notices,
            "error": self.error,
            "status": self.status,
        }


@dataclass
class HealthResult:
    status: str  # ok/error
    message: str


class Datasource:
    """
    Datasource instance bound to one upstream base URL.
    Queries run concurrently; extraction itself runs in a worker thread.
    """

    def __init__(self, fetcher: BaseFetcher, engine_config: Optional[EngineConfig] = None,
                 registry: Optional[ConverterRegistry] = None):
        self.fetcher = fetcher
        self.config = engine_config or EngineConfig()
        self.pipeline = RowPipeline(
            registry=registry,
            workers=self.config.workers,
            strict=self.config.strict_conversion,
        )
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_queries)
        logger.info(f"Datasource initialized for {fetcher.base_url}")

    @classmethod
    def from_config(cls, ds_config: DatasourceConfig, engine_config: Optional[EngineConfig] = None) -> "Datasource":
        fetcher_cls = get_fetcher(ds_config.fetcher)
        if fetcher_cls is None:
            raise ConfigurationError(f"Unknown fetcher '{ds_config.fetcher}'", field="fetcher")
        fetcher = fetcher_cls(ds_config.base_url, ds_config.fetcher_options())
        return cls(fetcher, engine_config)

    async def close(self):
        await self.fetcher.disconnect()

    async def query_data(self, queries: Sequence[Query]) -> Dict[str, DataResponse]:
        """Execute each query independently and key the responses by refId."""
        responses = await asyncio.gather(*(self._guarded_query(q) for q in queries))
        return {q.ref_id: r for q, r in zip(queries, responses)}

    async def _guarded_query(self, query: Query) -> DataResponse:
        async with self._semaphore:
            return await self.query(query)

    async def query(self, query: Query) -> DataResponse:
        """Run a single query end to end."""
        qlog = logger.bind(ref_id=query.ref_id)
        qlog.debug(f"Query: uri {query.uri}, loopPath {query.loop_path}")

        # 1. Validate before any network traffic
        try:
            compile_query(query, self.pipeline.registry)
        except ConfigurationError as e:
            qlog.error(f"Invalid query: {e}")
            return DataResponse.failure(STATUS_BAD_REQUEST, str(e))

        # 2. Fetch
        try:
            document = await self.fetcher.fetch(query.uri)
        except FetchError as e:
            qlog.error(f"Fetch failed: {e}")
            return DataResponse.failure(STATUS_BAD_GATEWAY, str(e))
        except Exception as e:
            qlog.error(f"Fetcher error: {e}", exc_info=True)
            return DataResponse.failure(STATUS_INTERNAL, str(e))

        # 3. Extract
        try:
            table = await self.extract(document, query)
        except ConfigurationError as e:
            return DataResponse.failure(STATUS_BAD_REQUEST, str(e))
        except ExtractionTimeout as e:
            qlog.error(str(e))
            return DataResponse.failure(STATUS_TIMEOUT, str(e))
        except Exception as e:
            # Other refIds in the same request still get their responses
            qlog.error(f"Extraction failed: {e}", exc_info=True)
            return DataResponse.failure(STATUS_INTERNAL, str(e))

        qlog.info(f"query: values size {len(table)}", notices=len(table.notices))
        return DataResponse(frames=[table.to_frame()], notices=table.notices)

    async def extract(self, document: Any, query: Query) -> Table:
        """Run the CPU-bound pipeline off the event loop."""
        return await asyncio.to_thread(
            self.pipeline.run, document, query, self.config.timeout_seconds
        )

    async def check_health(self, probe: bool = False) -> HealthResult:
        """Report configuration status; optionally reach out to the base URL."""
        message = f"Data source is working. BaseUrl {self.fetcher.base_url}"
        if not self.fetcher.base_url:
            return HealthResult(status="error", message="BaseUrl is not configured")
        if probe:
            result = await self.fetcher.test_connection()
            if not result.success:
                return HealthResult(status="error", message=f"BaseUrl {self.fetcher.base_url} unreachable: {result.error_message}")
            message = f"{message} ({result.latency_ms:.0f} ms)"
        logger.debug(message)
        return HealthResult(status="ok", message=message)
