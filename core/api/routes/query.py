"""
TopoTable - Query routes
Query execution, inline extraction and query editor metadata.
"""
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from core.api import presentation
from core.engine.datasource import Datasource
from core.models.query import DEFAULT_QUERY, Query

router = APIRouter(prefix="/api", tags=["query"])


class QueryRequest(BaseModel):
    queries: List[Query]


class ExtractRequest(BaseModel):
    document: Any = None
    query: Query


def get_datasource(request: Request) -> Datasource:
    return request.app.state.datasource


@router.post("/ds/query")
async def query_data(body: QueryRequest, datasource: Datasource = Depends(get_datasource)):
    """Run every query against the upstream API; one response per refId"""
    responses = await datasource.query_data(body.queries)
    return {"results": {ref_id: r.to_dict() for ref_id, r in responses.items()}}


@router.post("/extract")
async def extract(body: ExtractRequest, datasource: Datasource = Depends(get_datasource)):
    """
    Run the extraction engine on an inline document (no upstream fetch).
    ConfigurationError and ExtractionTimeout become 400 and 504 via the app handlers.
    """
    table = await datasource.extract(body.document, body.query)

    result = table.to_dict()
    result["frame"] = table.to_frame()
    return result


@router.get("/query/default")
async def default_query() -> Dict[str, Any]:
    """Query the editor starts from"""
    return DEFAULT_QUERY


@router.get("/options")
async def editor_options(datasource: Datasource = Depends(get_datasource)):
    """Selectable option lists for the query editor"""
    return {
        "conversionOptions": presentation.conversion_options(datasource.pipeline.registry),
        "whenOptions": presentation.when_options(),
        "filterOptions": presentation.filter_options(),
    }
