"""
Shared fixtures for TopoTable tests
"""
import copy

import pytest

from core.models.query import Query, default_query
from tests.helpers import TOPOLOGY_DOCUMENT, TOPOLOGY_URI, FakeFetcher


@pytest.fixture
def topology_document():
    return copy.deepcopy(TOPOLOGY_DOCUMENT)


@pytest.fixture
def topology_query() -> Query:
    return default_query()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher({TOPOLOGY_URI: TOPOLOGY_DOCUMENT})
