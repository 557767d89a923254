"""
Unit tests for the row pipeline orchestrator
"""
import time

import pytest

from core.engine.converters import ConverterRegistry
from core.engine.errors import ConfigurationError, ExtractionTimeout
from core.engine.pipeline import RowPipeline, compile_query, extract_table
from core.models.query import Query


def make_query(columns, filters=None, loop_path="links", **extra):
    return Query.model_validate({
        "refId": "A",
        "uri": "/links",
        "loopPath": loop_path,
        "columns": columns,
        "filters": filters or [],
        **extra,
    })


def links_document(*sources):
    return {"links": [{"source": {"source-node": s}, "speed": 100 * (i + 1)} for i, s in enumerate(sources)]}


SOURCE_COLUMN = {"name": "source", "path": "source.source-node"}


def test_default_query_end_to_end(topology_document, topology_query):
    """Resolve, extract, convert, filter and emit the default topology query"""
    table = extract_table(topology_document, topology_query)

    assert table.column_names == ["source", "target"]
    assert table.rows == [
        {"source": "1.2.3.4", "target": "192.168.1.177"},
        {"source": "10.0.0.1", "target": "1.2.3.4"},
    ]
    assert [c.type for c in table.columns] == ["string", "string"]
    assert table.notices == []
    assert table.to_frame() == {
        "name": "response",
        "fields": [
            {"name": "source", "type": "string", "values": ["1.2.3.4", "10.0.0.1"]},
            {"name": "target", "type": "string", "values": ["192.168.1.177", "1.2.3.4"]},
        ],
    }


def test_passthrough_columns_keep_every_element():
    doc = links_document("a", "b", "c", "d")
    table = extract_table(doc, make_query([SOURCE_COLUMN]))
    assert len(table) == 4
    assert table.column_values("source") == ["a", "b", "c", "d"]


@pytest.mark.parametrize("loop_path", ["missing", "links[0]", "links[0].speed", "$[\"nope\"][3]"])
def test_loop_path_not_an_array_gives_empty_table(loop_path):
    table = extract_table(links_document("a"), make_query([SOURCE_COLUMN], loop_path=loop_path))
    assert table.rows == []
    assert table.column_names == ["source"]


def test_rerun_is_identical(topology_document, topology_query):
    pipeline = RowPipeline()
    first = pipeline.run(topology_document, topology_query)
    second = pipeline.run(topology_document, topology_query)
    assert first.to_dict() == second.to_dict()


def test_not_regex_match_filter_drops_rows():
    query = make_query(
        [SOURCE_COLUMN],
        filters=[{"field": "source", "when": "raw", "operation": "!regexMatch", "value": r"\d+:\d+"}],
    )
    table = extract_table(links_document("42:7", "router-1"), query)
    assert table.rows == [{"source": "router-1"}]
    assert table.dropped == 1


def test_regex_no_match_is_null_and_conversion_sees_null():
    column = {**SOURCE_COLUMN, "regexEnabled": True, "regex": r"router=(\d+)",
              "converterEnabled": True, "converter": "int2ip"}
    table = extract_table(links_document("router=16909060", "switch-1"), make_query([column]))
    assert table.column_values("source") == ["1.2.3.4", None]
    assert table.notices == []


def test_disabled_stages_are_ignored():
    column = {**SOURCE_COLUMN, "regexEnabled": False, "regex": r"(\d+)",
              "converterEnabled": False, "converter": "int2ip"}
    table = extract_table(links_document("router=1"), make_query([column]))
    assert table.column_values("source") == ["router=1"]


def test_conversion_error_projects_null_with_notice():
    column = {**SOURCE_COLUMN, "converter": "int2ip"}
    table = extract_table(links_document("16909060", "not-a-number"), make_query([column]))
    assert table.column_values("source") == ["1.2.3.4", None]
    assert len(table.notices) == 1
    assert "source" in table.notices[0]


def test_strict_mode_drops_rows_with_conversion_errors():
    column = {**SOURCE_COLUMN, "converter": "int2ip"}
    table = extract_table(links_document("16909060", "not-a-number"), make_query([column]), strict=True)
    assert table.rows == [{"source": "1.2.3.4"}]
    assert table.dropped == 1


def test_filter_at_disabled_conversion_stage_falls_back_to_raw():
    query = make_query(
        [SOURCE_COLUMN],
        filters=[{"field": "source", "when": "conversion", "operation": "equals", "value": "b"}],
    )
    assert extract_table(links_document("a", "b"), query).rows == [{"source": "b"}]


def test_filter_at_regex_stage_sees_capture():
    column = {**SOURCE_COLUMN, "regex": r"router=(\d+)", "converter": "int2ip"}
    query = make_query(
        [column],
        filters=[{"field": "source", "when": "regex", "operation": "equals", "value": "167772161"}],
    )
    table = extract_table(links_document("router=16909060", "router=167772161"), query)
    assert table.rows == [{"source": "10.0.0.1"}]


def test_filter_on_converted_value():
    column = {**SOURCE_COLUMN, "regex": r"router=(\d+)", "converter": "int2ip"}
    query = make_query(
        [column],
        filters=[{"field": "source", "when": "conversion", "operation": "regexMatch", "value": r"^10\."}],
    )
    table = extract_table(links_document("router=16909060", "router=167772161"), query)
    assert table.rows == [{"source": "10.0.0.1"}]


def test_numeric_columns_are_typed():
    table = extract_table(links_document("a", "b"), make_query([SOURCE_COLUMN, {"name": "speed", "path": "speed"}]))
    assert [c.type for c in table.columns] == ["string", "number"]
    assert table.column_values("speed") == [100, 200]


def test_sum_rewrites_column_with_total():
    columns = [SOURCE_COLUMN, {"name": "total", "path": "speed", "converter": "sum"}]
    table = extract_table(links_document("a", "b", "c"), make_query(columns))
    assert table.column_values("total") == [600, 600, 600]


def test_sum_runs_before_filters():
    """Aggregates cover every element; conversion-stage filters see the total"""
    columns = [SOURCE_COLUMN, {"name": "total", "path": "speed", "converter": "sum"}]
    filters = [
        {"field": "source", "operation": "!equals", "value": "a"},
        {"field": "total", "when": "conversion", "operation": "gt", "value": "500"},
    ]
    table = extract_table(links_document("a", "b", "c"), make_query(columns, filters))
    assert table.rows == [{"source": "b", "total": 600}, {"source": "c", "total": 600}]


def test_duplicate_column_name_overwrites():
    columns = [
        {"name": "node", "path": "source.source-node"},
        {"name": "speed", "path": "speed"},
        {"name": "node", "path": "speed"},
    ]
    table = extract_table(links_document("a"), make_query(columns))
    assert table.column_names == ["node", "speed"]
    assert table.rows == [{"node": 100, "speed": 100}]


def test_unknown_filter_field_never_matches():
    query = make_query([SOURCE_COLUMN], filters=[{"field": "ghost", "operation": "!equals", "value": "x"}])
    table = extract_table(links_document("a", "b"), query)
    assert table.rows == []
    assert table.dropped == 2
    assert any("ghost" in n for n in table.notices)


def test_or_filter_logic():
    filters = [
        {"field": "source", "operation": "equals", "value": "a"},
        {"field": "source", "operation": "equals", "value": "c"},
    ]
    query = make_query([SOURCE_COLUMN], filters, filterLogic="or")
    assert extract_table(links_document("a", "b", "c"), query).column_values("source") == ["a", "c"]


def test_non_object_elements():
    doc = {"names": ["r1", "r2"]}
    table = extract_table(doc, make_query([{"name": "name", "path": ""}], loop_path="names"))
    assert table.column_values("name") == ["r1", "r2"]


@pytest.mark.parametrize("columns,loop_path", [
    ([{"name": "x", "path": "a", "converter": "hex2mac"}], "links"),
    ([{"name": "x", "path": "a", "regex": "(unclosed"}], "links"),
    ([{"name": "x", "path": "a..b"}], "links"),
    ([{"name": "x", "path": "a"}], "links[oops]"),
])
def test_configuration_errors_raised_before_rows(columns, loop_path):
    with pytest.raises(ConfigurationError):
        extract_table(links_document("a"), make_query(columns, loop_path=loop_path))


def test_bad_filter_logic_index():
    query = make_query([SOURCE_COLUMN], [{"field": "source", "value": "a"}],
                       filterLogic={"op": "and", "terms": [0, 1]})
    with pytest.raises(ConfigurationError):
        compile_query(query)


def test_parallel_build_preserves_order():
    sources = [f"router={i}" for i in range(200)]
    column = {**SOURCE_COLUMN, "regex": r"router=(\d+)", "converter": "int2ip"}
    sequential = extract_table(links_document(*sources), make_query([column]))
    parallel = extract_table(links_document(*sources), make_query([column]), workers=4)
    assert parallel.rows == sequential.rows
    assert parallel.column_values("source")[:3] == ["0.0.0.0", "0.0.0.1", "0.0.0.2"]


def slow_registry(delay):
    registry = ConverterRegistry()

    def slow(value, row):
        time.sleep(delay)
        return value

    registry.register("slow", slow)
    return registry


def test_timeout_aborts_row_build():
    query = make_query([{**SOURCE_COLUMN, "converter": "slow"}])
    pipeline = RowPipeline(registry=slow_registry(0.05))
    with pytest.raises(ExtractionTimeout) as exc:
        pipeline.run(links_document("a", "b", "c", "d"), query, timeout=0.01)
    assert exc.value.rows_total == 4


def test_timeout_aborts_parallel_row_build():
    query = make_query([{**SOURCE_COLUMN, "converter": "slow"}])
    pipeline = RowPipeline(registry=slow_registry(0.2), workers=2)
    with pytest.raises(ExtractionTimeout):
        pipeline.run(links_document("a", "b", "c", "d", "e", "f"), query, timeout=0.05)


def test_oversized_integer_is_conversion_error_not_crash():
    column = {**SOURCE_COLUMN, "converter": "int2ip"}
    table = extract_table(links_document("16909060", "9" * 5000), make_query([column]))
    assert table.column_values("source") == ["1.2.3.4", None]
    assert len(table.notices) == 1


def test_leading_zero_values_stay_strings():
    doc = {"links": [{"id": "007"}, {"id": "0100"}]}
    table = extract_table(doc, make_query([{"name": "id", "path": "id"}]))
    assert [c.type for c in table.columns] == ["string"]
    assert table.column_values("id") == ["007", "0100"]


def counting_slow_registry(delay, calls):
    registry = ConverterRegistry()

    def slow(value, row):
        calls.append(value)
        time.sleep(delay)
        return value

    registry.register("slow", slow)
    return registry


def test_timeout_stops_between_columns():
    calls = []
    columns = [{"name": f"c{i}", "path": "speed", "converter": "slow"} for i in range(4)]
    pipeline = RowPipeline(registry=counting_slow_registry(0.05, calls))
    with pytest.raises(ExtractionTimeout):
        pipeline.run(links_document("a"), make_query(columns), timeout=0.01)
    assert len(calls) <= 1


def test_parallel_workers_stop_after_timeout():
    calls = []
    columns = [{"name": f"c{i}", "path": "speed", "converter": "slow"} for i in range(4)]
    pipeline = RowPipeline(registry=counting_slow_registry(0.1, calls), workers=2)
    with pytest.raises(ExtractionTimeout):
        pipeline.run(links_document("a", "b"), make_query(columns), timeout=0.03)
    time.sleep(0.3)
    # At most one column per worker started before the deadline; none after
    assert len(calls) <= 2
