"""
TopoTable - Row Pipeline Orchestrator
Turns a parsed JSON document plus a Query into a flat, ordered Table.

Each element found at the loop path goes through
Resolved -> Extracted -> Converted -> Filtered -> Emitted | Dropped.
Row building (phase 1) may run on a thread pool; aggregate converters,
filtering and emission (phase 2) run once, in source order.
"""
import re
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern, Tuple

from core.engine import filters as filter_eval
from core.engine.converters import (
    Converter, ConverterRegistry, INTEGER_RE, default_registry, parse_number
)
from core.engine.errors import ConfigurationError, ConversionError, ExtractionTimeout
from core.engine.logger import get_logger
from core.engine.path_resolver import parse_path, resolve
from core.engine.regex_extractor import compile_pattern, extract, to_text
from core.models.query import ColumnSpec, Query
from core.models.table import ColumnMeta, Row, StagedValue, Table

log = get_logger(__name__)

LEADING_ZERO_RE = re.compile(r"[+-]?0\d")


class DeadlinePassed(Exception):
    """Internal signal: a row build noticed the run deadline had passed."""


@dataclass(frozen=True)
class ColumnPlan:
    column: ColumnSpec
    pattern: Optional[Pattern] = None
    converter: Optional[Converter] = None

    @property
    def deferred(self) -> bool:
        return self.converter is not None and self.converter.is_aggregate


@dataclass(frozen=True)
class CompiledQuery:
    query: Query
    columns: Tuple[ColumnPlan, ...]
    unknown_fields: Tuple[str, ...] = ()


def compile_query(query: Query, registry: Optional[ConverterRegistry] = None) -> CompiledQuery:
    """
    Validate everything that can fail before touching rows: paths, regexes,
    converter names and filter logic. Raises ConfigurationError.
    """
    registry = registry or default_registry()

    try:
        parse_path(query.loop_path)
    except ConfigurationError as e:
        raise ConfigurationError(f"Invalid loop path: {e}", field="loopPath") from e

    plans = []
    for column in query.columns:
        try:
            parse_path(column.path)
            pattern = compile_pattern(column.regex) if column.uses_regex else None
            converter = registry.get(column.converter) if column.uses_converter else None
        except ConfigurationError as e:
            raise ConfigurationError(f"Column '{column.name}': {e}", field=column.name) from e
        plans.append(ColumnPlan(column=column, pattern=pattern, converter=converter))

    names = set(query.column_names())
    unknown = []
    for index, spec in enumerate(query.filters):
        try:
            filter_eval.validate_filter(spec)
        except ConfigurationError as e:
            raise ConfigurationError(f"Filter #{index} on '{spec.field}': {e}", field="filters") from e
        if spec.field not in names and spec.field not in unknown:
            unknown.append(spec.field)
    filter_eval.validate_logic(query.filter_logic, len(query.filters))

    return CompiledQuery(query=query, columns=tuple(plans), unknown_fields=tuple(unknown))


class RowPipeline:
    """
    Stateless between runs: every call to run() starts from the query and
    document alone, so identical inputs give identical tables.
    """

    def __init__(self, registry: Optional[ConverterRegistry] = None, workers: int = 1, strict: bool = False):
        self.registry = registry or default_registry()
        self.workers = max(1, workers)
        self.strict = strict

    def run(self, document: Any, query: Query, timeout: Optional[float] = None) -> Table:
        compiled = compile_query(query, self.registry)
        deadline = time.monotonic() + timeout if timeout else None

        elements = resolve(document, query.loop_path)
        if not isinstance(elements, list):
            log.info(f"Loop path '{query.loop_path}' did not resolve to an array", ref_id=query.ref_id)
            return Table(columns=self._column_meta(compiled, []))

        log.debug(f"Looping on {query.loop_path}", ref_id=query.ref_id, elements=len(elements))

        # Phase 1: per-row build
        staged_rows = self._build_rows(compiled, elements, timeout, deadline)

        # Phase 2: aggregate finalize, filter, emit
        self._finalize_aggregates(compiled, staged_rows)
        table = self._emit(compiled, staged_rows)

        log.info(
            "Extraction complete",
            ref_id=query.ref_id,
            rows=len(table.rows),
            dropped=table.dropped,
        )
        return table

    # ─── Phase 1 ───

    def build_row(self, compiled: CompiledQuery, element: Any,
                  deadline: Optional[float] = None) -> List[StagedValue]:
        """
        Resolve, extract and (per-row) convert every column of one element.
        Raises DeadlinePassed between columns once the deadline is behind us.
        """
        staged: List[StagedValue] = []
        row: Row = {}
        for plan in compiled.columns:
            if deadline is not None and time.monotonic() > deadline:
                raise DeadlinePassed()
            raw = to_text(resolve(element, plan.column.path))
            regex = extract(raw, plan.pattern) if plan.pattern is not None else raw
            conversion = regex
            if plan.converter is not None and not plan.deferred:
                try:
                    conversion = self.registry.convert(plan.converter.name, regex, row)
                except ConversionError as e:
                    log.debug(f"Conversion failed for column '{plan.column.name}': {e}")
                    conversion = e
            value = StagedValue(raw=raw, regex=regex, conversion=conversion)
            staged.append(value)
            row[plan.column.name] = value
        return staged

    def _build_rows(self, compiled: CompiledQuery, elements: List[Any],
                    timeout: Optional[float], deadline: Optional[float]) -> List[List[StagedValue]]:
        if self.workers > 1 and len(elements) > 1:
            return self._build_rows_parallel(compiled, elements, timeout, deadline)

        rows = []
        try:
            for element in elements:
                if deadline is not None and time.monotonic() > deadline:
                    raise DeadlinePassed()
                rows.append(self.build_row(compiled, element, deadline))
        except DeadlinePassed:
            raise ExtractionTimeout(timeout, len(rows), len(elements))
        return rows

    def _build_rows_parallel(self, compiled: CompiledQuery, elements: List[Any],
                             timeout: Optional[float], deadline: Optional[float]) -> List[List[StagedValue]]:
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="topotable-row")
        rows: List[List[StagedValue]] = []
        try:
            remaining = max(0.0, deadline - time.monotonic()) if deadline is not None else None
            # map() yields in submission order regardless of completion order.
            # Workers still running at the timeout stop at their next column.
            for staged in executor.map(lambda e: self.build_row(compiled, e, deadline), elements, timeout=remaining):
                rows.append(staged)
        except (FuturesTimeout, DeadlinePassed):
            raise ExtractionTimeout(timeout, len(rows), len(elements))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return rows

    # ─── Phase 2 ───

    def _finalize_aggregates(self, compiled: CompiledQuery, staged_rows: List[List[StagedValue]]):
        for index, plan in enumerate(compiled.columns):
            if not plan.deferred:
                continue
            total = self.registry.aggregate(plan.converter.name, [row[index].regex for row in staged_rows])
            for row in staged_rows:
                row[index].conversion = total

    def _emit(self, compiled: CompiledQuery, staged_rows: List[List[StagedValue]]) -> Table:
        query = compiled.query
        notices = [f"Filter on unknown column '{name}' never matches" for name in compiled.unknown_fields]
        for name in compiled.unknown_fields:
            log.warning(f"Filter references unknown column '{name}'", ref_id=query.ref_id)

        errors: Dict[str, List[ConversionError]] = {}
        out_rows: List[Dict[str, Any]] = []
        dropped = 0

        for staged in staged_rows:
            row: Row = {}
            for plan, value in zip(compiled.columns, staged):
                row[plan.column.name] = value

            failed = [(n, v.conversion) for n, v in row.items() if isinstance(v.conversion, ConversionError)]
            if self.strict and failed:
                dropped += 1
                continue

            if not filter_eval.apply_filters(query.filters, row, query.filter_logic):
                dropped += 1
                continue

            for name, error in failed:
                errors.setdefault(name, []).append(error)
            out_rows.append({
                name: (None if isinstance(v.conversion, ConversionError) else v.conversion)
                for name, v in row.items()
            })

        for name, column_errors in errors.items():
            notices.append(
                f"Column '{name}': {len(column_errors)} value(s) could not be converted ({column_errors[0]})"
            )
        if self.strict:
            notices.extend(self._strict_notices(compiled, staged_rows))

        columns = self._column_meta(compiled, out_rows)
        for meta in columns:
            if meta.type == "number":
                for row in out_rows:
                    row[meta.name] = _to_number(row[meta.name])

        return Table(columns=columns, rows=out_rows, notices=notices, dropped=dropped)

    def _strict_notices(self, compiled: CompiledQuery, staged_rows: List[List[StagedValue]]) -> List[str]:
        count = sum(1 for staged in staged_rows if any(isinstance(v.conversion, ConversionError) for v in staged))
        if not count:
            return []
        return [f"{count} row(s) dropped because of conversion errors"]

    @staticmethod
    def _column_meta(compiled: CompiledQuery, rows: List[Dict[str, Any]]) -> List[ColumnMeta]:
        # Duplicate names keep the position of their first declaration
        names = list(dict.fromkeys(compiled.query.column_names()))
        meta = []
        for name in names:
            values = [row[name] for row in rows if row.get(name) is not None]
            numeric = bool(values) and all(_is_plain_number(v) for v in values)
            meta.append(ColumnMeta(name=name, type="number" if numeric else "string"))
        return meta


def _is_plain_number(value: Any) -> bool:
    # "007" is an identifier, not seven: casting it would lose the zeros
    if LEADING_ZERO_RE.match(str(value).strip()):
        return False
    return parse_number(value) is not None


def _to_number(value: Any) -> Any:
    if value is None:
        return None
    text = str(value).strip()
    if INTEGER_RE.fullmatch(text):
        return int(text)
    return float(text)


def extract_table(document: Any, query: Query, registry: Optional[ConverterRegistry] = None,
                  timeout: Optional[float] = None, workers: int = 1, strict: bool = False) -> Table:
    """Run the full pipeline once. See RowPipeline."""
    return RowPipeline(registry=registry, workers=workers, strict=strict).run(document, query, timeout=timeout)
