"""
TopoTable - Filter Predicate Evaluator
Evaluates filter rules against a row's staged values and combines the results.
"""
from typing import Callable, Dict, Sequence

from core.engine.converters import parse_number
from core.engine.errors import ConfigurationError
from core.engine.regex_extractor import compile_pattern
from core.models.query import FilterExpression, FilterLogic, FilterOperation, FilterSpec
from core.models.table import Row, StagedScalar


def _equals(value: StagedScalar, spec: FilterSpec) -> bool:
    return isinstance(value, str) and value == spec.value


def _not_equals(value: StagedScalar, spec: FilterSpec) -> bool:
    return not _equals(value, spec)


def _compare(value: StagedScalar, spec: FilterSpec, op: Callable[[float, float], bool]) -> bool:
    left = parse_number(value)
    right = parse_number(spec.value)
    if left is None or right is None:
        return False
    return op(left, right)


def _greater_than(value: StagedScalar, spec: FilterSpec) -> bool:
    return _compare(value, spec, lambda a, b: a > b)


def _less_than(value: StagedScalar, spec: FilterSpec) -> bool:
    return _compare(value, spec, lambda a, b: a < b)


def _regex_match(value: StagedScalar, spec: FilterSpec) -> bool:
    if not isinstance(value, str):
        return False
    return compile_pattern(spec.value).search(value) is not None


def _not_regex_match(value: StagedScalar, spec: FilterSpec) -> bool:
    return not _regex_match(value, spec)


OPERATIONS: Dict[FilterOperation, Callable[[StagedScalar, FilterSpec], bool]] = {
    FilterOperation.EQUALS: _equals,
    FilterOperation.NOT_EQUALS: _not_equals,
    FilterOperation.GREATER_THAN: _greater_than,
    FilterOperation.LESS_THAN: _less_than,
    FilterOperation.REGEX_MATCH: _regex_match,
    FilterOperation.NOT_REGEX_MATCH: _not_regex_match,
}


def evaluate(spec: FilterSpec, row: Row) -> bool:
    """
    Test one filter against a row. The staged value is read at spec.when;
    disabled stages already hold the previous stage's value. A filter on a
    column the row does not have never matches.
    """
    staged = row.get(spec.field)
    if staged is None:
        return False
    return OPERATIONS[spec.operation](staged.at(spec.when.value), spec)


def validate_filter(spec: FilterSpec):
    """Compile regex filter values up front so bad patterns fail the query."""
    if spec.operation.uses_pattern:
        compile_pattern(spec.value)


def validate_logic(logic: FilterLogic, filter_count: int):
    if isinstance(logic, str):
        return
    _validate_expression(logic, filter_count)


def _validate_expression(expr: FilterExpression, filter_count: int):
    if expr.op == "not" and len(expr.terms) != 1:
        raise ConfigurationError("A 'not' filter expression takes exactly one term", field="filterLogic")
    if not expr.terms:
        raise ConfigurationError(f"Empty '{expr.op}' filter expression", field="filterLogic")
    for term in expr.terms:
        if isinstance(term, FilterExpression):
            _validate_expression(term, filter_count)
        elif not 0 <= term < filter_count:
            raise ConfigurationError(
                f"Filter expression references filter #{term}, but the query has {filter_count} filters",
                field="filterLogic",
            )


def combine(logic: FilterLogic, results: Sequence[bool]) -> bool:
    """Reduce per-filter results with the query's filter logic. No filters keeps the row."""
    if not results:
        return True
    if logic == "or":
        return any(results)
    if isinstance(logic, FilterExpression):
        return _evaluate_expression(logic, results)
    return all(results)


def _evaluate_expression(expr: FilterExpression, results: Sequence[bool]) -> bool:
    values = (
        _evaluate_expression(t, results) if isinstance(t, FilterExpression) else results[t]
        for t in expr.terms
    )
    if expr.op == "not":
        return not next(values)
    if expr.op == "or":
        return any(values)
    return all(values)


def apply_filters(filters: Sequence[FilterSpec], row: Row, logic: FilterLogic = "and") -> bool:
    """True when the row survives the query's filters."""
    return combine(logic, [evaluate(f, row) for f in filters])
