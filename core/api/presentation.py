"""
TopoTable - Editor Presentation Tables
Human-facing labels for the query editor. The engine only knows the values.
"""
from typing import Dict, List, Optional

from core.engine.converters import ConverterRegistry, default_registry
from core.models.query import FilterOperation, Stage

CONVERTER_LABELS: Dict[str, str] = {
    "int2ip": "Integer to IP",
    "sum": "Sum",
    "none": "None",
}

STAGE_LABELS: Dict[Stage, str] = {
    Stage.RAW: "Raw value",
    Stage.REGEX: "After regex",
    Stage.CONVERSION: "After conversion",
}

OPERATION_LABELS: Dict[FilterOperation, str] = {
    FilterOperation.EQUALS: "Equals",
    FilterOperation.NOT_EQUALS: "Not equals",
    FilterOperation.GREATER_THAN: "Greater than",
    FilterOperation.LESS_THAN: "Less than",
    FilterOperation.REGEX_MATCH: "Matches regex",
    FilterOperation.NOT_REGEX_MATCH: "Does not match regex",
}


def conversion_options(registry: Optional[ConverterRegistry] = None) -> List[Dict[str, str]]:
    # Converters registered at runtime fall back to their own name
    registry = registry or default_registry()
    return [{"label": CONVERTER_LABELS.get(name, name), "value": name} for name in registry.names()]


def when_options() -> List[Dict[str, str]]:
    return [{"label": STAGE_LABELS[s], "value": s.value} for s in Stage]


def filter_options() -> List[Dict[str, str]]:
    return [{"label": OPERATION_LABELS[op], "value": op.value} for op in FilterOperation]
