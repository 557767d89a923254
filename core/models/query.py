"""
TopoTable - Query Models
Declarative query, column and filter specifications consumed by the row pipeline.

All models are frozen. Use the with_* constructors to derive modified copies;
they re-run validation, so a derived query is always as valid as one parsed
from JSON.
"""
from enum import Enum
from typing import Any, Dict, List, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Stage(str, Enum):
    """How far a column value has progressed through its pipeline."""
    RAW = "raw"
    REGEX = "regex"
    CONVERSION = "conversion"


class FilterOperation(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "!equals"
    GREATER_THAN = "gt"
    LESS_THAN = "lt"
    REGEX_MATCH = "regexMatch"
    NOT_REGEX_MATCH = "!regexMatch"

    @property
    def uses_pattern(self) -> bool:
        return self in (FilterOperation.REGEX_MATCH, FilterOperation.NOT_REGEX_MATCH)


# Spellings used by earlier plugin builds
OPERATION_ALIASES = {
    "regexNotMatch": FilterOperation.NOT_REGEX_MATCH.value,
    "notEquals": FilterOperation.NOT_EQUALS.value,
}


class _SpecModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def with_updates(self, **changes: Any):
        """Return a re-validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


class ColumnSpec(_SpecModel):
    name: str
    path: str = ""
    regex_enabled: bool = Field(default=False, alias="regexEnabled")
    regex: str = ""
    converter_enabled: bool = Field(default=False, alias="converterEnabled")
    converter: str = "none"

    @model_validator(mode="before")
    @classmethod
    def infer_stage_flags(cls, data: Any) -> Any:
        # Queries saved before the enable toggles existed carry only regex/converter
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("regex") is None:
            data["regex"] = ""
        if data.get("converter") in (None, ""):
            data["converter"] = "none"
        if "regexEnabled" not in data and "regex_enabled" not in data:
            data["regexEnabled"] = bool(data["regex"])
        if "converterEnabled" not in data and "converter_enabled" not in data:
            data["converterEnabled"] = data["converter"] != "none"
        return data

    @property
    def uses_regex(self) -> bool:
        return self.regex_enabled and bool(self.regex)

    @property
    def uses_converter(self) -> bool:
        return self.converter_enabled


class FilterSpec(_SpecModel):
    field: str
    when: Stage = Stage.RAW
    operation: FilterOperation = FilterOperation.EQUALS
    value: str = ""

    @field_validator("operation", mode="before")
    @classmethod
    def normalize_operation(cls, v: Any) -> Any:
        if isinstance(v, str):
            return OPERATION_ALIASES.get(v, v)
        return v

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v


class FilterExpression(_SpecModel):
    """
    Boolean tree over filter results. Integer terms are indices into the
    query's filter list.
    """
    op: Literal["and", "or", "not"]
    terms: Tuple[Union[int, "FilterExpression"], ...]


FilterExpression.model_rebuild()

FilterLogic = Union[Literal["and", "or"], FilterExpression]


class Query(_SpecModel):
    ref_id: str = Field(default="A", alias="refId")
    uri: str = ""
    loop_path: str = Field(default="", alias="loopPath")
    columns: Tuple[ColumnSpec, ...] = ()
    filters: Tuple[FilterSpec, ...] = ()
    filter_logic: FilterLogic = Field(default="and", alias="filterLogic")

    @field_validator("columns", "filters", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return () if v is None else v

    @field_validator("filter_logic", mode="before")
    @classmethod
    def lowercase_logic(cls, v: Any) -> Any:
        if v is None:
            return "and"
        if isinstance(v, str):
            return v.strip().lower()
        return v

    def with_column(self, index: int, **changes: Any) -> "Query":
        columns = list(self.columns)
        columns[index] = columns[index].with_updates(**changes)
        return self.with_updates(columns=columns)

    def with_filter(self, index: int, **changes: Any) -> "Query":
        filters = list(self.filters)
        filters[index] = filters[index].with_updates(**changes)
        return self.with_updates(filters=filters)

    def append_column(self, column: ColumnSpec) -> "Query":
        return self.with_updates(columns=[*self.columns, column])

    def drop_column(self, index: int = -1) -> "Query":
        columns = list(self.columns)
        del columns[index]
        return self.with_updates(columns=columns)

    def append_filter(self, filter_spec: FilterSpec) -> "Query":
        return self.with_updates(filters=[*self.filters, filter_spec])

    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


DEFAULT_QUERY: Dict[str, Any] = {
    "uri": "/rests/data/network-topology:network-topology",
    "loopPath": "network-topology:network-topology/topology[0]/link",
    "columns": [
        {
            "name": "source",
            "path": "source/source-node",
            "regexEnabled": True,
            "regex": r"router=(\d+)",
            "converterEnabled": True,
            "converter": "int2ip",
        },
        {
            "name": "target",
            "path": "destination/dest-node",
            "regexEnabled": True,
            "regex": r"router=(\d+)",
            "converterEnabled": True,
            "converter": "int2ip",
        },
    ],
    "filters": [],
}


def default_query() -> Query:
    return Query.model_validate(DEFAULT_QUERY)
