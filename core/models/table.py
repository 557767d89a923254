"""
TopoTable - Table Models
Staged row values and the flat output table handed to the panel renderer.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from core.engine.errors import ConversionError

StagedScalar = Union[str, None, ConversionError]


@dataclass
class StagedValue:
    """A column value at each pipeline stage."""
    raw: StagedScalar = None
    regex: StagedScalar = None
    conversion: StagedScalar = None

    def at(self, stage: str) -> StagedScalar:
        return getattr(self, stage)


Row = Dict[str, StagedValue]


@dataclass(frozen=True)
class ColumnMeta:
    name: str
    type: str = "string"  # string/number


@dataclass
class Table:
    """Ordered output rows; values are scalars keyed by column name."""
    columns: List[ColumnMeta] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)
    dropped: int = 0

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def column_values(self, name: str) -> List[Any]:
        return [row.get(name) for row in self.rows]

    def to_frame(self, name: str = "response") -> Dict[str, Any]:
        """Column-oriented frame as consumed by dashboard table panels."""
        return {
            "name": name,
            "fields": [
                {"name": c.name, "type": c.type, "values": self.column_values(c.name)}
                for c in self.columns
            ],
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": [{"name": c.name, "type": c.type} for c in self.columns],
            "rows": self.rows,
            "notices": self.notices,
            "dropped": self.dropped,
        }
