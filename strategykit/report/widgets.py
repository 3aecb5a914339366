"""
Report widgets.

Each widget renders itself as one block of the report payload handed to
host.update_report():

- ReportCard: single value with optional aggregation
- ReportTable: rows upserted by an id field
- ReportChart: named lines sharing one x axis
- ReportText: heading or paragraph
- ReportActionButton: button sending an action back to the script
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


AggType = Literal["last", "min", "max", "sum", "avg", "count"]
CardValue = Union[float, int, str, bool, None]


class ReportCard(BaseModel):
    """
    Value card.

    Numeric values are folded with the aggregation of each set_value() call;
    'last' simply replaces the value.

    Examples:
        >>> card = ReportCard(title="Max drawdown")
        >>> card.set_value(-5.0, "min")
        >>> card.set_value(-3.0, "min")
        >>> card.value
        -5.0
    """

    title: str
    value: CardValue = None
    variant: Literal["number", "text", "percent"] = "number"
    count: int = 0
    total: float = 0.0

    def set_value(self, value: CardValue, agg_type: AggType = "last") -> None:
        numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
        if agg_type == "last" or not numeric:
            self.value = value
            return

        self.count += 1
        self.total += value
        current = self.value if isinstance(self.value, (int, float)) else None

        if agg_type == "min":
            self.value = value if current is None else min(current, value)
        elif agg_type == "max":
            self.value = value if current is None else max(current, value)
        elif agg_type == "sum":
            self.value = self.total
        elif agg_type == "avg":
            self.value = self.total / self.count
        elif agg_type == "count":
            self.value = self.count

    def to_block(self) -> Dict[str, Any]:
        return {
            "type": "card",
            "name": self.title,
            "isVisible": True,
            "data": {"title": self.title, "value": self.value, "variant": self.variant},
        }


class ReportTable(BaseModel):
    """Table of rows keyed by an id field; rows beyond max_rows drop oldest first."""

    name: str
    rows: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    max_rows: int = Field(default=100, gt=0)

    def upsert(self, row: Dict[str, Any], id_field: str = "id") -> None:
        key = str(row.get(id_field, len(self.rows)))
        if key in self.rows:
            self.rows[key].update(row)
        else:
            self.rows[key] = dict(row)

        while len(self.rows) > self.max_rows:
            del self.rows[next(iter(self.rows))]

    def upsert_records(self, rows: List[Dict[str, Any]], id_field: str = "id") -> None:
        for row in rows:
            self.upsert(row, id_field)

    def clear(self) -> None:
        self.rows.clear()

    def to_block(self) -> Dict[str, Any]:
        return {"type": "table", "name": self.name, "isVisible": True, "data": list(self.rows.values())}


class ReportChart(BaseModel):
    """
    Line chart.

    Points are appended per line; when the x axis exceeds max_points the
    oldest quarter of every line is dropped.
    """

    name: str
    x: List[Any] = Field(default_factory=list)
    lines: Dict[str, List[Optional[float]]] = Field(default_factory=dict)
    max_points: int = Field(default=5000, gt=0)

    def add_point(self, line_name: str, x: Any, y: Optional[float]) -> None:
        if len(self.x) > self.max_points:
            shift = max(1, round(self.max_points * 0.25))
            del self.x[:shift]
            for values in self.lines.values():
                del values[:shift]

        line = self.lines.setdefault(line_name, [])
        line.append(y)
        if len(line) > len(self.x):
            self.x.append(x)

    def to_block(self) -> Dict[str, Any]:
        return {
            "type": "chart",
            "name": self.name,
            "isVisible": True,
            "data": {
                "series": [{"name": name, "data": values} for name, values in self.lines.items()],
                "xaxis": {"categories": list(self.x)},
            },
        }


class ReportText(BaseModel):
    text: str
    variant: str = "body1"
    align: Literal["left", "center", "right"] = "left"

    def to_block(self) -> Dict[str, Any]:
        return {
            "type": "text",
            "isVisible": True,
            "data": {"value": self.text, "variant": self.variant, "align": self.align},
        }


class ReportActionButton(BaseModel):
    title: str
    action: str
    payload: Any = None

    def to_block(self) -> Dict[str, Any]:
        return {
            "type": "action_button",
            "name": self.title,
            "isVisible": True,
            "data": {"title": self.title, "action": self.action, "payload": self.payload},
        }
