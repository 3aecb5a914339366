"""
Report facade.

Collects cards, tables, charts, texts and action buttons in creation order
and sends them to the host as one block list. The journal's error/warning
records and the active trigger tasks are appended as extra tables.
"""

import math
from typing import Any, Dict, List, Optional, Union

from ..core.managed import ManagedObject
from ..utils.time import time_to_string
from .widgets import (
    AggType,
    CardValue,
    ReportActionButton,
    ReportCard,
    ReportChart,
    ReportTable,
    ReportText,
)


class Report(ManagedObject):
    """
    Strategy report.

    In tester mode the report is usually sent once from on_stop; in live
    mode update_report() can be called periodically.

    Attributes:
        is_log_to_report (bool): Append journal tables to the report
        is_tasks_to_report (bool): Append the active trigger tasks table

    Examples:
        >>> report = context.report
        >>> report.card_set("Profit", 12.5)
        >>> report.table_update("Orders", {"id": "1", "side": "buy", "price": 100})
        >>> report.chart_add_point("Equity", "balance", 10012.5)
        >>> await report.update_report()
    """

    def __init__(self, context, id_prefix: str = "Global"):
        super().__init__(context, id_prefix)
        self.title: Optional[str] = None
        self.description: Optional[str] = None
        self.is_log_to_report = True
        self.is_tasks_to_report = True
        self.last_time_update = 0
        self._widgets: Dict[str, Union[ReportCard, ReportTable, ReportChart, ReportText, ReportActionButton]] = {}

    def set_title(self, title: str) -> None:
        self.title = title

    def set_description(self, description: str) -> None:
        self.description = description

    def _widget(self, kind: str, name: str):
        return self._widgets.get(f"{kind}-{name}")

    def _add(self, kind: str, name: str, widget):
        self._widgets[f"{kind}-{name}"] = widget
        return widget

    # Cards

    def card_set(
        self, name: str, value: CardValue, agg_type: AggType = "last", variant: str = "number"
    ) -> None:
        card = self._widget("card", name)
        if card is None:
            card = self._add("card", name, ReportCard(title=name, variant=variant))
        card.set_value(value, agg_type)

    def get_card(self, name: str) -> Optional[ReportCard]:
        return self._widget("card", name)

    # Tables

    def table_update(
        self,
        name: str,
        data: Union[Dict[str, Any], List[Dict[str, Any]]],
        id_field: str = "id",
    ) -> None:
        table = self._widget("table", name)
        if table is None:
            table = self._add("table", name, ReportTable(name=name))

        if isinstance(data, list):
            table.upsert_records(data, id_field)
        else:
            table.upsert(data, id_field)

    def get_table(self, name: str) -> Optional[ReportTable]:
        return self._widget("table", name)

    # Charts

    def chart_add_point(
        self,
        chart_name: str,
        line_name: str,
        value: Optional[float],
        x: Any = None,
        max_points: Optional[int] = None,
    ) -> None:
        """Add a point; x defaults to the current host time as a string."""
        if value is not None and (not isinstance(value, (int, float)) or math.isnan(value)):
            self.logger.warning(
                f"Report::chart_add_point value should be a number, got {value!r} "
                f"| chart={chart_name} line={line_name}"
            )
            value = None

        chart = self._widget("chart", chart_name)
        if chart is None:
            options = {"max_points": max_points} if max_points else {}
            chart = self._add("chart", chart_name, ReportChart(name=chart_name, **options))

        if x is None:
            x = time_to_string(self.context.host.current_time())
        chart.add_point(line_name, x, value)

    def get_chart(self, name: str) -> Optional[ReportChart]:
        return self._widget("chart", name)

    # Texts and buttons

    def text_set(self, name: str, text: str, variant: str = "body1", align: str = "left") -> None:
        widget = self._widget("text", name)
        if widget is None:
            self._add("text", name, ReportText(text=text, variant=variant, align=align))
        else:
            widget.text = text

    def add_action_button(self, title: str, action: str, payload: Any = None) -> None:
        self._add("button", title, ReportActionButton(title=title, action=action, payload=payload))

    # Rendering

    def _log_blocks(self) -> List[Dict[str, Any]]:
        journal = self.context.journal
        blocks = []

        problems = journal.get_logs("ERROR") + journal.get_logs("WARNING")
        problems.sort(key=lambda record: record["date"], reverse=True)
        if problems:
            blocks.append({
                "type": "table",
                "name": "Warnings & Errors",
                "isVisible": True,
                "data": problems[:100],
            })

        logs = journal.get_logs("INFO")
        if logs:
            half = min(round(len(logs) / 2), 100)
            data = logs if len(logs) <= 2 * half else logs[:half] + logs[-half:]
            blocks.append({"type": "table", "name": "Log", "isVisible": True, "data": data})

        return blocks

    def _tasks_block(self) -> Optional[Dict[str, Any]]:
        tasks = self.context.triggers.get_active_tasks()
        if not tasks:
            return None

        return {
            "type": "table",
            "name": "Active tasks",
            "isVisible": True,
            "data": [
                {
                    "id": task.id,
                    "name": task.name,
                    "type": task.type,
                    "level": getattr(task, "trigger_price", None) or getattr(task, "trigger_time", None),
                    "retry": task.retry,
                    "created": time_to_string(task.created_tms),
                }
                for task in tasks
            ],
        }

    def build(self) -> Dict[str, Any]:
        """Report payload: {'id', 'symbol', 'blocks'}."""
        blocks = []
        if self.title:
            blocks.append(ReportText(text=self.title, variant="h1", align="center").to_block())
        if self.description:
            blocks.append(
                ReportText(text=self.description, variant="subtitle1", align="center").to_block()
            )

        blocks.extend(widget.to_block() for widget in self._widgets.values())

        if self.is_tasks_to_report:
            tasks_block = self._tasks_block()
            if tasks_block:
                blocks.append(tasks_block)

        if self.is_log_to_report:
            blocks.extend(self._log_blocks())

        return {"id": self.context.id, "symbol": self.context.host.get_arg("symbol", ""), "blocks": blocks}

    async def update_report(self) -> Dict[str, Any]:
        report = self.build()
        await self.context.host.update_report(report)
        self.last_time_update = self.context.host.current_time()
        return report
