"""
Strategy report.

- Report: widget collection rendered into the host's report format
- Widgets: ReportCard, ReportTable, ReportChart, ReportText, ReportActionButton
"""

from .report import Report
from .widgets import ReportActionButton, ReportCard, ReportChart, ReportTable, ReportText

__all__ = [
    "Report",
    "ReportActionButton",
    "ReportCard",
    "ReportChart",
    "ReportTable",
    "ReportText",
]
