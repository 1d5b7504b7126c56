from __future__ import annotations

from backend.app.rendering.base import RenderInput, ReportRenderer
from backend.app.rendering.pdf import PdfReportRenderer

__all__ = [
    "PdfReportRenderer",
    "RenderInput",
    "ReportRenderer",
]
