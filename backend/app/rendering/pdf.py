"""
pdf.py - LPJ (laporan pertanggungjawaban) PDF artifact.

Layout
- Header: optional logo, title, division / period / reporter
- Program Kerja narrative
- Rincian Keuangan: income table, expense table, totals and balance
- Evaluasi, Rencana Bulan Depan
- Signature block (optional stamp + signature images), footer with timestamp

Publishing: the canvas is saved to a temp file next to the destination and
moved into place with os.replace, so a failed render never leaves a partial
file at the destination.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from backend.app.lpj.errors import RenderError
from backend.app.lpj.months import month_label_id
from backend.app.lpj.records import LedgerEntry
from backend.app.rendering.base import RenderInput

logger = logging.getLogger(__name__)


THEME = {
    "text": colors.HexColor("#1E293B"),
    "muted": colors.HexColor("#64748B"),
    "border": colors.HexColor("#CBD5E1"),
    "header_bg": colors.HexColor("#F1F5F9"),
    "accent": colors.HexColor("#0284C7"),
    "danger": colors.HexColor("#DC2626"),
}

FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_ITALIC = "Helvetica-Oblique"

NO_LABEL = "Tanpa Keterangan"
EMPTY_INCOME = "Tidak ada data pemasukan"
EMPTY_EXPENSE = "Tidak ada data pengeluaran"


# =============================================================================
# Formatting helpers
# =============================================================================

def format_number(amount: Decimal) -> str:
    # id-ID grouping: 1.500.000 and decimals only when non-zero
    value = Decimal(amount)
    if value == value.to_integral_value():
        return f"{value:,.0f}".replace(",", ".")
    text = f"{value:,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(amount: Decimal) -> str:
    return f"Rp {format_number(amount)}"


def format_generated_at(data: RenderInput) -> str:
    return f"{data.generated_at.day} {month_label_id(data.generated_at.strftime('%Y-%m'))} {data.generated_at:%H.%M}"


def _existing(path: Optional[str]) -> Optional[str]:
    if path and os.path.exists(path):
        return path
    return None


# =============================================================================
# Page writer
# =============================================================================

@dataclass
class _Cursor:
    c: canvas.Canvas
    page_w: float
    page_h: float
    margin: float = 20 * mm
    y: float = 0.0

    def __post_init__(self):
        self.y = self.page_h - self.margin

    @property
    def content_w(self) -> float:
        return self.page_w - 2 * self.margin

    def ensure(self, height: float, footer_text: str) -> None:
        if self.y - height < self.margin + 10:
            _draw_footer(self, footer_text)
            self.c.showPage()
            self.y = self.page_h - self.margin

    def text(self, text: str, font: str = FONT_REGULAR, size: float = 10,
             color=THEME["text"], x: Optional[float] = None, align: str = "left") -> None:
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        xx = self.margin if x is None else x
        if align == "right":
            self.c.drawRightString(xx, self.y, text)
        elif align == "center":
            self.c.drawCentredString(xx, self.y, text)
        else:
            self.c.drawString(xx, self.y, text)


def _draw_footer(cur: _Cursor, footer_text: str) -> None:
    c = cur.c
    c.setFont(FONT_ITALIC, 8)
    c.setFillColor(THEME["muted"])
    c.drawString(cur.margin, cur.margin / 2, footer_text)
    c.drawRightString(cur.page_w - cur.margin, cur.margin / 2, f"Halaman {c.getPageNumber()}")


def _paragraph(cur: _Cursor, text: Optional[str], footer_text: str, size: float = 10) -> None:
    leading = size * 1.35
    body = (text or "").strip() or "-"
    for block in body.splitlines() or [body]:
        lines = simpleSplit(block, FONT_REGULAR, size, cur.content_w) or [""]
        for line in lines:
            cur.ensure(leading, footer_text)
            cur.text(line, size=size)
            cur.y -= leading
    cur.y -= 4


def _section_title(cur: _Cursor, title: str, footer_text: str) -> None:
    cur.ensure(28, footer_text)
    cur.y -= 6
    cur.text(title, font=FONT_BOLD, size=12, color=THEME["accent"])
    cur.y -= 4
    cur.c.setStrokeColor(THEME["border"])
    cur.c.setLineWidth(0.6)
    cur.c.line(cur.margin, cur.y, cur.page_w - cur.margin, cur.y)
    cur.y -= 14


def _ledger_rows(entries: Sequence[LedgerEntry], empty_text: str) -> List[Tuple[str, str]]:
    rows = [(e.label or NO_LABEL, format_currency(e.amount)) for e in entries]
    if not rows:
        rows.append((empty_text, format_currency(Decimal("0"))))
    return rows


def _table(cur: _Cursor, heading: str, rows: Iterable[Tuple[str, str]],
           total_label: str, total: Decimal, footer_text: str) -> None:
    size = 9.5
    leading = size * 1.35
    amount_w = 45 * mm
    label_w = cur.content_w - amount_w - 8
    c = cur.c

    cur.ensure(leading + 8, footer_text)
    c.setFillColor(THEME["header_bg"])
    c.rect(cur.margin, cur.y - 5, cur.content_w, leading + 4, stroke=0, fill=1)
    cur.text(heading, font=FONT_BOLD, size=size)
    cur.text("Jumlah", font=FONT_BOLD, size=size, x=cur.page_w - cur.margin - 4, align="right")
    cur.y -= leading + 4

    for label, amount in rows:
        lines = simpleSplit(label, FONT_REGULAR, size, label_w) or [""]
        cur.ensure(leading * len(lines) + 2, footer_text)
        cur.text(amount, size=size, x=cur.page_w - cur.margin - 4, align="right")
        for line in lines:
            cur.text(line, size=size, x=cur.margin + 4)
            cur.y -= leading
        c.setStrokeColor(THEME["border"])
        c.setLineWidth(0.3)
        c.line(cur.margin, cur.y + leading - 4, cur.page_w - cur.margin, cur.y + leading - 4)

    cur.ensure(leading + 4, footer_text)
    cur.text(total_label, font=FONT_BOLD, size=size, x=cur.margin + 4)
    cur.text(format_currency(total), font=FONT_BOLD, size=size, x=cur.page_w - cur.margin - 4, align="right")
    cur.y -= leading + 8


# =============================================================================
# Renderer
# =============================================================================

class PdfReportRenderer:
    """reportlab implementation of the ReportRenderer contract."""

    def __init__(
        self,
        logo_path: Optional[str] = None,
        signature_path: Optional[str] = None,
        stamp_path: Optional[str] = None,
        organization: str = "Laporan Pertanggungjawaban Divisi",
    ):
        self.logo_path = logo_path
        self.signature_path = signature_path
        self.stamp_path = stamp_path
        self.organization = organization

    def render(self, data: RenderInput, destination: Path) -> None:
        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{destination.stem}-", suffix=".tmp", dir=str(destination.parent)
            )
            os.close(fd)
        except OSError as exc:
            raise RenderError(f"cannot prepare {destination}: {exc}") from exc

        tmp_path = Path(tmp_name)
        try:
            c = canvas.Canvas(str(tmp_path), pagesize=A4)
            c.setTitle(f"LPJ {data.division} {month_label_id(data.month)}")
            c.setAuthor(data.reporter_name)
            self._draw_document(c, data)
            c.save()
            os.replace(tmp_path, destination)
        except Exception as exc:
            logger.error("PDF render failed for %s: %s", destination.name, exc)
            raise RenderError(f"failed to render {destination.name}: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.info("PDF generated: %s", destination)

    # -------------------------
    # Drawing
    # -------------------------

    def _draw_document(self, c: canvas.Canvas, data: RenderInput) -> None:
        page_w, page_h = A4
        cur = _Cursor(c=c, page_w=page_w, page_h=page_h)
        footer_text = f"Dibuat pada {format_generated_at(data)}"

        self._draw_header(cur, data)

        _section_title(cur, "Program Kerja", footer_text)
        _paragraph(cur, data.work_program, footer_text)

        _section_title(cur, "Rincian Keuangan", footer_text)
        _table(cur, "Pemasukan", _ledger_rows(data.income, EMPTY_INCOME),
               "Total Pemasukan", data.total_income, footer_text)
        _table(cur, "Pengeluaran", _ledger_rows(data.expense, EMPTY_EXPENSE),
               "Total Pengeluaran", data.total_expense, footer_text)

        cur.ensure(20, footer_text)
        balance = data.balance
        cur.text("Saldo Akhir", font=FONT_BOLD, size=11)
        cur.text(
            format_currency(balance) if balance >= 0 else f"- {format_currency(-balance)}",
            font=FONT_BOLD,
            size=11,
            color=THEME["text"] if balance >= 0 else THEME["danger"],
            x=page_w - cur.margin - 4,
            align="right",
        )
        cur.y -= 20

        _section_title(cur, "Evaluasi", footer_text)
        _paragraph(cur, data.evaluation, footer_text)

        _section_title(cur, "Rencana Bulan Depan", footer_text)
        _paragraph(cur, data.next_plan, footer_text)

        self._draw_signature(cur, data, footer_text)
        _draw_footer(cur, footer_text)
        c.showPage()

    def _draw_header(self, cur: _Cursor, data: RenderInput) -> None:
        c = cur.c
        logo = _existing(self.logo_path)
        text_x = cur.margin
        if logo:
            c.drawImage(logo, cur.margin, cur.y - 16 * mm, width=18 * mm, height=18 * mm,
                        preserveAspectRatio=True, mask="auto")
            text_x = cur.margin + 22 * mm

        cur.text("LAPORAN PERTANGGUNGJAWABAN (LPJ)", font=FONT_BOLD, size=15, x=text_x)
        cur.y -= 16
        cur.text(self.organization, size=10, color=THEME["muted"], x=text_x)
        cur.y = min(cur.y - 18, cur.page_h - cur.margin - 22 * mm)

        c.setStrokeColor(THEME["accent"])
        c.setLineWidth(1.2)
        c.line(cur.margin, cur.y + 8, cur.page_w - cur.margin, cur.y + 8)
        cur.y -= 8

        for label, value in (
            ("Divisi", data.division),
            ("Bulan", month_label_id(data.month)),
            ("Pelapor", data.reporter_name),
        ):
            cur.text(label, font=FONT_BOLD, size=10)
            cur.text(f": {value}", size=10, x=cur.margin + 25 * mm)
            cur.y -= 14
        cur.y -= 4

    def _draw_signature(self, cur: _Cursor, data: RenderInput, footer_text: str) -> None:
        block_h = 42 * mm
        cur.ensure(block_h, footer_text)
        c = cur.c
        x = cur.page_w - cur.margin - 60 * mm
        cur.y -= 6
        cur.text("Pelapor,", size=10, x=x)
        top = cur.y - 4

        stamp = _existing(self.stamp_path)
        if stamp:
            c.drawImage(stamp, x - 8 * mm, top - 26 * mm, width=26 * mm, height=26 * mm,
                        preserveAspectRatio=True, mask="auto")
        signature = _existing(self.signature_path)
        if signature:
            c.drawImage(signature, x + 6 * mm, top - 22 * mm, width=36 * mm, height=20 * mm,
                        preserveAspectRatio=True, mask="auto")

        cur.y = top - 30 * mm
        cur.text(data.reporter_name, font=FONT_BOLD, size=10, x=x)
        cur.y -= 12
        cur.text(data.division, size=9, color=THEME["muted"], x=x)
        cur.y -= 12
