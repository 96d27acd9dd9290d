import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

from fpdf import FPDF, XPos, YPos

from .composer import ComposedDocument, IncidentEntry, ProcessSection
from .config import STATUS_COLORS, STATUS_LABELS
from .errors import RendererError
from .metrics import status_breakdown
from .pdf import RenderStrategy

logger = logging.getLogger(__name__)

LINE_H = 5
# Minimum room (mm) a block needs before we break to a fresh page.
MIN_BLOCK_SPACE = 30


# ---- PDF utilities
def _pdf_safe_text(text) -> str:
    if text is None:
        return ""
    return str(text).encode("latin-1", "replace").decode("latin-1")


PALETTE = {
    "primary": (102, 126, 234),
    "accent": (118, 75, 162),
    "ink": (44, 62, 80),
    "muted": (127, 140, 141),
    "panel": (248, 249, 250),
}


def _rgb(hex_color: str) -> Tuple[int, int, int]:
    value = hex_color.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def _avail_w(pdf: FPDF) -> float:
    return max(20, pdf.w - pdf.l_margin - pdf.r_margin)


def _wrap_pdf_line(pdf: FPDF, text: str, max_w: float) -> List[str]:
    if text is None:
        return [""]
    safe_text = _pdf_safe_text(text)
    if max_w <= 0:
        return [safe_text]
    lines = []
    current = ""
    for word in safe_text.split(" "):
        if word == "":
            continue
        candidate = word if not current else f"{current} {word}"
        if pdf.get_string_width(candidate) <= max_w:
            current = candidate
            continue
        if current:
            lines.append(current)
            current = ""
        if pdf.get_string_width(word) <= max_w:
            current = word
            continue
        chunk = ""
        for ch in word:
            if not chunk or pdf.get_string_width(chunk + ch) <= max_w:
                chunk += ch
            else:
                lines.append(chunk)
                chunk = ch
        current = chunk
    if current:
        lines.append(current)
    return lines if lines else [safe_text]


def _fit(pdf: FPDF, text: str, max_w: float) -> str:
    safe = _pdf_safe_text(text)
    if pdf.get_string_width(safe) <= max_w:
        return safe
    while safe and pdf.get_string_width(safe + "...") > max_w:
        safe = safe[:-1]
    return safe + "..."


def _ensure_space(pdf: FPDF, needed: float) -> None:
    if pdf.get_y() + needed > pdf.h - pdf.b_margin:
        pdf.add_page()


def _next_line(pdf: FPDF, w: float, h: float, text: str, **kwargs) -> None:
    pdf.cell(w, h, text, new_x=XPos.LMARGIN, new_y=YPos.NEXT, **kwargs)


def _pdf_add_paragraph(pdf: FPDF, text: str, size: int = 10, style: str = "") -> None:
    pdf.set_font("Helvetica", style, size)
    for line in _wrap_pdf_line(pdf, text, _avail_w(pdf)):
        _next_line(pdf, 0, LINE_H + 1, line)
    pdf.ln(2)


def _pdf_add_rule(pdf: FPDF) -> None:
    y = pdf.get_y()
    pdf.set_draw_color(200, 200, 200)
    pdf.line(pdf.l_margin, y, pdf.w - pdf.r_margin, y)
    pdf.ln(4)


def _pdf_section_heading(pdf: FPDF, text: str) -> None:
    """A filled ribbon-style heading for visual hierarchy."""
    _ensure_space(pdf, MIN_BLOCK_SPACE)
    pdf.set_fill_color(*PALETTE["primary"])
    pdf.set_text_color(255, 255, 255)
    pdf.set_font("Helvetica", "B", 12)
    _next_line(pdf, 0, 8, _fit(pdf, text, _avail_w(pdf)), fill=True)
    pdf.set_text_color(0, 0, 0)
    pdf.ln(2)


def _pdf_add_kpi_rows(pdf: FPDF, rows: Sequence[Tuple[str, str]]) -> None:
    if not rows:
        return
    avail = _avail_w(pdf)
    label_w = min(60, max(30, avail * 0.35))
    value_w = max(30, avail - label_w)
    fill = False
    for label, value in rows:
        pdf.set_font("Helvetica", "", 10)
        lines = _wrap_pdf_line(pdf, value, value_w - 2)
        _ensure_space(pdf, LINE_H * len(lines) + 1)
        pdf.set_fill_color(*(PALETTE["panel"] if fill else (255, 255, 255)))
        pdf.set_font("Helvetica", "B", 10)
        pdf.cell(label_w, 6, _pdf_safe_text(label), fill=fill)
        pdf.set_font("Helvetica", "", 10)
        _next_line(pdf, value_w, 6, lines[0], fill=fill)
        for cont in lines[1:]:
            pdf.cell(label_w, 6, "", fill=fill)
            _next_line(pdf, value_w, 6, cont, fill=fill)
        fill = not fill
    pdf.ln(2)


def _status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def _status_rgb(status: str) -> Tuple[int, int, int]:
    return _rgb(STATUS_COLORS.get(status, "#7f8c8d"))


# ---- Sections
@dataclass
class SectionSpec:
    id: str
    title: str
    renderer: Callable[[FPDF, ComposedDocument], None]


def _render_cover(pdf: FPDF, doc: ComposedDocument) -> None:
    pdf.set_fill_color(*PALETTE["accent"])
    pdf.rect(pdf.l_margin, pdf.get_y(), _avail_w(pdf), 2, "F")
    pdf.ln(6)
    pdf.set_text_color(*PALETTE["ink"])
    pdf.set_font("Helvetica", "B", 20)
    for line in _wrap_pdf_line(pdf, doc.title, _avail_w(pdf)):
        _next_line(pdf, 0, 10, line)
    pdf.set_font("Helvetica", "", 11)
    pdf.set_text_color(*PALETTE["muted"])
    _next_line(pdf, 0, 7, _pdf_safe_text(f"Generated on {doc.generated_label}"))
    pdf.set_text_color(0, 0, 0)
    pdf.ln(4)


def _render_summary(pdf: FPDF, doc: ComposedDocument) -> None:
    _pdf_section_heading(pdf, "Summary")
    stats = doc.summary
    _pdf_add_kpi_rows(
        pdf,
        [
            ("Processes", str(stats.processes)),
            ("Incidents", str(stats.incidents)),
            ("Pending", str(stats.pending)),
            ("Approved", str(stats.approved)),
            ("Resolved", str(stats.resolved)),
        ],
    )
    breakdown = status_breakdown(stats)
    peak = max(breakdown.values()) if breakdown else 0
    if not peak:
        return
    label_w = 30
    bar_max = _avail_w(pdf) - label_w - 15
    _ensure_space(pdf, 7 * len(breakdown) + 4)
    pdf.set_font("Helvetica", "", 9)
    for status, count in breakdown.items():
        y = pdf.get_y()
        pdf.cell(label_w, 6, _status_label(status))
        width = bar_max * count / peak
        if width > 0:
            pdf.set_fill_color(*_status_rgb(status))
            pdf.rect(pdf.l_margin + label_w, y + 1, width, 4, "F")
        pdf.set_x(pdf.l_margin + label_w + width + 2)
        _next_line(pdf, 0, 6, str(count))
    pdf.ln(3)


OVERVIEW_COLUMNS = (
    ("Process", 0.32),
    ("Status", 0.14),
    ("Assigned reviewer", 0.22),
    ("Due date", 0.18),
    ("Incidents", 0.14),
)


def _render_overview(pdf: FPDF, doc: ComposedDocument) -> None:
    _pdf_section_heading(pdf, "Process overview")
    avail = _avail_w(pdf)
    widths = [avail * share for _, share in OVERVIEW_COLUMNS]

    def header_row() -> None:
        pdf.set_fill_color(*PALETTE["primary"])
        pdf.set_text_color(255, 255, 255)
        pdf.set_font("Helvetica", "B", 9)
        for (label, _), w in zip(OVERVIEW_COLUMNS, widths):
            pdf.cell(w, 7, label, fill=True)
        pdf.ln(7)
        pdf.set_text_color(0, 0, 0)

    header_row()
    fill = False
    for row in doc.overview:
        if pdf.get_y() + 7 > pdf.h - pdf.b_margin:
            pdf.add_page()
            header_row()
        pdf.set_fill_color(*(PALETTE["panel"] if fill else (255, 255, 255)))
        values = (row.name, row.status_label, row.reviewer, row.due_date, str(row.incident_count))
        for idx, (value, w) in enumerate(zip(values, widths)):
            pdf.set_font("Helvetica", "B" if idx == 0 else "", 9)
            if idx == 1:
                pdf.set_text_color(*_status_rgb(row.status))
            pdf.cell(w, 6, _fit(pdf, value, w - 1), fill=fill)
            pdf.set_text_color(0, 0, 0)
        pdf.ln(6)
        fill = not fill
    pdf.ln(3)


def _incident_lines(pdf: FPDF, entry: IncidentEntry, max_w: float) -> List[Tuple[str, str]]:
    pdf.set_font("Helvetica", "", 9)
    lines = [("B", line) for line in _wrap_pdf_line(pdf, f"Incident #{entry.ordinal}: {entry.description}", max_w)]
    lines += [
        ("", f"Status: {entry.status_label}"),
        ("", f"Created by: {entry.created_by}"),
        ("", f"Created on: {entry.created_on}"),
        ("", f"Approved on: {entry.approved_on}"),
        ("", f"Resolved on: {entry.resolved_on}"),
    ]
    if entry.evidence:
        lines.append(("", f"Evidence ({len(entry.evidence)}):"))
    else:
        lines.append(("", f"Evidence: {entry.evidence_note}"))
    return lines


def _render_incident(pdf: FPDF, entry: IncidentEntry) -> None:
    indent = 5
    max_w = _avail_w(pdf) - indent
    lines = _incident_lines(pdf, entry, max_w)
    height = LINE_H * (len(lines) + len(entry.evidence)) + 3
    _ensure_space(pdf, min(height, MIN_BLOCK_SPACE * 2))
    top = pdf.get_y()
    start_page = pdf.page_no()
    for style, text in lines:
        pdf.set_x(pdf.l_margin + indent)
        pdf.set_font("Helvetica", style, 9)
        _next_line(pdf, max_w, LINE_H, _pdf_safe_text(text))
    pdf.set_text_color(*PALETTE["primary"])
    for link in entry.evidence:
        pdf.set_x(pdf.l_margin + indent + 3)
        pdf.set_font("Helvetica", "U", 8)
        _next_line(pdf, max_w - 3, LINE_H, _fit(pdf, f"{link.label}: {link.url}", max_w - 3), link=link.url)
    pdf.set_text_color(0, 0, 0)
    if pdf.page_no() == start_page:
        pdf.set_fill_color(*_status_rgb(entry.status))
        pdf.rect(pdf.l_margin, top, 1.5, pdf.get_y() - top, "F")
    pdf.ln(3)


def _render_process(pdf: FPDF, section: ProcessSection) -> None:
    _pdf_section_heading(pdf, section.name)
    _pdf_add_kpi_rows(
        pdf,
        [
            ("Description", section.description),
            ("Status", section.status_label),
            ("Total incidents", str(section.incident_count)),
        ],
    )
    if not section.incidents:
        pdf.set_text_color(*PALETTE["muted"])
        _pdf_add_paragraph(pdf, section.empty_marker, size=10, style="I")
        pdf.set_text_color(0, 0, 0)
        return
    for entry in section.incidents:
        _render_incident(pdf, entry)


def _render_details(pdf: FPDF, doc: ComposedDocument) -> None:
    _pdf_section_heading(pdf, "Incidents by process")
    for section in doc.sections:
        _render_process(pdf, section)


def _render_closing(pdf: FPDF, doc: ComposedDocument) -> None:
    pdf.set_font("Helvetica", "I", 9)
    pdf.set_text_color(*PALETTE["muted"])
    _next_line(pdf, 0, LINE_H, "Report generated automatically by the incident management system")
    _next_line(pdf, 0, LINE_H, _pdf_safe_text(f"Generated at {doc.generated_timestamp}"))
    pdf.set_text_color(0, 0, 0)


SECTION_REGISTRY: List[SectionSpec] = [
    SectionSpec("cover", "Cover", _render_cover),
    SectionSpec("summary", "Summary", _render_summary),
    SectionSpec("overview", "Process overview", _render_overview),
    SectionSpec("details", "Incidents by process", _render_details),
    SectionSpec("closing", "Closing", _render_closing),
]


class ReportPDF(FPDF):
    def __init__(self, header_title: str, generated_label: str):
        super().__init__(orientation="P", unit="mm", format="A4")
        self.header_title = header_title
        self.generated_label = generated_label

    def header(self):
        if self.page_no() == 1:
            return
        self.set_text_color(60, 60, 60)
        self.set_font("Helvetica", "B", 9)
        _next_line(self, 0, 5, _fit(self, self.header_title, self.w - self.l_margin - self.r_margin))
        self.set_draw_color(200, 200, 200)
        self.line(self.l_margin, self.get_y(), self.w - self.r_margin, self.get_y())
        self.ln(3)
        self.set_text_color(0, 0, 0)

    def footer(self):
        self.set_y(-12)
        self.set_text_color(120, 120, 120)
        self.set_font("Helvetica", "", 8)
        w = self.w - self.l_margin - self.r_margin
        self.cell(w, 4, _pdf_safe_text(self.generated_label), align="L")
        self.set_x(self.l_margin)
        self.cell(w, 4, f"Page {self.page_no()}", align="R")


def build_pdf(doc: ComposedDocument, compress: bool = True) -> bytes:
    """
    Draw the composed document directly with FPDF primitives.
    Visual style is simpler than the browser output; the content is the same.
    """
    pdf = ReportPDF(doc.title, doc.generated_label)
    pdf.set_compression(compress)
    pdf.set_left_margin(15)
    pdf.set_right_margin(15)
    pdf.set_top_margin(20)
    pdf.set_auto_page_break(auto=True, margin=20)
    pdf.add_page()

    for spec in SECTION_REGISTRY:
        if spec.id not in {"cover", "summary"}:
            pdf.ln(2)
            _pdf_add_rule(pdf)
        spec.renderer(pdf, doc)

    return bytes(pdf.output())


class FallbackRenderer(RenderStrategy):
    """Primitive-based renderer used when the browser cannot produce a PDF."""

    name = "fpdf"

    def __init__(self, compress: bool = True):
        self.compress = compress

    async def render(self, document: ComposedDocument) -> bytes:
        try:
            return await asyncio.to_thread(build_pdf, document, self.compress)
        except Exception as exc:
            logger.error("FPDF fallback failed for %r: %s", document.title, exc)
            raise RendererError(self.name, str(exc)) from exc
