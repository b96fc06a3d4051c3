"""
PDF rendering of appointment reports with the reportlab canvas.

The layout is a plain A4 page: clinic header, patient/appointment
block, a procedures table, then findings, notes and follow-up.  Long
text is wrapped to the page width and flows onto new pages.
"""
from __future__ import annotations

from io import BytesIO

from django.conf import settings
from django.utils import timezone
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from clinic.models import AppointmentReport

W, H = A4
M = 40  # margin
BODY_FONT = 'Helvetica'
BOLD_FONT = 'Helvetica-Bold'

# procedures table columns: (title, key, x offset from margin, width)
COLUMNS = [
    ('Procedure', 'name', 0, 150),
    ('Tooth', 'tooth', 155, 50),
    ('Status', 'status', 210, 80),
    ('Description', 'description', 295, W - 2 * M - 295),
]


class _Page:
    """Tracks the write position and starts a new page when space runs out."""

    def __init__(self, c: canvas.Canvas):
        self.c = c
        self.y = H - M

    def need(self, height: float) -> None:
        if self.y - height < M:
            self.c.showPage()
            self.y = H - M

    def line(self, text: str, *, font=BODY_FONT, size=10, x=M, gap=14) -> None:
        self.need(gap)
        self.c.setFont(font, size)
        self.c.drawString(x, self.y, text)
        self.y -= gap

    def paragraph(self, text: str, *, size=10, width=W - 2 * M) -> None:
        for chunk in (text or '-').splitlines() or ['-']:
            for ln in simpleSplit(chunk or ' ', BODY_FONT, size, width):
                self.line(ln, size=size, gap=size + 3)

    def section(self, title: str) -> None:
        self.y -= 6
        self.line(title, font=BOLD_FONT, size=12, gap=16)


def _header(page: _Page, report: AppointmentReport) -> None:
    c = page.c
    c.setFont(BOLD_FONT, 16)
    c.drawString(M, page.y, settings.CLINIC_NAME)
    c.setFont(BODY_FONT, 9)
    c.drawRightString(W - M, page.y, 'Appointment Report')
    c.drawRightString(W - M, page.y - 12, f'Report No. {report.id}')
    page.y -= 14
    if settings.CLINIC_ADDRESS:
        page.line(settings.CLINIC_ADDRESS, size=9, gap=12)
    page.y -= 6
    c.setLineWidth(0.5)
    c.line(M, page.y, W - M, page.y)
    page.y -= 18


def _details(page: _Page, report: AppointmentReport) -> None:
    appt = report.appointment
    rows = [
        ('Patient', report.patient.name),
        ('Doctor', report.doctor.display_name),
        ('Date', f"{appt.date:%b %d, %Y} at {appt.time:%H:%M}"),
        ('Type', appt.type),
    ]
    for label, value in rows:
        page.need(14)
        page.c.setFont(BOLD_FONT, 10)
        page.c.drawString(M, page.y, f'{label}:')
        page.c.setFont(BODY_FONT, 10)
        page.c.drawString(M + 60, page.y, value or '-')
        page.y -= 14


def _procedures(page: _Page, report: AppointmentReport) -> None:
    page.section('Procedures')
    page.need(16)
    page.c.setFont(BOLD_FONT, 9)
    for title, _, x, _ in COLUMNS:
        page.c.drawString(M + x, page.y, title)
    page.y -= 4
    page.c.line(M, page.y, W - M, page.y)
    page.y -= 12
    for proc in report.procedures:
        cells = [simpleSplit(str(proc.get(key) or '-'), BODY_FONT, 9, width) for _, key, _, width in COLUMNS]
        height = max(len(cell) for cell in cells) * 11
        page.need(height)
        page.c.setFont(BODY_FONT, 9)
        for (_, _, x, _), cell in zip(COLUMNS, cells):
            for i, ln in enumerate(cell):
                page.c.drawString(M + x, page.y - i * 11, ln)
        page.y -= height + 3


def _footer(c: canvas.Canvas) -> None:
    stamp = f"Generated {timezone.localtime():%Y-%m-%d %H:%M}"
    c.setFont(BODY_FONT, 8)
    c.drawString(W - M - stringWidth(stamp, BODY_FONT, 8), M / 2, stamp)


def render_report_pdf(report: AppointmentReport) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f'Appointment report {report.id}')
    c.setAuthor(settings.CLINIC_NAME)
    page = _Page(c)

    _header(page, report)
    _details(page, report)
    _procedures(page, report)
    page.section('Findings')
    page.paragraph(report.findings)
    page.section('Notes')
    page.paragraph(report.notes)
    if report.next_visit or report.follow_up_details:
        page.section('Follow-up')
        if report.next_visit:
            page.line(f"Next visit: {report.next_visit:%b %d, %Y}")
        if report.follow_up_details:
            page.paragraph(report.follow_up_details)

    _footer(c)
    c.showPage()
    c.save()
    return buf.getvalue()


def report_filename(report: AppointmentReport) -> str:
    safe = ''.join(ch if ch.isalnum() else '-' for ch in report.patient.name).strip('-') or 'patient'
    return f'report-{report.id}-{safe}.pdf'
