"""Render a finalized OPRA request as a letter-size PDF with reportlab."""

import re
from datetime import date
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer

from opradraft.core.types import RequestData
from opradraft.drafting.composer import BULLET, format_date

_BOLD = re.compile(r"\*\*(.+?)\*\*")

LEGAL_NOTICE = (
    "This request is made pursuant to the Open Public Records Act (OPRA), N.J.S.A. 47:1A-1 et seq. "
    "A response is required within seven (7) business days pursuant to N.J.S.A. 47:1A-5(i)."
)


def _markup(line: str) -> str:
    """Escape for reportlab's mini-XML and turn **bold** into <b> tags."""
    return _BOLD.sub(r"<b>\1</b>", escape(line))


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("RequestTitle", parent=base["Title"], fontSize=16, spaceAfter=4),
        "subtitle": ParagraphStyle("RequestSubtitle", parent=base["Heading2"], fontSize=12, spaceAfter=2),
        "label": ParagraphStyle("Label", parent=base["Normal"], fontName="Helvetica-Bold", fontSize=10),
        "body": ParagraphStyle("Body", parent=base["Normal"], fontSize=10.5, leading=14, spaceAfter=4),
        "bullet": ParagraphStyle("Bullet", parent=base["Normal"], fontSize=10.5, leading=14, leftIndent=24),
        "footer": ParagraphStyle("Footer", parent=base["Normal"], fontSize=8, textColor=colors.grey),
    }


def render_request_pdf(request_text: str, data: RequestData, on: date | None = None) -> bytes:
    """PDF bytes for ``request_text`` with a title block, recipient block and RE line."""
    on = on or date.today()
    styles = _styles()
    municipality = data.municipality
    custodian = data.custodian
    story = [
        Paragraph("OPEN PUBLIC RECORDS ACT REQUEST", styles["title"]),
        Paragraph(escape(f"{municipality.name}, {municipality.state}"), styles["subtitle"]),
    ]
    if data.request_number:
        story.append(Paragraph(escape(f"Request No. {data.request_number}"), styles["body"]))
    story += [
        Paragraph(format_date(on), styles["body"]),
        HRFlowable(width="100%", thickness=1, color=colors.lightgrey, spaceBefore=12, spaceAfter=12),
        Paragraph("TO:", styles["label"]),
    ]

    recipient = [
        custodian.name if custodian else "Municipal Clerk",
        custodian.title if custodian else "OPRA Custodian",
        f"{municipality.name} Municipality",
    ]
    if custodian and custodian.address:
        recipient.append(custodian.address)
    if custodian and custodian.email:
        recipient.append(f"Email: {custodian.email}")
    story += [Paragraph(escape(line), styles["body"]) for line in recipient]

    code = f" ({data.ordinance.code})" if data.ordinance.code else ""
    story += [
        Spacer(1, 0.2 * inch),
        Paragraph(f"<b>RE:</b> {escape(f'OPRA Request - {data.ordinance.title}{code}')}", styles["body"]),
        Spacer(1, 0.15 * inch),
    ]

    for line in request_text.splitlines():
        stripped = line.strip()
        if not stripped:
            story.append(Spacer(1, 6))
        elif stripped.startswith(BULLET):
            story.append(Paragraph(_markup(stripped), styles["bullet"]))
        else:
            story.append(Paragraph(_markup(stripped), styles["body"]))

    story += [
        Spacer(1, 0.3 * inch),
        Paragraph("Legal Notice", styles["subtitle"]),
        Paragraph(LEGAL_NOTICE, styles["footer"]),
    ]

    def _page_footer(canvas, doc):
        canvas.saveState()
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(colors.grey)
        canvas.drawString(doc.leftMargin, 0.5 * inch, f"Generated on {format_date(on)}")
        canvas.drawRightString(letter[0] - doc.rightMargin, 0.5 * inch, f"Page {doc.page}")
        canvas.restoreState()

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        leftMargin=0.85 * inch,
        rightMargin=0.85 * inch,
        topMargin=0.8 * inch,
        bottomMargin=0.8 * inch,
        title=f"OPRA Request - {municipality.name}",
        author="opradraft",
    )
    doc.build(story, onFirstPage=_page_footer, onLaterPages=_page_footer)
    return buffer.getvalue()
