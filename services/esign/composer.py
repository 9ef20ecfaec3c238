"""
NDA Document Composer

Renders the platform's fixed non-disclosure agreement into a PDF.

Output is byte-for-byte deterministic for identical inputs: reportlab runs
in invariant mode (fixed creation date and document id) and nothing in the
document depends on the clock. The workflow relies on this when it decides
whether an upload can be skipped, and tests compare bytes directly.
"""

import logging
from io import BytesIO
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .types import CompanyInfo, ProjectInfo, SignerNames

logger = logging.getLogger(__name__)

PLATFORM_NAME = 'LinkTech'
PLATFORM_URL = 'https://linktech.app'

AGREEMENT_TERMS = [
    'The company signing below agrees to maintain the confidentiality of all project information '
    'disclosed through the platform or directly by the project owner.',
    'This agreement is effective from the date of digital signing.',
    'This agreement remains valid for two years after project completion.',
    'Any breach of this agreement allows legal action by the affected party.',
    'This agreement is governed by the laws of the Kingdom of Saudi Arabia and its digital '
    'signature regulations.',
    'Digital signatures applied through the signing provider are legally binding and equivalent '
    'to handwritten signatures.',
]

RECONSTRUCTION_NOTICE = (
    'RECONSTRUCTED COPY - regenerated from platform records. '
    'This is not the verified signed original held by the signing provider.'
)


def _styles():
    base = getSampleStyleSheet()
    return {
        'title': ParagraphStyle('NdaTitle', parent=base['Title'], fontSize=18,
                                textColor=colors.HexColor('#1a56db'), spaceAfter=8 * mm),
        'heading': ParagraphStyle('NdaHeading', parent=base['Heading2'], fontSize=13,
                                  textColor=colors.HexColor('#1e40af'), spaceBefore=4 * mm),
        'body': ParagraphStyle('NdaBody', parent=base['BodyText'], fontSize=10.5, leading=15),
        'notice': ParagraphStyle('NdaNotice', parent=base['BodyText'], fontSize=10,
                                 textColor=colors.HexColor('#b91c1c'), borderColor=colors.HexColor('#b91c1c'),
                                 borderWidth=1, borderPadding=6, spaceAfter=6 * mm),
        'footer': ParagraphStyle('NdaFooter', parent=base['BodyText'], fontSize=8,
                                 textColor=colors.HexColor('#666666')),
    }


def reference_label(project: ProjectInfo) -> str:
    """Human-readable agreement reference printed on the document."""
    return f"NDA-{project.id}"


def compose_nda_pdf(
    project: ProjectInfo,
    company: CompanyInfo,
    signer_names: Optional[SignerNames] = None,
    reconstruction: bool = False
) -> bytes:
    """
    Render the NDA for a project and company.

    Args:
        project: Project id, title and description
        company: Company display name and location
        signer_names: Names for the signature block, usually masked before signing
        reconstruction: Stamp the document as a regenerated copy

    Returns:
        PDF bytes
    """
    styles = _styles()
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        title=f"Non-Disclosure Agreement - {project.title}",
        author=PLATFORM_NAME,
        subject=reference_label(project),
        creator=PLATFORM_NAME,
        invariant=1,
    )

    story = []
    if reconstruction:
        story.append(Paragraph(escape(RECONSTRUCTION_NOTICE), styles['notice']))

    story.append(Paragraph('Non-Disclosure Agreement (NDA)', styles['title']))

    story.append(Paragraph('Project Information', styles['heading']))
    story.append(Paragraph(f"<b>Project name:</b> {escape(project.title or 'Not specified')}", styles['body']))
    story.append(Paragraph(f"<b>Description:</b> {escape(project.description or 'Not specified')}", styles['body']))

    story.append(Paragraph('Parties', styles['heading']))
    story.append(Paragraph('<b>First party:</b> the project owner', styles['body']))
    company_line = escape(company.name or 'Not specified')
    if company.location:
        company_line += f" ({escape(company.location)})"
    story.append(Paragraph(f"<b>Second party:</b> {company_line}", styles['body']))

    story.append(Paragraph('Agreement Terms', styles['heading']))
    for number, term in enumerate(AGREEMENT_TERMS, start=1):
        story.append(Paragraph(f"{number}. {escape(term)}", styles['body']))

    story.append(Paragraph('Signatures', styles['heading']))
    names = signer_names or SignerNames(entrepreneur='', company_rep='')
    signature_table = Table(
        [
            ['First Party (Project Owner)', 'Second Party (Company Representative)'],
            [names.entrepreneur or '________________', names.company_rep or '________________'],
            ['Signature:', 'Signature:'],
            ['', ''],
        ],
        colWidths=[80 * mm, 80 * mm],
        rowHeights=[8 * mm, 8 * mm, 8 * mm, 22 * mm],
    )
    signature_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('BOX', (0, 3), (0, 3), 0.5, colors.grey),
        ('BOX', (1, 3), (1, 3), 0.5, colors.grey),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]))
    story.append(Spacer(1, 4 * mm))
    story.append(signature_table)

    story.append(Spacer(1, 10 * mm))
    story.append(Paragraph(f"Created via {PLATFORM_NAME} - {PLATFORM_URL}", styles['footer']))
    story.append(Paragraph(f"Reference: {reference_label(project)}", styles['footer']))

    doc.build(story)
    pdf_bytes = buffer.getvalue()
    logger.info(f"Composed NDA for project {project.id} ({len(pdf_bytes)} bytes, reconstruction={reconstruction})")
    return pdf_bytes
