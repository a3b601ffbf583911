"""
Artifact rendering collaborator.

Turns generated text into a PDF (ReportLab) and stores it in S3, returning
the object key as the artifact reference.
"""
from __future__ import annotations

import io
import uuid
from datetime import datetime
from typing import Any, Optional, Protocol
from xml.sax.saxutils import escape

import boto3
from botocore.exceptions import ClientError
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer

from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.services.document_registry import get_document_type


class ArtifactRenderer(Protocol):
    def render(self, text: str, document_type: str) -> str:
        ...


def build_pdf(text: str, title: str) -> bytes:
    """Lay ``text`` out as an A4 PDF; blank lines separate paragraphs."""
    buf = io.BytesIO()
    doc_pdf = SimpleDocTemplate(
        buf, pagesize=A4,
        rightMargin=0.9 * inch, leftMargin=0.9 * inch,
        topMargin=0.8 * inch, bottomMargin=0.8 * inch,
        title=title,
    )

    styles = getSampleStyleSheet()
    title_st = ParagraphStyle("T", parent=styles["Normal"], fontSize=14, spaceAfter=6,
                              alignment=TA_CENTER, fontName="Helvetica-Bold")
    sub_st = ParagraphStyle("Sub", parent=styles["Normal"], fontSize=8, spaceAfter=10,
                            alignment=TA_CENTER, textColor=colors.HexColor("#6b7280"))
    body_st = ParagraphStyle("Body", parent=styles["Normal"], fontSize=10, leading=14, spaceAfter=8)

    story = [
        Paragraph(escape(title), title_st),
        Paragraph(f"Prepared {datetime.utcnow().strftime('%d %B %Y')}", sub_st),
        HRFlowable(width="100%", thickness=0.75, color=colors.HexColor("#e5e7eb")),
        Spacer(1, 10),
    ]
    for block in text.split("\n\n"):
        block = block.strip()
        if block:
            story.append(Paragraph(escape(block).replace("\n", "<br/>"), body_st))

    doc_pdf.build(story)
    return buf.getvalue()


class S3PdfRenderer:
    """Renders to PDF and uploads to the artifact bucket."""

    def __init__(self, client: Optional[Any] = None) -> None:
        self.s3_client = client or boto3.client(
            "s3",
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        )
        self.bucket = settings.ARTIFACT_S3_BUCKET
        self.prefix = settings.ARTIFACT_S3_PREFIX.strip("/")

    def render(self, text: str, document_type: str) -> str:
        spec = get_document_type(document_type)
        title = spec.official_name if spec else document_type
        pdf_bytes = build_pdf(text, title)

        key = f"{self.prefix}/{document_type}/{uuid.uuid4()}.pdf"
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=pdf_bytes,
                ContentType="application/pdf",
            )
        except ClientError as e:
            logger.error("Failed to store %s artifact: %s", document_type, e)
            raise
        logger.info("Stored %s artifact at s3://%s/%s (%d bytes)", document_type, self.bucket, key, len(pdf_bytes))
        return key
