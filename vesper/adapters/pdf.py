"""Markdown to PDF rendering for the nightly report."""

from __future__ import annotations

import html
import logging

import markdown

from .base import PdfRenderer

logger = logging.getLogger(__name__)

REPORT_CSS = """
@page { size: A4; margin: 2cm; }
body { font-family: "Helvetica", "Arial", sans-serif; font-size: 11pt; line-height: 1.5; color: #222; }
h1 { font-size: 20pt; border-bottom: 2px solid #444; padding-bottom: 4pt; }
h2 { font-size: 15pt; margin-top: 18pt; }
h3 { font-size: 12pt; }
table { border-collapse: collapse; width: 100%; }
th, td { border: 1px solid #ccc; padding: 4pt 6pt; }
code { font-family: "Courier New", monospace; background: #f4f4f4; }
"""


def report_html(markdown_text: str, title: str) -> str:
    """Wrap converted Markdown in a standalone HTML page."""
    body = markdown.markdown(markdown_text, extensions=["tables", "fenced_code"])
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title><style>{REPORT_CSS}</style></head>"
        f"<body><h1>{html.escape(title)}</h1>{body}</body></html>"
    )


class MarkdownPdfRenderer(PdfRenderer):
    def render(self, markdown_text: str, title: str) -> bytes:
        try:
            from weasyprint import HTML
        except ImportError:
            raise ImportError(
                "weasyprint is required for PDF export. "
                "Install with: pip install weasyprint>=60.0"
            )

        pdf_bytes = HTML(string=report_html(markdown_text, title)).write_pdf()
        logger.info(f"Rendered report PDF '{title}': {len(pdf_bytes)} bytes")
        return pdf_bytes
