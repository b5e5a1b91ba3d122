"""Export markdown to HTML, PDF, DOCX, plain text or markdown."""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

import markdown as markdown_lib

from mdstudio.errors import ConversionError, UnsupportedExportFormatError
from mdstudio.export.docx_writer import build_docx
from mdstudio.models import ExportResult
from mdstudio.utils.text import collapse_newlines

LOGGER = logging.getLogger(__name__)

SUPPORTED_FORMATS = ["html", "pdf", "docx", "txt", "md"]
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MARKDOWN_EXTENSIONS = ["extra", "nl2br", "sane_lists"]

HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
            line-height: 1.6;
            max-width: 800px;
            margin: 40px auto;
            padding: 0 20px;
            color: #333;
        }}
        code {{
            background-color: #f4f4f4;
            padding: 2px 6px;
            border-radius: 3px;
            font-family: 'Courier New', Courier, monospace;
        }}
        pre {{
            background-color: #f4f4f4;
            padding: 16px;
            border-radius: 6px;
            overflow-x: auto;
        }}
        pre code {{
            background-color: transparent;
            padding: 0;
        }}
        blockquote {{
            border-left: 4px solid #ddd;
            padding-left: 16px;
            margin-left: 0;
            color: #666;
        }}
        table {{
            border-collapse: collapse;
            width: 100%;
            margin: 20px 0;
        }}
        table th, table td {{
            border: 1px solid #ddd;
            padding: 12px;
            text-align: left;
        }}
        table th {{
            background-color: #f4f4f4;
        }}
        img {{
            max-width: 100%;
            height: auto;
        }}
    </style>
</head>
<body>
{body}
</body>
</html>"""

# Order matters: fenced code goes first so its contents never reach the
# inline rules, and images go before links so "![a](b)" is not left as "!a".
_TEXT_RULES = [
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"!\[([^\]]*)\]\([^)]+\)"), ""),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"(\*\*|__)(.*?)\1"), r"\2"),
    (re.compile(r"(\*|_)(.*?)\1"), r"\2"),
    (re.compile(r"`([^`]+)`"), r"\1"),
]


@dataclass(slots=True)
class PageOptions:
    format: str = "A4"
    margin: Dict[str, str] = field(
        default_factory=lambda: {"top": "20mm", "right": "20mm", "bottom": "20mm", "left": "20mm"}
    )
    print_background: bool = True


class PdfRenderer(Protocol):
    def render_pdf(self, html: str, options: PageOptions) -> bytes: ...


class PlaywrightPdfRenderer:
    """Print HTML to PDF with a headless Chromium launched per call."""

    def __init__(self, launch_args: Optional[List[str]] = None) -> None:
        self.launch_args = launch_args or ["--no-sandbox", "--disable-setuid-sandbox"]

    def render_pdf(self, html: str, options: PageOptions) -> bytes:
        from playwright.sync_api import sync_playwright

        with sync_playwright() as playwright:
            browser = playwright.chromium.launch(headless=True, args=self.launch_args)
            try:
                page = browser.new_page()
                page.set_content(html, wait_until="networkidle")
                return page.pdf(
                    format=options.format,
                    margin=options.margin,
                    print_background=options.print_background,
                )
            finally:
                try:
                    browser.close()
                except Exception as exc:
                    LOGGER.warning("Failed to close PDF browser: %s", exc)


def markdown_to_text(markdown: str) -> str:
    text = markdown
    for pattern, replacement in _TEXT_RULES:
        text = pattern.sub(replacement, text)
    return collapse_newlines(text)


class DocumentExporter:
    def __init__(self, pdf_renderer: Optional[PdfRenderer] = None) -> None:
        self.pdf_renderer = pdf_renderer or PlaywrightPdfRenderer()
        self._exporters: Dict[str, Callable[[str, str], ExportResult]] = {
            "html": self.export_html,
            "pdf": self.export_pdf,
            "docx": self.export_docx,
            "txt": self.export_text,
            "md": self.export_markdown,
        }

    @staticmethod
    def get_supported_formats() -> List[str]:
        return list(SUPPORTED_FORMATS)

    @staticmethod
    def is_format_supported(fmt: str) -> bool:
        return fmt.lower() in SUPPORTED_FORMATS

    def export_document(self, markdown: str, fmt: str, title: str = "document") -> ExportResult:
        exporter = self._exporters.get(fmt.lower())
        if exporter is None:
            raise UnsupportedExportFormatError(fmt, SUPPORTED_FORMATS)
        LOGGER.info("Exporting document to %s", fmt)
        return exporter(markdown, title)

    def render_html(self, markdown: str, title: str) -> str:
        body = markdown_lib.markdown(markdown, extensions=MARKDOWN_EXTENSIONS)
        return HTML_TEMPLATE.format(title=html.escape(title), body=body)

    def export_html(self, markdown: str, title: str = "document") -> ExportResult:
        return ExportResult(
            buffer=self.render_html(markdown, title).encode("utf-8"),
            mime_type="text/html",
            extension=".html",
        )

    def export_pdf(self, markdown: str, title: str = "document") -> ExportResult:
        page_html = self.render_html(markdown, title)
        try:
            pdf = self.pdf_renderer.render_pdf(page_html, PageOptions())
        except Exception as exc:
            raise ConversionError(f"PDF export failed: {exc}") from exc
        return ExportResult(buffer=pdf, mime_type="application/pdf", extension=".pdf")

    def export_docx(self, markdown: str, title: str = "document") -> ExportResult:
        try:
            buffer = build_docx(markdown, title)
        except Exception as exc:
            raise ConversionError(f"DOCX export failed: {exc}") from exc
        return ExportResult(
            buffer=buffer,
            mime_type=DOCX_MIME_TYPE,
            extension=".docx",
        )

    def export_text(self, markdown: str, title: str = "document") -> ExportResult:
        return ExportResult(
            buffer=markdown_to_text(markdown).encode("utf-8"),
            mime_type="text/plain",
            extension=".txt",
        )

    def export_markdown(self, markdown: str, title: str = "document") -> ExportResult:
        return ExportResult(buffer=markdown.encode("utf-8"), mime_type="text/markdown", extension=".md")
