"""Document text extraction — PDF, DOCX, HTML, Markdown and plain text.

Every extractor takes raw bytes and returns plain text with paragraph
boundaries preserved as blank lines, which the chunker splits on.
"""

from __future__ import annotations

import io

import docx
import html2text
import pypdf
from bs4 import BeautifulSoup

# Links are kept: listing URLs inside documents are grounding data.
_h2t = html2text.HTML2Text()
_h2t.ignore_links = False
_h2t.ignore_images = True
_h2t.body_width = 0

_STRIP_TAGS = ("script", "style", "nav", "footer", "noscript")


def decode_text(content: bytes) -> str:
    return content.decode("utf-8-sig", errors="replace")


def extract_pdf(content: bytes) -> str:
    """Page text joined by blank lines. Pages without text (scans) are skipped."""
    reader = pypdf.PdfReader(io.BytesIO(content))
    parts: list[str] = []
    for page in reader.pages:
        page_text = (page.extract_text() or "").strip()
        if page_text:
            parts.append(page_text)
    return "\n\n".join(parts)


def extract_docx(content: bytes) -> str:
    """Paragraphs (headings as markdown) followed by tables as ``a | b`` rows."""
    document = docx.Document(io.BytesIO(content))
    paragraphs: list[str] = []

    for para in document.paragraphs:
        text = para.text.strip()
        if not text:
            continue
        style = para.style.name if para.style is not None else ""
        if style.startswith("Heading "):
            level = style.removeprefix("Heading ")
            if level.isdigit():
                text = f"{'#' * int(level)} {text}"
        paragraphs.append(text)

    for table in document.tables:
        table_rows = [" | ".join(cell.text.strip() for cell in row.cells) for row in table.rows]
        if table_rows:
            paragraphs.append("\n".join(table_rows))

    return "\n\n".join(paragraphs)


def extract_html(content: bytes) -> str:
    """Strip boilerplate tags with BeautifulSoup, then convert to markdown text."""
    soup = BeautifulSoup(decode_text(content), "html.parser")
    for tag in soup(_STRIP_TAGS):
        tag.decompose()
    return _h2t.handle(str(soup)).strip()


def html_title(content: bytes) -> str:
    soup = BeautifulSoup(decode_text(content), "html.parser")
    return soup.title.get_text(strip=True) if soup.title else ""
