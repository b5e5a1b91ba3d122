"""Build Word documents from markdown with python-docx."""

from __future__ import annotations

import io
import re
from dataclasses import dataclass
from typing import List

from docx import Document

CODE_FONT = "Courier New"

_HEADING_PREFIXES = [("# ", 1), ("## ", 2), ("### ", 3), ("#### ", 4)]

# python-docx refuses longer core properties.
MAX_PROPERTY_CHARS = 255
_XML_INVALID = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


@dataclass(slots=True)
class InlineRun:
    text: str
    bold: bool = False
    italic: bool = False
    code: bool = False


def parse_inline_formatting(text: str) -> List[InlineRun]:
    """Split a line into runs for ``**bold**``, ``*italic*`` and ``code`` spans.

    Markers are not nested. An opening marker without its closing partner is
    kept as literal text.
    """
    runs: List[InlineRun] = []
    current = ""
    i = 0
    length = len(text)

    while i < length:
        char = text[i]
        nxt = text[i + 1] if i + 1 < length else ""

        if char in "*_" and nxt == char:
            if current:
                runs.append(InlineRun(current))
                current = ""
            marker = char
            i += 2
            bold = ""
            while i < length - 1 and not (text[i] == marker and text[i + 1] == marker):
                bold += text[i]
                i += 1
            if i < length - 1:
                runs.append(InlineRun(bold, bold=True))
                i += 2
            else:
                current += marker * 2 + bold

        elif char in "*_":
            if current:
                runs.append(InlineRun(current))
                current = ""
            marker = char
            i += 1
            italic = ""
            while i < length and text[i] != marker:
                italic += text[i]
                i += 1
            if i < length:
                runs.append(InlineRun(italic, italic=True))
                i += 1
            else:
                current += marker + italic

        elif char == "`":
            if current:
                runs.append(InlineRun(current))
                current = ""
            i += 1
            code = ""
            while i < length and text[i] != "`":
                code += text[i]
                i += 1
            if i < length:
                runs.append(InlineRun(code, code=True))
                i += 1
            else:
                current += "`" + code

        else:
            current += char
            i += 1

    if current:
        runs.append(InlineRun(current))
    return runs or [InlineRun(text)]


def _heading(line: str) -> tuple[int, str] | None:
    for prefix, level in _HEADING_PREFIXES:
        if line.startswith(prefix):
            return level, line[len(prefix):]
    return None


def build_docx(markdown: str, title: str = "document") -> bytes:
    document = Document()
    document.core_properties.title = _XML_INVALID.sub("", title)[:MAX_PROPERTY_CHARS]

    for line in markdown.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            document.add_paragraph("")
            continue

        heading = _heading(trimmed)
        if heading is not None:
            level, text = heading
            document.add_heading(text, level=level)
            continue

        paragraph = document.add_paragraph()
        for run in parse_inline_formatting(trimmed):
            docx_run = paragraph.add_run(run.text)
            if run.bold:
                docx_run.bold = True
            if run.italic:
                docx_run.italic = True
            if run.code:
                docx_run.font.name = CODE_FONT

    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()
