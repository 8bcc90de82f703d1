from __future__ import annotations

import textwrap
from pathlib import PurePath
from typing import List, Tuple

import fitz  # PyMuPDF

from .models import DocumentKnowledge

PAGE_WIDTH, PAGE_HEIGHT = fitz.paper_size("a4")
MARGIN = 56
REGULAR_FONT = "helv"
BOLD_FONT = "hebo"


def export_filename(doc: DocumentKnowledge, extension: str) -> str:
    stem = PurePath(doc.file_name).stem if doc.file_name else doc.id
    return f"{stem}_insight.{extension}"


def export_markdown(doc: DocumentKnowledge) -> str:
    meta = doc.metadata
    lines: List[str] = [f"# {meta.title or doc.file_name}", ""]
    lines.append(f"**Category:** {meta.category or 'Uncategorized'}")
    if meta.author:
        lines.append(f"**Author:** {meta.author}")
    if meta.date:
        lines.append(f"**Date:** {meta.date}")
    lines += ["", "## Executive Summary", "", meta.summary, ""]

    if meta.key_points:
        lines += ["## Key Takeaways", ""]
        lines += [f"- {point}" for point in meta.key_points]
        lines.append("")

    if doc.toc:
        lines += ["## Table of Contents", ""]
        lines += [f"- {entry}" for entry in doc.toc]
        lines.append("")

    if doc.tables:
        lines += ["## Extracted Tables", ""]
        for table in sorted(doc.tables, key=lambda t: t.page_number):
            lines += [f"**{table.summary}** (Page {table.page_number})", ""]
            if table.headers:
                lines.append("| " + " | ".join(_md_cell(h) for h in table.headers) + " |")
                lines.append("|" + "---|" * len(table.headers))
            for row in table.rows:
                lines.append("| " + " | ".join(_md_cell(c) for c in row) + " |")
            lines.append("")

    if doc.images:
        lines += ["## Visuals", ""]
        for image in sorted(doc.images, key=lambda i: i.page_number):
            lines.append(f"- *{image.image_type}* (Page {image.page_number}): {image.description}")
        lines.append("")

    lines += ["## Detailed Sections", ""]
    for section in sorted(doc.sections, key=lambda s: s.page_number):
        lines += [f"### {section.title} (Page {section.page_number})", "", section.content, ""]
    return "\n".join(lines).rstrip() + "\n"


def _md_cell(value: str) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def export_pdf(doc: DocumentKnowledge) -> bytes:
    """
    Render a plain-text knowledge report as a PDF with PyMuPDF's base-14
    Helvetica fonts.
    """
    meta = doc.metadata
    blocks: List[Tuple[str, float, bool]] = [
        (f"Knowledge Export: {meta.title or doc.file_name}", 16, True),
        (f"Category: {meta.category or 'Uncategorized'}", 10, True),
        ("Executive Summary", 14, True),
        (meta.summary, 10, False),
        ("Key Takeaways", 14, True),
    ]
    blocks += [(f"- {point}", 10, False) for point in meta.key_points]
    if doc.tables:
        blocks.append(("Extracted Tables", 14, True))
        for table in sorted(doc.tables, key=lambda t: t.page_number):
            blocks.append((f"{table.summary} (Page {table.page_number})", 11, True))
            if table.headers:
                blocks.append((" | ".join(table.headers), 9, True))
            blocks += [(" | ".join(row), 9, False) for row in table.rows]
    blocks.append(("Extracted Sections", 14, True))
    for section in sorted(doc.sections, key=lambda s: s.page_number):
        blocks.append((f"{section.title} (Page {section.page_number})", 12, True))
        blocks.append((section.content, 10, False))

    pdf = fitz.open()
    try:
        _PdfWriter(pdf).write(blocks)
        return pdf.tobytes()
    finally:
        pdf.close()


class _PdfWriter:
    def __init__(self, pdf):
        self.pdf = pdf
        self.page = None
        self.y = PAGE_HEIGHT

    def write(self, blocks: List[Tuple[str, float, bool]]) -> None:
        self._new_page()
        for text, size, bold in blocks:
            self._write_block(text or "", size, bold)

    def _new_page(self) -> None:
        self.page = self.pdf.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        self.y = MARGIN

    def _write_block(self, text: str, size: float, bold: bool) -> None:
        # Helvetica averages roughly half an em per character.
        chars_per_line = max(20, int((PAGE_WIDTH - 2 * MARGIN) / (size * 0.5)))
        line_height = size * 1.4
        for paragraph in text.splitlines() or [""]:
            for line in textwrap.wrap(paragraph, width=chars_per_line) or [""]:
                if self.y + line_height > PAGE_HEIGHT - MARGIN:
                    self._new_page()
                self.y += line_height
                self.page.insert_text(
                    (MARGIN, self.y),
                    line,
                    fontsize=size,
                    fontname=BOLD_FONT if bold else REGULAR_FONT,
                )
        self.y += size * 0.6
