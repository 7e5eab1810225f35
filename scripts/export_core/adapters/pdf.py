"""
PDF export adapter.

Produces a PDF 1.4 report with:
- Fixed-geometry table pages for the exported rows (A4 landscape)
- One paginated section per caller-supplied additional sheet
- An optional audit section with the metadata as pretty-printed JSON

The document is written from scratch: a catalog, a page tree, one shared
Helvetica font, and a page object plus content stream per page, followed
by the cross-reference table and trailer.

Layout is intentionally simple: cells are truncated to a fixed character
budget instead of wrapped, and no font metrics are used.
"""

import json
from typing import List, Optional, Sequence

from ..cancellation import CancelToken, check_cancelled
from ..delivery import PDF_MIME_TYPE
from ..redaction import value_to_string
from ..types import ExportColumn, ExportFormat, ExportPayload, ExportRow
from ..utils import truncate
from .base import ExportAdapter, ProgressCallback, emit

# Page geometry (points), A4 landscape
PAGE_WIDTH = 842
PAGE_HEIGHT = 595
MARGIN = 40
HEADER_HEIGHT = 50
FOOTER_HEIGHT = 30
ROW_HEIGHT = 16
MAX_COLUMN_WIDTH = 200

TITLE_FONT_SIZE = 12
SUBTITLE_FONT_SIZE = 8
HEADER_FONT_SIZE = 10
CELL_FONT_SIZE = 9
FOOTER_FONT_SIZE = 7
META_TITLE_FONT_SIZE = 14
META_FONT_SIZE = 8
META_LINE_HEIGHT = 12

HEADER_CHAR_BUDGET = 24
CELL_CHAR_BUDGET = 28

USABLE_HEIGHT = PAGE_HEIGHT - MARGIN * 2 - HEADER_HEIGHT - FOOTER_HEIGHT
# One row slot is taken by the column headers
ROWS_PER_PAGE = USABLE_HEIGHT // ROW_HEIGHT - 1
TABLE_TOP = PAGE_HEIGHT - MARGIN - HEADER_HEIGHT

META_TOP = PAGE_HEIGHT - MARGIN - 40
META_LINES_PER_PAGE = (META_TOP - MARGIN) // META_LINE_HEIGHT + 1

TEXT_ENCODING = 'cp1252'


def _num(value: float) -> str:
    """Format a coordinate without trailing zeros."""
    text = f"{value:.2f}".rstrip('0').rstrip('.')
    return text or '0'


def pdf_string(text: str) -> str:
    """Escape text as a PDF literal string."""
    text = text.replace('\\', '\\\\').replace('(', '\\(').replace(')', '\\)')
    for control in ('\r\n', '\r', '\n', '\t'):
        text = text.replace(control, ' ')
    return f"({text})"


def text_op(font_size: int, x: float, y: float, text: str) -> str:
    """One positioned text-show operator."""
    return f"BT /F1 {font_size} Tf {_num(x)} {_num(y)} Td {pdf_string(text)} Tj ET\n"


def column_width(column_count: int) -> float:
    """Usable width split evenly across columns, capped."""
    return min((PAGE_WIDTH - MARGIN * 2) / max(column_count, 1), MAX_COLUMN_WIDTH)


def paginate(rows: Sequence[ExportRow], per_page: int = ROWS_PER_PAGE) -> List[Sequence[ExportRow]]:
    """Split rows into page-sized chunks; an empty table still gets one page."""
    if not rows:
        return [[]]
    return [rows[i:i + per_page] for i in range(0, len(rows), per_page)]


def render_table_page(
    title: str,
    subtitle: str,
    columns: Sequence[ExportColumn],
    rows: Sequence[ExportRow],
    footer: str
) -> str:
    """
    Build the content stream of one table page.

    Args:
        title: Header line
        subtitle: Metadata line below the header
        columns: Column definitions (header cells)
        rows: Rows placed on this page
        footer: Footer line

    Returns:
        Content stream text
    """
    width = column_width(len(columns))
    ops = [
        text_op(TITLE_FONT_SIZE, MARGIN, PAGE_HEIGHT - MARGIN - 14, title),
        text_op(SUBTITLE_FONT_SIZE, MARGIN, PAGE_HEIGHT - MARGIN - 28, subtitle),
    ]

    for c, column in enumerate(columns):
        ops.append(text_op(
            HEADER_FONT_SIZE, MARGIN + c * width + 2, TABLE_TOP - ROW_HEIGHT + 4,
            truncate(column.label, HEADER_CHAR_BUDGET),
        ))

    separator_y = TABLE_TOP - ROW_HEIGHT - 2
    ops.append(
        f"{_num(MARGIN)} {_num(separator_y)} m "
        f"{_num(MARGIN + len(columns) * width)} {_num(separator_y)} l S\n"
    )

    for r, row in enumerate(rows):
        y = TABLE_TOP - (r + 2) * ROW_HEIGHT + 4
        for c, column in enumerate(columns):
            ops.append(text_op(
                CELL_FONT_SIZE, MARGIN + c * width + 2, y,
                truncate(value_to_string(row.get(column.key)), CELL_CHAR_BUDGET),
            ))

    ops.append(text_op(FOOTER_FONT_SIZE, MARGIN, MARGIN - 5, footer))
    return ''.join(ops)


def render_metadata_pages(metadata_lines: Sequence[str]) -> List[str]:
    """
    Build the audit metadata section, one text line per JSON line.

    Lines that do not fit continue on further pages.
    """
    pages = []
    chunks = [
        metadata_lines[i:i + META_LINES_PER_PAGE]
        for i in range(0, len(metadata_lines), META_LINES_PER_PAGE)
    ] or [[]]

    for index, chunk in enumerate(chunks):
        title = 'Export Audit Metadata' if index == 0 else 'Export Audit Metadata (continued)'
        ops = [text_op(META_TITLE_FONT_SIZE, MARGIN, PAGE_HEIGHT - MARGIN - 14, title)]
        for i, line in enumerate(chunk):
            ops.append(text_op(META_FONT_SIZE, MARGIN, META_TOP - i * META_LINE_HEIGHT, line))
        pages.append(''.join(ops))

    return pages


def build_pdf(page_streams: Sequence[str]) -> bytes:
    """
    Assemble a PDF document from page content streams.

    Object numbering: 1 catalog, 2 page tree, 3 font, then a content
    stream and a page object per page.

    Returns:
        The complete document bytes
    """
    objects: List[bytes] = [
        b'<< /Type /Catalog /Pages 2 0 R >>',
        b'',  # page tree, filled in once the page ids are known
        b'<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>',
    ]
    font_id = 3
    page_ids = []

    for stream in page_streams:
        data = stream.encode(TEXT_ENCODING, errors='replace')
        objects.append(
            f"<< /Length {len(data)} >>\nstream\n".encode('ascii') + data + b"\nendstream"
        )
        stream_id = len(objects)
        objects.append((
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {PAGE_WIDTH} {PAGE_HEIGHT}] "
            f"/Contents {stream_id} 0 R /Resources << /Font << /F1 {font_id} 0 R >> >> >>"
        ).encode('ascii'))
        page_ids.append(len(objects))

    kids = ' '.join(f"{page_id} 0 R" for page_id in page_ids)
    objects[1] = f"<< /Type /Pages /Kids [{kids}] /Count {len(page_ids)} >>".encode('ascii')

    out = bytearray(b'%PDF-1.4\n%\xe2\xe3\xcf\xd3\n')
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode('ascii') + body + b"\nendobj\n"

    xref_offset = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode('ascii')
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode('ascii')

    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_offset}\n%%EOF\n"
    ).encode('ascii')
    return bytes(out)


class PdfAdapter(ExportAdapter):
    """Fixed-layout PDF table report encoder."""

    format = ExportFormat.PDF
    extension = 'pdf'
    mime_type = PDF_MIME_TYPE

    def encode(
        self,
        payload: ExportPayload,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None
    ) -> bytes:
        metadata = payload.metadata
        streams: List[str] = []

        emit(on_progress, 30, 'Building PDF document...')
        title = f"{metadata.module_display_name} - Export Report"
        subtitle = (
            f"Export ID: {metadata.export_id}  |  Date: {metadata.timestamp}  |  "
            f"Records: {metadata.record_count}"
        )
        marker = 'FULL EXPORT' if payload.config.full_export else 'Redacted'

        pages = paginate(payload.rows)
        for index, page_rows in enumerate(pages, start=1):
            footer = (
                f"Page {index} of {len(pages)}  |  "
                f"Checksum: {metadata.data_checksum[:16]}  |  {marker}"
            )
            streams.append(render_table_page(title, subtitle, payload.columns, page_rows, footer))
        check_cancelled(cancel_token)

        for sheet in payload.additional_sheets or []:
            sheet_pages = paginate(sheet.rows)
            for index, page_rows in enumerate(sheet_pages, start=1):
                streams.append(render_table_page(
                    sheet.name,
                    f"Sheet: {sheet.name}  |  Records: {len(sheet.rows)}",
                    sheet.columns,
                    page_rows,
                    f"{sheet.name} - Page {index} of {len(sheet_pages)}",
                ))
            check_cancelled(cancel_token)

        if payload.config.include_audit_metadata:
            emit(on_progress, 60, 'Adding audit metadata...')
            lines = json.dumps(metadata.to_dict(), indent=2, default=str).split('\n')
            streams.extend(render_metadata_pages(lines))

        emit(on_progress, 75, 'Assembling PDF...', cancellable=False)
        return build_pdf(streams)
