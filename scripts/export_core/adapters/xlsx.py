"""
Excel (XLSX) export adapter.

Produces a workbook with:
- Sheet 1 ("Data"): the exported rows with column headers
- One sheet per caller-supplied additional sheet (e.g. "Totals")
- Last sheet ("Audit"): export metadata and checksum for verification

The workbook is a stored ZIP of SpreadsheetML parts written from scratch.
Every cell is an inline string, so no shared-string table is needed.
"""

import json
import re
from typing import List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from ..cancellation import CancelToken, check_cancelled
from ..delivery import XLSX_MIME_TYPE
from ..redaction import value_to_string
from ..types import ExportColumn, ExportFormat, ExportPayload, ExportRow
from .base import ExportAdapter, ProgressCallback, emit
from .ziparchive import build_zip

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
SPREADSHEET_NS = 'http://schemas.openxmlformats.org/spreadsheetml/2006/main'
RELATIONSHIP_NS = 'http://schemas.openxmlformats.org/officeDocument/2006/relationships'
PACKAGE_RELS_NS = 'http://schemas.openxmlformats.org/package/2006/relationships'
CONTENT_TYPES_NS = 'http://schemas.openxmlformats.org/package/2006/content-types'
WORKSHEET_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml'
WORKBOOK_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml'

DATA_SHEET_NAME = 'Data'
AUDIT_SHEET_NAME = 'Audit'
MAX_SHEET_NAME_LENGTH = 31

# Characters XML 1.0 does not allow, even escaped; lone surrogates cannot be UTF-8 encoded
_ILLEGAL_XML_CHARS = re.compile('[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]')
_INVALID_SHEET_CHARS = re.compile(r'[\[\]:*?/\\]')
_XML_ENTITIES = {'"': '&quot;', "'": '&apos;'}


def xml_text(text: str) -> str:
    """Escape text for XML content and attributes."""
    return escape(_ILLEGAL_XML_CHARS.sub('', text), _XML_ENTITIES)


def column_letter(index: int) -> str:
    """Convert a zero-based column index to A, B, ..., Z, AA, AB, ..."""
    letters = ''
    n = index
    while n >= 0:
        letters = chr(n % 26 + 65) + letters
        n = n // 26 - 1
    return letters


def _cell(ref: str, text: str) -> str:
    text = xml_text(text)
    space = ' xml:space="preserve"' if text != text.strip() else ''
    return f'<c r="{ref}" t="inlineStr"><is><t{space}>{text}</t></is></c>'


def build_sheet_xml(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """
    Build a worksheet from a header row and string cells.

    Args:
        headers: Column header labels
        rows: Cell text per row, in column order

    Returns:
        Worksheet XML document
    """
    lines = [XML_DECLARATION, f'<worksheet xmlns="{SPREADSHEET_NS}">\n<sheetData>\n']

    cells = ''.join(_cell(f"{column_letter(c)}1", h) for c, h in enumerate(headers))
    lines.append(f'<row r="1">{cells}</row>\n')

    for r, row in enumerate(rows, start=2):
        cells = ''.join(_cell(f"{column_letter(c)}{r}", v) for c, v in enumerate(row))
        lines.append(f'<row r="{r}">{cells}</row>\n')

    lines.append('</sheetData>\n</worksheet>')
    return ''.join(lines)


def table_cells(columns: Sequence[ExportColumn], rows: Sequence[ExportRow]) -> List[List[str]]:
    """Project rows onto columns as display strings; missing keys are empty."""
    return [[value_to_string(row.get(col.key)) for col in columns] for row in rows]


def sheet_names(extra_names: Sequence[str]) -> List[str]:
    """
    Produce valid, unique worksheet names for Data, the extra sheets and Audit.

    Invalid characters are replaced, names are cut to 31 characters, and
    duplicates (compared case-insensitively) get a " (n)" suffix. Data and
    Audit are reserved, so extra sheets never take their names.
    """
    names = [DATA_SHEET_NAME]
    taken = {DATA_SHEET_NAME.lower(), AUDIT_SHEET_NAME.lower()}

    for raw in extra_names:
        base = _INVALID_SHEET_CHARS.sub('_', raw or '').strip("' ") or 'Sheet'
        base = base[:MAX_SHEET_NAME_LENGTH]
        name = base
        n = 2
        while name.lower() in taken:
            suffix = f" ({n})"
            name = base[:MAX_SHEET_NAME_LENGTH - len(suffix)] + suffix
            n += 1
        taken.add(name.lower())
        names.append(name)

    names.append(AUDIT_SHEET_NAME)
    return names


def audit_rows(payload: ExportPayload) -> List[List[str]]:
    """Two-column Property/Value table describing the export."""
    metadata = payload.metadata
    config = payload.config
    date_range = config.date_range.to_dict() if config.date_range else {}

    return [
        ['Export ID', metadata.export_id],
        ['Timestamp', metadata.timestamp],
        ['Initiating User (hashed)', metadata.initiating_user_hash],
        ['Module', value_to_string(metadata.module)],
        ['Module Display Name', metadata.module_display_name],
        ['Record Count', str(metadata.record_count)],
        ['Data Checksum', metadata.data_checksum],
        ['Full Export Requested', value_to_string(metadata.full_export_requested)],
        ['App Version', metadata.app_version],
        ['Included Fields', ', '.join(metadata.included_fields)],
        ['Redacted Fields', ', '.join(metadata.redacted_fields)],
        ['Filters Used', json.dumps(metadata.filters_used, default=str, sort_keys=True)],
        ['Date Range', json.dumps(date_range, sort_keys=True)],
        ['Format', value_to_string(config.format)],
    ]


def build_package_parts(sheets: Sequence[Tuple[str, str]]) -> List[Tuple[str, bytes]]:
    """
    Wrap worksheets into the minimal set of SpreadsheetML package parts.

    Args:
        sheets: (sheet name, worksheet XML) in workbook order

    Returns:
        (archive path, bytes) entries ready for the ZIP writer
    """
    overrides = ''.join(
        f'  <Override PartName="/xl/worksheets/sheet{i}.xml" ContentType="{WORKSHEET_TYPE}"/>\n'
        for i in range(1, len(sheets) + 1)
    )
    sheet_elements = ''.join(
        f'    <sheet name="{xml_text(name)}" sheetId="{i}" r:id="rId{i}"/>\n'
        for i, (name, _) in enumerate(sheets, start=1)
    )
    sheet_rels = ''.join(
        f'  <Relationship Id="rId{i}" Type="{RELATIONSHIP_NS}/worksheet" '
        f'Target="worksheets/sheet{i}.xml"/>\n'
        for i in range(1, len(sheets) + 1)
    )

    content_types = (
        f'{XML_DECLARATION}<Types xmlns="{CONTENT_TYPES_NS}">\n'
        '  <Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>\n'
        '  <Default Extension="xml" ContentType="application/xml"/>\n'
        f'  <Override PartName="/xl/workbook.xml" ContentType="{WORKBOOK_TYPE}"/>\n'
        f'{overrides}</Types>'
    )
    root_rels = (
        f'{XML_DECLARATION}<Relationships xmlns="{PACKAGE_RELS_NS}">\n'
        f'  <Relationship Id="rId1" Type="{RELATIONSHIP_NS}/officeDocument" Target="xl/workbook.xml"/>\n'
        '</Relationships>'
    )
    workbook = (
        f'{XML_DECLARATION}<workbook xmlns="{SPREADSHEET_NS}" xmlns:r="{RELATIONSHIP_NS}">\n'
        f'  <sheets>\n{sheet_elements}  </sheets>\n</workbook>'
    )
    workbook_rels = (
        f'{XML_DECLARATION}<Relationships xmlns="{PACKAGE_RELS_NS}">\n'
        f'{sheet_rels}</Relationships>'
    )

    parts = [
        ('[Content_Types].xml', content_types),
        ('_rels/.rels', root_rels),
        ('xl/workbook.xml', workbook),
        ('xl/_rels/workbook.xml.rels', workbook_rels),
    ]
    parts.extend(
        (f'xl/worksheets/sheet{i}.xml', xml)
        for i, (_, xml) in enumerate(sheets, start=1)
    )
    return [(path, text.encode('utf-8')) for path, text in parts]


class XlsxAdapter(ExportAdapter):
    """Stored-ZIP SpreadsheetML encoder."""

    format = ExportFormat.XLSX
    extension = 'xlsx'
    mime_type = XLSX_MIME_TYPE

    def encode(
        self,
        payload: ExportPayload,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None
    ) -> bytes:
        emit(on_progress, 30, 'Building data sheet...')
        data_xml = build_sheet_xml(
            [c.label for c in payload.columns],
            table_cells(payload.columns, payload.rows),
        )
        check_cancelled(cancel_token)

        extra = payload.additional_sheets or []
        extra_xml: List[str] = []
        for sheet in extra:
            extra_xml.append(build_sheet_xml(
                [c.label for c in sheet.columns],
                table_cells(sheet.columns, sheet.rows),
            ))
            check_cancelled(cancel_token)

        emit(on_progress, 50, 'Building audit sheet...')
        audit_xml = build_sheet_xml(['Property', 'Value'], audit_rows(payload))
        check_cancelled(cancel_token)

        emit(on_progress, 70, 'Assembling XLSX package...', cancellable=False)
        names = sheet_names([sheet.name for sheet in extra])
        sheets = list(zip(names, [data_xml, *extra_xml, audit_xml]))
        return build_zip(build_package_parts(sheets))
