"""
Format adapters.

Each adapter encodes an ExportPayload into one file format and delivers it.
"""

from .base import ExportAdapter, ProgressCallback, build_filename
from .pdf import PdfAdapter, build_pdf
from .xlsx import XlsxAdapter
from .ziparchive import build_zip, crc32

__all__ = [
    'ExportAdapter',
    'ProgressCallback',
    'build_filename',
    'PdfAdapter',
    'XlsxAdapter',
    'build_pdf',
    'build_zip',
    'crc32',
]
