"""
Delivery sinks for generated export files.

An adapter hands the finished bytes plus the deterministic filename to a
sink; the core's contract ends there. Sinks never receive partial output:
adapters only deliver after encoding succeeded, and FileSink writes
through a temporary file that is renamed into place.
"""

import os
import tempfile
from typing import Dict, Optional

from werkzeug.utils import secure_filename

from .utils import ensure_output_dir

XLSX_MIME_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
PDF_MIME_TYPE = 'application/pdf'


def _umask_file_mode() -> int:
    """Mode a plain open(..., 'wb') would create under the current umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


# Read once at import; os.umask() is process-wide and not thread-safe
FILE_MODE = _umask_file_mode()


class DeliverySink:
    """Receives finished export files."""

    def deliver(self, filename: str, data: bytes, mime_type: str) -> str:
        """
        Hand over a finished file.

        Args:
            filename: Deterministic export filename
            data: Complete file content
            mime_type: Content type of the file

        Returns:
            The filename under which the file was delivered
        """
        raise NotImplementedError


class FileSink(DeliverySink):
    """Writes export files into an output directory."""

    def __init__(self, output_dir: str = './output'):
        self.output_dir = output_dir
        self.last_path: Optional[str] = None

    def deliver(self, filename: str, data: bytes, mime_type: str) -> str:
        safe_name = secure_filename(filename)
        if not safe_name:
            raise ValueError(f"Unusable export filename: {filename!r}")

        ensure_output_dir(self.output_dir)
        target = os.path.join(self.output_dir, safe_name)

        fd, tmp_path = tempfile.mkstemp(dir=self.output_dir, prefix='.export-', suffix='.part')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.chmod(tmp_path, FILE_MODE)
            os.replace(tmp_path, target)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        self.last_path = target
        return safe_name


class MemorySink(DeliverySink):
    """Keeps delivered files in memory (previews, tests, embedding hosts)."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.mime_types: Dict[str, str] = {}

    def deliver(self, filename: str, data: bytes, mime_type: str) -> str:
        self.files[filename] = bytes(data)
        self.mime_types[filename] = mime_type
        return filename
