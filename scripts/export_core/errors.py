"""
Error taxonomy for the export pipeline.

None of these escape ExportService.export(); the orchestrator converts
each of them into the matching ExportResult variant:
- PayloadValidationError -> error
- ExportCancelledError -> cancelled
- AdapterError -> error
- UnsupportedFormatError / UnsupportedModuleError -> error
"""

from typing import List, Optional


class ExportError(Exception):
    """Base class for all export failures."""


class PayloadValidationError(ExportError):
    """
    Raised when config, metadata or payload are structurally invalid.

    Attributes:
        issues: The error-severity ValidationIssue objects
    """
    def __init__(self, message: str, issues: Optional[List] = None):
        super().__init__(message)
        self.issues = issues or []


class ExportCancelledError(ExportError):
    """Raised when a cancel token is observed mid-pipeline."""

    def __init__(self, reason: str = 'Export cancelled'):
        super().__init__(reason)
        self.reason = reason


class AdapterError(ExportError):
    """Raised when a format adapter fails to assemble its output."""


class UnsupportedFormatError(ExportError):
    """Raised when no adapter is registered for the requested format."""

    def __init__(self, export_format: str):
        super().__init__(f"No adapter registered for format: {export_format}")
        self.format = export_format


class UnsupportedModuleError(ExportError):
    """Raised when no redaction policy exists for the requested module."""

    def __init__(self, module: str):
        super().__init__(f"No redaction policy defined for module: {module}")
        self.module = module
