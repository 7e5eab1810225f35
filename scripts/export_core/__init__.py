"""
Export Toolkit Core Modules

Redaction, validation and file generation for audited record exports.
"""

from .types import (
    APP_VERSION,
    ExportFormat,
    ExportModule,
    RedactionAction,
    FieldConfig,
    RedactionPolicy,
    DateRange,
    ExportColumn,
    ExportSheet,
    ExportConfig,
    ExportMetadata,
    ExportPayload,
    ExportProgress,
    ExportStatus,
    ExportResult,
)
from .errors import (
    ExportError,
    PayloadValidationError,
    ExportCancelledError,
    AdapterError,
    UnsupportedFormatError,
    UnsupportedModuleError,
)
from .cancellation import CancelToken
from .checksum import digest, random_id, checksum, set_hasher
from .policies import DEFAULT_POLICIES, get_default_policy
from .redaction import RedactionEngine, apply_redaction
from .validation import validate_export_payload, assert_valid_payload
from .delivery import FileSink, MemorySink
from .adapters import ExportAdapter, XlsxAdapter, PdfAdapter
from .service import ExportService, create_export_service, export_service
from .activity_log import (
    log_event,
    read_activity_log,
    get_activity_summary,
    get_activity_log_path,
    clear_activity_log,
)

__all__ = [
    'APP_VERSION',
    'ExportFormat',
    'ExportModule',
    'RedactionAction',
    'FieldConfig',
    'RedactionPolicy',
    'DateRange',
    'ExportColumn',
    'ExportSheet',
    'ExportConfig',
    'ExportMetadata',
    'ExportPayload',
    'ExportProgress',
    'ExportStatus',
    'ExportResult',
    'ExportError',
    'PayloadValidationError',
    'ExportCancelledError',
    'AdapterError',
    'UnsupportedFormatError',
    'UnsupportedModuleError',
    'CancelToken',
    'digest',
    'random_id',
    'checksum',
    'set_hasher',
    'DEFAULT_POLICIES',
    'get_default_policy',
    'RedactionEngine',
    'apply_redaction',
    'validate_export_payload',
    'assert_valid_payload',
    'FileSink',
    'MemorySink',
    'ExportAdapter',
    'XlsxAdapter',
    'PdfAdapter',
    'ExportService',
    'create_export_service',
    'export_service',
    'log_event',
    'read_activity_log',
    'get_activity_summary',
    'get_activity_log_path',
    'clear_activity_log',
]
