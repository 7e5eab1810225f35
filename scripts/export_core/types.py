"""
Data model for the export pipeline.

This module defines the value objects passed between the pipeline stages:
- Redaction policies (RedactionPolicy, FieldConfig)
- User intent (ExportConfig, DateRange)
- Audit record (ExportMetadata)
- Assembled output (ExportPayload, ExportSheet, ExportColumn)
- Outcome reporting (ExportProgress, ExportResult)

Configuration objects are frozen: they are built once per export request
and never mutated afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


APP_VERSION = '1.0.0'


class ExportFormat(str, Enum):
    """Supported export output formats."""

    PDF = 'pdf'
    XLSX = 'xlsx'


class ExportModule(str, Enum):
    """Modules that can trigger an export."""

    USER_MANAGEMENT = 'user-management'
    SALES_OVERVIEW = 'sales-overview'
    PLAN_CONFIGURATION = 'plan-configuration'
    ORGANIZATION_MANAGEMENT = 'organization-management'
    BILLING_HISTORY = 'billing-history'

    @property
    def display_name(self) -> str:
        return MODULE_DISPLAY_NAMES[self]


MODULE_DISPLAY_NAMES = {
    ExportModule.USER_MANAGEMENT: 'User Management',
    ExportModule.SALES_OVERVIEW: 'Sales Overview',
    ExportModule.PLAN_CONFIGURATION: 'Plan Configuration',
    ExportModule.ORGANIZATION_MANAGEMENT: 'Organization Management',
    ExportModule.BILLING_HISTORY: 'Billing History',
}


class RedactionAction(str, Enum):
    """How a single field is handled during export."""

    INCLUDE = 'include'
    HASH = 'hash'
    MASK = 'mask'
    EXCLUDE = 'exclude'


FIELD_CATEGORIES = ('identifier', 'attribute', 'metric', 'metadata')

# Cell values allowed in an export row (never nested)
CellValue = Union[str, int, float, bool, None]
ExportRow = Dict[str, CellValue]


@dataclass(frozen=True)
class FieldConfig:
    """
    Export configuration for one record field.

    Attributes:
        key: Dot-path into a raw record (e.g. "owner.email")
        label: Column header shown in the output
        action: Declared redaction action
        overridable: Whether a confirmed full export may relax the action
        default_selected: Whether the field is pre-selected for export
        category: Grouping used by selection UIs
    """
    key: str
    label: str
    action: RedactionAction = RedactionAction.INCLUDE
    overridable: bool = False
    default_selected: bool = True
    category: str = 'attribute'


@dataclass(frozen=True)
class RedactionPolicy:
    """Ordered, versioned rulebook mapping each exportable field to an action."""
    module: ExportModule
    fields: Tuple[FieldConfig, ...]
    requires_full_export_confirmation: bool = False
    version: str = '1'

    def __post_init__(self):
        # Accept lists from callers but store an immutable tuple
        object.__setattr__(self, 'fields', tuple(self.fields))

        seen = set()
        for field_config in self.fields:
            if field_config.key in seen:
                raise ValueError(
                    f"Duplicate field key '{field_config.key}' in policy "
                    f"for {self.module.value}"
                )
            seen.add(field_config.key)

    def field_keys(self) -> List[str]:
        return [f.key for f in self.fields]

    def get_field(self, key: str) -> Optional[FieldConfig]:
        for field_config in self.fields:
            if field_config.key == key:
                return field_config
        return None

    def default_selection(self) -> List[str]:
        """Keys of the fields selected by default, in policy order."""
        return [f.key for f in self.fields if f.default_selected]


@dataclass(frozen=True)
class DateRange:
    """Optional date range filter (ISO-8601 strings)."""
    start: Optional[str] = None
    end: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {'from': self.start, 'to': self.end}


@dataclass(frozen=True)
class ExportColumn:
    key: str
    label: str


@dataclass(frozen=True)
class ExportSheet:
    """
    A named tabular section with its own columns and rows.

    Caller-supplied sheets (e.g. aggregate "Totals") bypass redaction.
    """
    name: str
    columns: Tuple[ExportColumn, ...]
    rows: Tuple[ExportRow, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'columns', tuple(self.columns))
        object.__setattr__(self, 'rows', tuple(self.rows))


@dataclass(frozen=True)
class ExportConfig:
    """User intent for a single export request."""
    format: ExportFormat
    module: ExportModule
    selected_fields: Tuple[str, ...]
    include_audit_metadata: bool = True
    full_export: bool = False
    date_range: Optional[DateRange] = None
    filters: Dict[str, Any] = field(default_factory=dict)
    additional_sheets: Tuple[ExportSheet, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'selected_fields', tuple(self.selected_fields))
        object.__setattr__(self, 'additional_sheets', tuple(self.additional_sheets or ()))


@dataclass(frozen=True)
class ExportMetadata:
    """
    Audit record generated fresh for every export run.

    This is embedded in the output file; the raw initiating user identity
    never appears here, only a truncated hash of it.
    """
    export_id: str
    timestamp: str
    initiating_user_hash: str
    module: ExportModule
    module_display_name: str
    filters_used: Dict[str, Any]
    record_count: int
    data_checksum: str
    full_export_requested: bool
    included_fields: Tuple[str, ...]
    redacted_fields: Tuple[str, ...]
    app_version: str = APP_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            'export_id': self.export_id,
            'timestamp': self.timestamp,
            'initiating_user_hash': self.initiating_user_hash,
            'module': _enum_value(self.module),
            'module_display_name': self.module_display_name,
            'filters_used': dict(self.filters_used),
            'record_count': self.record_count,
            'data_checksum': self.data_checksum,
            'full_export_requested': self.full_export_requested,
            'app_version': self.app_version,
            'included_fields': list(self.included_fields),
            'redacted_fields': list(self.redacted_fields),
        }


@dataclass
class ExportPayload:
    """The fully assembled, redaction-applied unit handed to an adapter."""
    config: ExportConfig
    metadata: ExportMetadata
    columns: List[ExportColumn]
    rows: List[ExportRow]
    additional_sheets: List[ExportSheet] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view, used for previews."""
        return {
            'format': _enum_value(self.config.format),
            'module': _enum_value(self.config.module),
            'metadata': self.metadata.to_dict(),
            'columns': [{'key': c.key, 'label': c.label} for c in self.columns],
            'rows': list(self.rows),
            'additional_sheets': [
                {
                    'name': sheet.name,
                    'columns': [{'key': c.key, 'label': c.label} for c in sheet.columns],
                    'rows': list(sheet.rows),
                }
                for sheet in self.additional_sheets
            ],
        }


@dataclass(frozen=True)
class ExportProgress:
    """Progress checkpoint emitted to the caller."""
    percent: int
    message: str
    cancellable: bool = True


class ExportStatus(str, Enum):
    SUCCESS = 'success'
    CANCELLED = 'cancelled'
    ERROR = 'error'


@dataclass(frozen=True)
class ExportResult:
    """
    Outcome of one export invocation.

    Exactly one variant is returned per call:
    - success: filename and metadata are set
    - cancelled: reason is set
    - error: error is set
    """
    status: ExportStatus
    filename: Optional[str] = None
    metadata: Optional[ExportMetadata] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, filename: str, metadata: ExportMetadata) -> 'ExportResult':
        return cls(ExportStatus.SUCCESS, filename=filename, metadata=metadata)

    @classmethod
    def cancelled(cls, reason: str) -> 'ExportResult':
        return cls(ExportStatus.CANCELLED, reason=reason)

    @classmethod
    def failure(cls, error: str) -> 'ExportResult':
        return cls(ExportStatus.ERROR, error=error)

    @property
    def ok(self) -> bool:
        return self.status == ExportStatus.SUCCESS


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value
