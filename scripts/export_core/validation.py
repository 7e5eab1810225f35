"""
Runtime validation for export payloads.

Pure structural checks run before a payload reaches a format adapter.
Every check returns a ValidationResult; error-severity issues block the
export, warning-severity issues are reported but never block it.

Validators accept the dataclasses from types.py as well as plain
mappings, so caller-built payloads get the same checks.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Mapping, Sequence

from .errors import PayloadValidationError
from .types import ExportFormat, ExportModule
from .utils import parse_date

ERROR = 'error'
WARNING = 'warning'

# Only a prefix of the rows is inspected for unexpected keys
ROW_SAMPLE_SIZE = 10

VALID_FORMATS = tuple(f.value for f in ExportFormat)
VALID_MODULES = tuple(m.value for m in ExportModule)

_MISSING = object()


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str
    severity: str = ERROR


@dataclass
class ValidationResult:
    """Outcome of a validation run."""
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not any(i.severity == ERROR for i in self.issues)

    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ERROR]

    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == WARNING]

    def error_message(self) -> str:
        """All error issues as 'path: message', joined with '; '."""
        return '; '.join(f"{i.path}: {i.message}" for i in self.errors())

    def extend(self, other: 'ValidationResult') -> None:
        self.issues.extend(other.issues)


def _get(obj: Any, name: str) -> Any:
    """Read a field from a mapping or an attribute-style object."""
    if isinstance(obj, Mapping):
        return obj.get(name, _MISSING)
    return getattr(obj, name, _MISSING)


def _value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0


def _is_record(value: Any) -> bool:
    return value is not None and value is not _MISSING and not isinstance(
        value, (str, bytes, int, float, bool, list, tuple)
    )


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


# ─── Config ────────────────────────────────────────────────────────────────

def validate_config(config: Any) -> ValidationResult:
    """Validate an ExportConfig (or equivalent mapping)."""
    result = ValidationResult()
    issues = result.issues

    if not _is_record(config):
        issues.append(ValidationIssue('config', 'Config must be an object'))
        return result

    if _value(_get(config, 'format')) not in VALID_FORMATS:
        issues.append(ValidationIssue(
            'config.format', f"format must be one of: {', '.join(VALID_FORMATS)}"
        ))

    if _value(_get(config, 'module')) not in VALID_MODULES:
        issues.append(ValidationIssue(
            'config.module', f"module must be one of: {', '.join(VALID_MODULES)}"
        ))

    selected = _get(config, 'selected_fields')
    if not _is_sequence(selected) or len(selected) == 0:
        issues.append(ValidationIssue(
            'config.selected_fields', 'At least one field must be selected'
        ))

    if not isinstance(_get(config, 'include_audit_metadata'), bool):
        issues.append(ValidationIssue(
            'config.include_audit_metadata', 'include_audit_metadata must be a boolean'
        ))

    if not isinstance(_get(config, 'full_export'), bool):
        issues.append(ValidationIssue(
            'config.full_export', 'full_export must be a boolean'
        ))

    date_range = _get(config, 'date_range')
    if date_range is not None and date_range is not _MISSING:
        result.extend(_validate_date_range(date_range))

    return result


def _validate_date_range(date_range: Any) -> ValidationResult:
    result = ValidationResult()
    bounds = {}

    for name in ('start', 'end'):
        raw = _get(date_range, name)
        if raw is None or raw is _MISSING or raw == '':
            continue
        parsed = parse_date(raw)
        if parsed is None:
            result.issues.append(ValidationIssue(
                f"config.date_range.{name}", f"'{raw}' is not a valid date"
            ))
        else:
            bounds[name] = parsed

    if 'start' in bounds and 'end' in bounds:
        start, end = bounds['start'], bounds['end']
        # Naive and aware datetimes cannot be compared
        if (start.tzinfo is None) != (end.tzinfo is None):
            start, end = start.replace(tzinfo=None), end.replace(tzinfo=None)
        if start > end:
            result.issues.append(ValidationIssue(
                'config.date_range', 'start must not be after end'
            ))

    return result


# ─── Metadata ──────────────────────────────────────────────────────────────

def validate_metadata(metadata: Any) -> ValidationResult:
    """Validate an ExportMetadata (or equivalent mapping)."""
    result = ValidationResult()
    issues = result.issues

    if not _is_record(metadata):
        issues.append(ValidationIssue('metadata', 'Metadata must be an object'))
        return result

    if not _is_non_empty_string(_get(metadata, 'export_id')):
        issues.append(ValidationIssue(
            'metadata.export_id', 'export_id is required and must be a non-empty string'
        ))

    timestamp = _get(metadata, 'timestamp')
    if not _is_non_empty_string(timestamp):
        issues.append(ValidationIssue('metadata.timestamp', 'timestamp is required (ISO-8601)'))
    elif parse_date(timestamp) is None:
        issues.append(ValidationIssue(
            'metadata.timestamp', 'timestamp must be a valid ISO-8601 date'
        ))

    if not _is_non_empty_string(_get(metadata, 'initiating_user_hash')):
        issues.append(ValidationIssue(
            'metadata.initiating_user_hash', 'initiating_user_hash is required'
        ))

    if _value(_get(metadata, 'module')) not in VALID_MODULES:
        issues.append(ValidationIssue(
            'metadata.module', f"module must be one of: {', '.join(VALID_MODULES)}"
        ))

    record_count = _get(metadata, 'record_count')
    if isinstance(record_count, bool) or not isinstance(record_count, int) or record_count < 0:
        issues.append(ValidationIssue(
            'metadata.record_count', 'record_count must be a non-negative integer'
        ))

    if not _is_non_empty_string(_get(metadata, 'data_checksum')):
        issues.append(ValidationIssue('metadata.data_checksum', 'data_checksum is required'))

    if not isinstance(_get(metadata, 'full_export_requested'), bool):
        issues.append(ValidationIssue(
            'metadata.full_export_requested', 'full_export_requested must be a boolean'
        ))

    for name in ('included_fields', 'redacted_fields'):
        if not _is_sequence(_get(metadata, name)):
            issues.append(ValidationIssue(f"metadata.{name}", f"{name} must be a list"))

    return result


# ─── Columns, rows and sheets ──────────────────────────────────────────────

def validate_columns(columns: Any, path: str = 'columns') -> ValidationResult:
    """Each column needs a non-empty key and label."""
    result = ValidationResult()

    if not _is_sequence(columns):
        result.issues.append(ValidationIssue(path, f"{path} must be a list"))
        return result

    for i, column in enumerate(columns):
        if not _is_record(column) or not _is_non_empty_string(_get(column, 'key')) \
                or not _is_non_empty_string(_get(column, 'label')):
            result.issues.append(ValidationIssue(
                f"{path}[{i}]", 'Each column must have a key and label'
            ))

    return result


def column_keys(columns: Iterable[Any]) -> List[str]:
    keys = []
    for column in columns:
        key = _get(column, 'key')
        if _is_non_empty_string(key):
            keys.append(key)
    return keys


def validate_rows(
    rows: Any,
    expected_keys: Sequence[str],
    path: str = 'rows',
    sample_size: int = ROW_SAMPLE_SIZE
) -> ValidationResult:
    """
    Check that sampled rows only contain expected keys.

    Unexpected keys are warnings: upstream record shapes evolve, and that
    alone should not fail an export.

    Args:
        rows: The row list to check
        expected_keys: Keys allowed in a row (the column keys)
        path: Path prefix used in issue messages
        sample_size: Number of leading rows to inspect

    Returns:
        ValidationResult for the rows
    """
    result = ValidationResult()
    issues = result.issues

    if not _is_sequence(rows):
        issues.append(ValidationIssue(path, f"{path} must be a list"))
        return result

    if len(rows) == 0:
        issues.append(ValidationIssue(path, 'Export contains no data rows', WARNING))

    allowed = set(expected_keys)
    for i, row in enumerate(rows[:sample_size]):
        if not isinstance(row, Mapping):
            issues.append(ValidationIssue(f"{path}[{i}]", 'Each row must be an object'))
            continue
        for key in row:
            if key not in allowed:
                issues.append(ValidationIssue(
                    f"{path}[{i}].{key}", f'Unexpected field "{key}" in export row', WARNING
                ))

    return result


def validate_sheets(sheets: Any) -> ValidationResult:
    """Validate caller-supplied additional sheets."""
    result = ValidationResult()

    if sheets is None or sheets is _MISSING:
        return result
    if not _is_sequence(sheets):
        result.issues.append(ValidationIssue('additional_sheets', 'additional_sheets must be a list'))
        return result

    for i, sheet in enumerate(sheets):
        path = f"additional_sheets[{i}]"
        if not _is_record(sheet):
            result.issues.append(ValidationIssue(path, 'Each sheet must be an object'))
            continue
        if not _is_non_empty_string(_get(sheet, 'name')):
            result.issues.append(ValidationIssue(f"{path}.name", 'Sheet name is required'))

        columns = _get(sheet, 'columns')
        result.extend(validate_columns(columns, f"{path}.columns"))

        rows = _get(sheet, 'rows')
        if _is_sequence(columns) and _is_sequence(rows) and rows:
            result.extend(validate_rows(rows, column_keys(columns), f"{path}.rows"))

    return result


# ─── Full payload ──────────────────────────────────────────────────────────

def validate_export_payload(payload: Any) -> ValidationResult:
    """Validate a complete ExportPayload before it is handed to an adapter."""
    result = ValidationResult()

    if not _is_record(payload):
        result.issues.append(ValidationIssue('payload', 'Payload must be an object'))
        return result

    result.extend(validate_config(_get(payload, 'config')))
    result.extend(validate_metadata(_get(payload, 'metadata')))

    columns = _get(payload, 'columns')
    result.extend(validate_columns(columns))
    if _is_sequence(columns):
        result.extend(validate_rows(_get(payload, 'rows'), column_keys(columns)))

    result.extend(validate_sheets(_get(payload, 'additional_sheets')))
    return result


def assert_valid_payload(payload: Any) -> None:
    """
    Guard used at adapter entry.

    Raises:
        PayloadValidationError: With every error issue concatenated
    """
    result = validate_export_payload(payload)
    if not result.valid:
        raise PayloadValidationError(
            f"Invalid export payload: {result.error_message()}",
            result.errors(),
        )


def is_valid_export_config(value: Any) -> bool:
    return validate_config(value).valid


def is_valid_export_metadata(value: Any) -> bool:
    return validate_metadata(value).valid
