"""
Field-level redaction for export rows.

This module provides the RedactionEngine class that handles:
- Selecting the active fields (policy order fixes the column order)
- Resolving each field's effective action under full export
- Transforming values (include / hash / mask / exclude)
- Field bookkeeping for the audit record

Usage:
    engine = RedactionEngine(ORGANIZATION_MANAGEMENT_POLICY, ['_id', 'name', 'email'])
    result = engine.apply(records)
    # result.rows -> [{'_id': '3f2a9c0d1b7e4a55', 'name': 'Acme', 'email': 'i******o'}]

Privacy guarantee:
    A field that is not overridable keeps its declared action even when a
    full export was confirmed. Non-overridable exclude fields therefore
    never reach an export file.

All transformations are deterministic: the same records, policy and
selection always produce identical rows.
"""

import json
import time
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .cancellation import CancelToken, check_cancelled
from .checksum import digest
from .types import ExportRow, FieldConfig, RedactionAction, RedactionPolicy

BATCH_SIZE = 500
HASH_LENGTH = 16
MASK_CHAR = '*'
MAX_MASKED_CHARS = 8
LIST_SEPARATOR = ', '


@dataclass
class RedactionResult:
    """Rows plus field bookkeeping produced by one redaction run."""
    rows: List[ExportRow]
    included_fields: List[str]
    redacted_fields: List[str]


def resolve_action(field_config: FieldConfig, full_export: bool) -> RedactionAction:
    """
    Resolve the effective action for a field.

    A confirmed full export relaxes overridable fields to include; every
    other field keeps its declared action.
    """
    if full_export and field_config.overridable:
        return RedactionAction.INCLUDE
    return RedactionAction(field_config.action)


def get_nested_value(record: Any, key: str) -> Any:
    """
    Resolve a dot-path inside nested mappings.

    Missing segments, or segments that hit a non-mapping value, resolve
    to None instead of raising.
    """
    current = record
    for part in key.split('.'):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def value_to_string(value: Any) -> str:
    """Convert any cell value to its export string form."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value_to_string(value.value)
    if isinstance(value, (set, frozenset)):
        # Set iteration order varies with PYTHONHASHSEED
        return LIST_SEPARATOR.join(sorted(value_to_string(item) for item in value))
    if isinstance(value, (list, tuple)):
        return LIST_SEPARATOR.join(value_to_string(item) for item in value)
    if isinstance(value, Mapping):
        try:
            return json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            # Non-string keys or circular references
            return str(value)
    return str(value)


def mask_value(text: str) -> str:
    """Keep the first and last character, mask up to 8 characters between."""
    if len(text) <= 2:
        return MASK_CHAR * 2
    hidden = min(len(text) - 2, MAX_MASKED_CHARS)
    return text[0] + MASK_CHAR * hidden + text[-1]


def hash_value(text: str) -> str:
    """Stable pseudonym for a value; empty input stays empty."""
    if not text:
        return ''
    return digest(text)[:HASH_LENGTH]


def include_value(value: Any) -> Any:
    """Pass scalars through; flatten everything else to a string."""
    if value is None:
        return ''
    if isinstance(value, (str, bool, int, float)):
        return value
    return value_to_string(value)


def redact_value(value: Any, action: RedactionAction) -> Any:
    """
    Apply one action to one raw value.

    Returns:
        The transformed cell value (never None for include/hash/mask)
    """
    if action == RedactionAction.INCLUDE:
        return include_value(value)
    if action == RedactionAction.HASH:
        return hash_value(value_to_string(value))
    if action == RedactionAction.MASK:
        return mask_value(value_to_string(value))
    return None


class RedactionEngine:
    """
    Applies one RedactionPolicy to raw records for a given field selection.

    The active field set and the effective actions are resolved once at
    construction; apply() can then be called on any number of record sets.
    """

    def __init__(
        self,
        policy: RedactionPolicy,
        selected_fields: Iterable[str],
        full_export: bool = False,
        batch_size: int = BATCH_SIZE
    ):
        """
        Initialize the engine for a specific policy and selection.

        Args:
            policy: The module's redaction policy
            selected_fields: Field keys chosen by the user
            full_export: Whether a full (PII-inclusive) export was confirmed
            batch_size: Records processed between yields (must be positive)
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.policy = policy
        self.full_export = full_export
        self.batch_size = batch_size

        selected = set(selected_fields)

        # Policy order, not selection order, fixes the column order
        self.active_fields: List[FieldConfig] = [
            f for f in policy.fields if f.key in selected
        ]
        self.actions: Dict[str, RedactionAction] = {
            f.key: resolve_action(f, full_export) for f in self.active_fields
        }

        self.included_fields: List[str] = []
        self.redacted_fields: List[str] = []
        for field_config in self.active_fields:
            action = self.actions[field_config.key]
            if action != RedactionAction.EXCLUDE:
                self.included_fields.append(field_config.key)
            if action != RedactionAction.INCLUDE:
                self.redacted_fields.append(field_config.key)

        # Excluded fields never get a key in the output row
        self._emitted = [
            (f.key, self.actions[f.key])
            for f in self.active_fields
            if self.actions[f.key] != RedactionAction.EXCLUDE
        ]

    def redact_record(self, record: Any) -> ExportRow:
        """
        Redact a single raw record.

        Args:
            record: A mapping (anything else is treated as an empty record)

        Returns:
            A flat row containing only non-excluded active fields
        """
        row: ExportRow = {}
        for key, action in self._emitted:
            row[key] = redact_value(get_nested_value(record, key), action)
        return row

    def apply(
        self,
        records: Sequence[Any],
        cancel_token: Optional[CancelToken] = None
    ) -> RedactionResult:
        """
        Redact a full record set in fixed-size batches.

        Between batches the engine yields the thread and checks the cancel
        token. Batches are processed in input order, so the output does not
        depend on the batch size.

        Args:
            records: Raw records, in export order
            cancel_token: Optional token checked between batches

        Returns:
            RedactionResult with rows and field bookkeeping

        Raises:
            ExportCancelledError: If the token is aborted between batches
        """
        rows: List[ExportRow] = []
        total = len(records)

        for start in range(0, total, self.batch_size):
            batch = records[start:start + self.batch_size]
            rows.extend(self.redact_record(record) for record in batch)

            if start + self.batch_size < total:
                time.sleep(0)
                check_cancelled(cancel_token)

        return RedactionResult(
            rows=rows,
            included_fields=list(self.included_fields),
            redacted_fields=list(self.redacted_fields),
        )

    def get_stats(self) -> Dict[str, int]:
        """
        Count active fields by effective action.

        Returns:
            Dictionary with one count per RedactionAction value
        """
        stats = {action.value: 0 for action in RedactionAction}
        for action in self.actions.values():
            stats[action.value] += 1
        return stats


def apply_redaction(
    raw_records: Sequence[Any],
    policy: RedactionPolicy,
    selected_fields: Iterable[str],
    full_export: bool,
    cancel_token: Optional[CancelToken] = None
) -> RedactionResult:
    """
    Apply a redaction policy to raw records.

    Args:
        raw_records: Raw records from the data layer (pre-redaction)
        policy: The module's redaction policy
        selected_fields: User-selected field keys
        full_export: Whether the user explicitly confirmed a full export
        cancel_token: Optional token checked between batches

    Returns:
        RedactionResult with rows, included_fields and redacted_fields
    """
    engine = RedactionEngine(policy, selected_fields, full_export)
    return engine.apply(list(raw_records), cancel_token)
