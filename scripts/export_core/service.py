"""
Export orchestrator.

Central entry point for producing downloadable XLSX and PDF files from
module data. Runs the pipeline:

    resolve policy -> redact -> build metadata -> validate -> generate

Usage:
    from export_core import export_service

    result = export_service.export(records, config, user_id='alice')
    if result.ok:
        print(result.filename)

export() never raises: every outcome (including cancellation and
adapter failures) is reported as exactly one ExportResult.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .activity_log import log_event
from .adapters import ExportAdapter, PdfAdapter, ProgressCallback, XlsxAdapter
from .adapters.base import emit
from .cancellation import CancelToken, check_cancelled
from .checksum import checksum, digest, random_id
from .delivery import DeliverySink, FileSink
from .errors import (
    ExportCancelledError,
    ExportError,
    UnsupportedFormatError,
    UnsupportedModuleError,
)
from .policies import DEFAULT_POLICIES
from .redaction import RedactionResult, apply_redaction
from .types import (
    APP_VERSION,
    MODULE_DISPLAY_NAMES,
    ExportColumn,
    ExportConfig,
    ExportFormat,
    ExportMetadata,
    ExportModule,
    ExportPayload,
    ExportResult,
    RedactionPolicy,
)
from .validation import assert_valid_payload, validate_export_payload


logger = logging.getLogger(__name__)

USER_HASH_LENGTH = 32


def hash_user_id(user_id: str) -> str:
    """Pseudonymize the initiating user for the audit record."""
    return digest(str(user_id))[:USER_HASH_LENGTH]


def utc_timestamp() -> str:
    """Current time as ISO-8601 UTC with milliseconds, e.g. 2024-05-01T12:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def build_metadata(
    config: ExportConfig,
    redaction: RedactionResult,
    user_id: str
) -> ExportMetadata:
    """
    Build the audit record for one export run.

    The checksum covers the redacted rows, so it verifies exactly what
    ends up in the file.
    """
    module = ExportModule(config.module)
    return ExportMetadata(
        export_id=random_id(),
        timestamp=utc_timestamp(),
        initiating_user_hash=hash_user_id(user_id),
        module=module,
        module_display_name=MODULE_DISPLAY_NAMES[module],
        filters_used=dict(config.filters or {}),
        record_count=len(redaction.rows),
        data_checksum=checksum(redaction.rows),
        full_export_requested=bool(config.full_export),
        included_fields=tuple(redaction.included_fields),
        redacted_fields=tuple(redaction.redacted_fields),
        app_version=APP_VERSION,
    )


def build_columns(policy: RedactionPolicy, included_fields: Iterable[str]) -> List[ExportColumn]:
    """Columns for the included fields, in policy order."""
    included = set(included_fields)
    return [ExportColumn(f.key, f.label) for f in policy.fields if f.key in included]


class ExportService:
    """
    Orchestrates redaction, validation, metadata and adapter invocation.

    Adapters are kept in a per-instance registry keyed by format, so a
    format engine can be swapped at runtime with register_adapter().
    """

    def __init__(
        self,
        adapters: Optional[Sequence[ExportAdapter]] = None,
        policies: Optional[Mapping[Any, RedactionPolicy]] = None,
        sink: Optional[DeliverySink] = None,
        activity_log_dir: Optional[str] = None
    ):
        """
        Initialize the service.

        Args:
            adapters: Format adapters (default: XLSX and PDF writing to `sink`)
            policies: Policy overrides keyed by module
            sink: Delivery sink for the default adapters (default: FileSink)
            activity_log_dir: Directory for the JSON Lines activity log
                (logging is off when None)
        """
        self.sink = sink or FileSink()
        self.activity_log_dir = activity_log_dir

        self.policies: Dict[ExportModule, RedactionPolicy] = dict(DEFAULT_POLICIES)
        for module, policy in (policies or {}).items():
            self.policies[ExportModule(module)] = policy

        self._adapters: Dict[ExportFormat, ExportAdapter] = {}
        if adapters is None:
            adapters = [XlsxAdapter(self.sink), PdfAdapter(self.sink)]
        for adapter in adapters:
            self.register_adapter(adapter)

    # ------------------------------------------------------------------
    # Adapter registry
    # ------------------------------------------------------------------

    def register_adapter(self, adapter: ExportAdapter) -> None:
        """Register (or replace) the adapter for its format."""
        export_format = ExportFormat(adapter.format)
        if export_format in self._adapters:
            logger.info(f"Replacing adapter for format: {export_format.value}")
        self._adapters[export_format] = adapter

    def unregister_adapter(self, export_format: Union[ExportFormat, str]) -> Optional[ExportAdapter]:
        try:
            return self._adapters.pop(ExportFormat(export_format), None)
        except ValueError:
            return None

    def get_adapter(self, export_format: Union[ExportFormat, str]) -> ExportAdapter:
        """
        Look up the adapter for a format.

        Raises:
            UnsupportedFormatError: If no adapter is registered
        """
        value = getattr(export_format, 'value', export_format)
        try:
            return self._adapters[ExportFormat(value)]
        except (KeyError, ValueError):
            raise UnsupportedFormatError(str(value)) from None

    def registered_formats(self) -> List[str]:
        return sorted(f.value for f in self._adapters)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def resolve_policy(
        self,
        module: Union[ExportModule, str],
        policy: Optional[RedactionPolicy] = None
    ) -> RedactionPolicy:
        """
        Pick the policy for a module; an explicit policy wins.

        Raises:
            UnsupportedModuleError: If the module has no policy
        """
        if policy is not None:
            return policy
        value = getattr(module, 'value', module)
        try:
            return self.policies[ExportModule(value)]
        except (KeyError, ValueError):
            raise UnsupportedModuleError(str(value)) from None

    def _assemble(
        self,
        config: ExportConfig,
        user_id: str,
        policy: RedactionPolicy,
        redaction: RedactionResult
    ) -> ExportPayload:
        return ExportPayload(
            config=config,
            metadata=build_metadata(config, redaction, user_id),
            columns=build_columns(policy, redaction.included_fields),
            rows=redaction.rows,
            additional_sheets=list(config.additional_sheets or ()),
        )

    def export(
        self,
        raw_records: Sequence[Any],
        config: ExportConfig,
        user_id: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        policy: Optional[RedactionPolicy] = None
    ) -> ExportResult:
        """
        Run the full export pipeline and deliver the file.

        Args:
            raw_records: Raw records from the data layer (pre-redaction)
            config: Export configuration
            user_id: Identifier of the initiating user (stored hashed only)
            on_progress: Optional progress callback
            cancel_token: Optional cancel token
            policy: Optional policy overriding the module default

        Returns:
            ExportResult (success, cancelled or error)
        """
        start_time = time.time()
        module = getattr(config.module, 'value', config.module)
        export_format = getattr(config.format, 'value', config.format)
        log_context = {
            'module': module,
            'format': export_format,
            'user_hash': hash_user_id(user_id),
        }
        metadata: Optional[ExportMetadata] = None

        try:
            raw_records = list(raw_records)
            self._log('export_started', **log_context, records_received=len(raw_records))
            check_cancelled(cancel_token)
            resolved = self.resolve_policy(config.module, policy)

            emit(on_progress, 5, 'Applying redaction policy...')
            redaction = apply_redaction(
                raw_records, resolved, config.selected_fields, config.full_export, cancel_token
            )
            check_cancelled(cancel_token)

            emit(on_progress, 15, 'Generating metadata...')
            payload = self._assemble(config, user_id, resolved, redaction)
            metadata = payload.metadata
            check_cancelled(cancel_token)

            emit(on_progress, 20, 'Validating payload...')
            validation = validate_export_payload(payload)
            for issue in validation.warnings():
                logger.warning(f"Export payload warning: {issue.path}: {issue.message}")
            if not validation.valid:
                error = f"Validation failed: {validation.error_message()}"
                logger.warning(error)
                self._log('export_failed', **log_context, export_id=metadata.export_id,
                          error=error, execution_time_seconds=_elapsed(start_time))
                return ExportResult.failure(error)

            adapter = self.get_adapter(config.format)
            check_cancelled(cancel_token)

            emit(on_progress, 25, 'Generating file...')
            filename = adapter.generate(payload, on_progress, cancel_token)

        except ExportCancelledError as e:
            logger.info(f"Export cancelled: {e.reason}")
            self._log('export_cancelled', **log_context,
                      export_id=metadata.export_id if metadata else None,
                      reason=e.reason, execution_time_seconds=_elapsed(start_time))
            return ExportResult.cancelled(e.reason)

        except ExportError as e:
            logger.warning(f"Export failed: {e}")
            self._log('export_failed', **log_context,
                      export_id=metadata.export_id if metadata else None,
                      error=str(e), execution_time_seconds=_elapsed(start_time))
            return ExportResult.failure(str(e))

        except Exception as e:
            logger.exception("Unexpected export error")
            error = str(e) or 'Unknown export error'
            self._log('export_failed', **log_context,
                      export_id=metadata.export_id if metadata else None,
                      error=error, execution_time_seconds=_elapsed(start_time))
            return ExportResult.failure(error)

        self._log('export_complete', **log_context,
                  export_id=metadata.export_id,
                  filename=filename,
                  record_count=metadata.record_count,
                  full_export=metadata.full_export_requested,
                  execution_time_seconds=_elapsed(start_time))
        return ExportResult.success(filename, metadata)

    def preview(
        self,
        raw_records: Sequence[Any],
        config: ExportConfig,
        user_id: str,
        policy: Optional[RedactionPolicy] = None
    ) -> ExportPayload:
        """
        Build the payload an export would produce, without generating a file.

        Raises:
            UnsupportedModuleError: If the module has no policy
            PayloadValidationError: If the payload is invalid
        """
        resolved = self.resolve_policy(config.module, policy)
        redaction = apply_redaction(raw_records, resolved, config.selected_fields, config.full_export)
        payload = self._assemble(config, user_id, resolved, redaction)
        assert_valid_payload(payload)
        return payload

    def _log(self, event_type: str, **kwargs) -> None:
        if self.activity_log_dir:
            log_event(event_type, self.activity_log_dir, **kwargs)


def _elapsed(start_time: float) -> float:
    return round(time.time() - start_time, 3)


def create_export_service(**kwargs) -> ExportService:
    """Create an ExportService with the default XLSX and PDF adapters."""
    return ExportService(**kwargs)


# Shared instance for callers that need no customization
export_service = create_export_service()
