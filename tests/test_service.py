"""
Tests for export_core/service.py - Export orchestration
"""

import pytest
import sys
import os
import re
import logging
import tempfile

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'scripts'))

from export_core.activity_log import read_activity_log
from export_core.adapters import ExportAdapter, PdfAdapter, XlsxAdapter
from export_core.cancellation import CancelToken
from export_core.checksum import checksum, digest
from export_core.delivery import FileSink, MemorySink
from export_core.errors import PayloadValidationError, UnsupportedModuleError
from export_core.policies import PLAN_CONFIGURATION_POLICY
from export_core.service import (
    ExportService,
    create_export_service,
    export_service,
    hash_user_id,
    utc_timestamp,
)
from export_core.types import (
    ExportConfig,
    ExportFormat,
    ExportModule,
    ExportStatus,
    FieldConfig,
    RedactionAction,
    RedactionPolicy,
)

PLAN_RECORDS = [
    {'_id': 'p1', 'plan': 'starter', 'displayName': 'Starter', 'baseCost': 0},
    {'_id': 'p2', 'plan': 'team', 'displayName': 'Team', 'baseCost': 4900},
    {'_id': 'p3', 'plan': 'enterprise', 'displayName': 'Enterprise', 'baseCost': 19900},
]

ORG_RECORD = {'_id': 'o1', 'name': 'Acme', 'email': 'billing@acme.io', 'status': 'active'}


def plan_config(**overrides):
    values = dict(
        format=ExportFormat.XLSX,
        module=ExportModule.PLAN_CONFIGURATION,
        selected_fields=['_id', 'plan', 'displayName', 'baseCost'],
    )
    values.update(overrides)
    return ExportConfig(**values)


class RecordingAdapter(ExportAdapter):
    """Adapter double that records generate() calls."""

    format = ExportFormat.XLSX
    extension = 'bin'

    def __init__(self):
        super().__init__(MemorySink())
        self.calls = []

    def encode(self, payload, on_progress=None, cancel_token=None):
        self.calls.append(payload)
        return b'encoded'


class FailingAdapter(ExportAdapter):
    format = ExportFormat.PDF
    extension = 'pdf'

    def encode(self, payload, on_progress=None, cancel_token=None):
        raise RuntimeError('disk on fire')


class AbortingAdapter(ExportAdapter):
    """Aborts the caller's token halfway through encoding."""

    format = ExportFormat.XLSX
    extension = 'xlsx'

    def __init__(self, token):
        super().__init__(MemorySink())
        self.token = token

    def encode(self, payload, on_progress=None, cancel_token=None):
        self.token.abort('Stopped by user')
        return b'partial'


class TestHelpers:
    """Tests for metadata helpers."""

    def test_user_hash_is_truncated_digest(self):
        assert hash_user_id('alice') == digest('alice')[:32]
        assert len(hash_user_id('alice')) == 32

    def test_timestamp_format(self):
        assert re.match(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$', utc_timestamp())


class TestExport:
    """Tests for the export pipeline."""

    def test_success_result(self):
        sink = MemorySink()
        result = ExportService(sink=sink).export(PLAN_RECORDS, plan_config(), 'alice')

        assert result.status == ExportStatus.SUCCESS
        assert result.ok
        assert result.filename in sink.files
        assert result.filename.endswith('.xlsx')
        assert result.metadata.record_count == 3

    def test_metadata_contents(self):
        result = ExportService(sink=MemorySink()).export(
            PLAN_RECORDS, plan_config(filters={'status': 'active'}), 'alice'
        )
        metadata = result.metadata

        assert metadata.initiating_user_hash == hash_user_id('alice')
        assert 'alice' not in str(metadata.to_dict())
        assert metadata.module == ExportModule.PLAN_CONFIGURATION
        assert metadata.module_display_name == 'Plan Configuration'
        assert metadata.filters_used == {'status': 'active'}
        assert metadata.full_export_requested is False
        assert metadata.included_fields == ('_id', 'plan', 'displayName', 'baseCost')
        assert metadata.redacted_fields == ('_id',)
        assert metadata.app_version == '1.0.0'

    def test_checksum_covers_redacted_rows(self):
        service = ExportService(sink=MemorySink())
        payload = service.preview(PLAN_RECORDS, plan_config(), 'alice')

        assert payload.metadata.data_checksum == checksum(payload.rows)
        assert payload.metadata.data_checksum != checksum(PLAN_RECORDS)

    def test_progress_checkpoints(self):
        events = []
        ExportService(sink=MemorySink()).export(
            PLAN_RECORDS, plan_config(), 'alice', on_progress=events.append
        )
        percents = [e.percent for e in events]

        assert percents[:4] == [5, 15, 20, 25]
        assert percents == sorted(percents)
        assert percents[-1] == 100

    def test_pdf_format_uses_pdf_adapter(self):
        sink = MemorySink()
        result = ExportService(sink=sink).export(
            PLAN_RECORDS, plan_config(format=ExportFormat.PDF), 'alice'
        )

        assert result.ok
        assert sink.files[result.filename].startswith(b'%PDF-1.4')

    def test_writes_file_with_file_sink(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            result = ExportService(sink=FileSink(tmpdir)).export(PLAN_RECORDS, plan_config(), 'alice')

            assert result.ok
            assert os.path.exists(os.path.join(tmpdir, result.filename))
            assert [f for f in os.listdir(tmpdir) if f.endswith('.part')] == []


class TestScenarios:
    """End-to-end export scenarios."""

    def test_plan_records_hashed_id(self):
        service = ExportService(sink=MemorySink())
        payload = service.preview(PLAN_RECORDS, plan_config(), 'alice')

        for raw, row in zip(PLAN_RECORDS, payload.rows):
            assert re.match(r'^[0-9a-f]{16}$', row['_id'])
            assert row['plan'] == raw['plan']
            assert row['displayName'] == raw['displayName']
            assert row['baseCost'] == raw['baseCost']
        assert '_id' in payload.metadata.redacted_fields

    def test_full_export_reveals_email(self):
        config = ExportConfig(
            format=ExportFormat.XLSX,
            module=ExportModule.ORGANIZATION_MANAGEMENT,
            selected_fields=['_id', 'name', 'email'],
            full_export=True,
        )
        result = ExportService(sink=MemorySink()).export([ORG_RECORD], config, 'alice')

        assert result.ok
        assert 'email' not in result.metadata.redacted_fields
        assert result.metadata.full_export_requested is True

        payload = ExportService(sink=MemorySink()).preview([ORG_RECORD], config, 'alice')
        assert payload.rows[0]['email'] == 'billing@acme.io'

    def test_columns_follow_policy_order(self):
        config = plan_config(selected_fields=['baseCost', 'plan', '_id'])
        payload = ExportService(sink=MemorySink()).preview(PLAN_RECORDS, config, 'alice')

        assert [c.key for c in payload.columns] == ['_id', 'plan', 'baseCost']
        assert [c.label for c in payload.columns] == ['Plan ID (hashed)', 'Plan Identifier', 'Base Cost (cents)']

    def test_excluded_fields_have_no_column(self):
        policy = RedactionPolicy(
            module=ExportModule.PLAN_CONFIGURATION,
            fields=[
                FieldConfig('plan', 'Plan'),
                FieldConfig('internalNotes', 'Notes', RedactionAction.EXCLUDE),
            ],
        )
        config = plan_config(selected_fields=['plan', 'internalNotes'])
        payload = ExportService(sink=MemorySink()).preview(
            [{'plan': 'team', 'internalNotes': 'secret'}], config, 'alice', policy=policy
        )

        assert [c.key for c in payload.columns] == ['plan']
        assert payload.rows == [{'plan': 'team'}]
        assert payload.metadata.redacted_fields == ('internalNotes',)


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_pre_aborted_token_skips_adapter(self):
        adapter = RecordingAdapter()
        service = ExportService(adapters=[adapter])
        token = CancelToken()
        token.abort('User cancelled')

        result = service.export(PLAN_RECORDS, plan_config(), 'alice', cancel_token=token)

        assert result.status == ExportStatus.CANCELLED
        assert result.reason == 'User cancelled'
        assert adapter.calls == []

    def test_abort_during_encoding_prevents_delivery(self):
        token = CancelToken()
        adapter = AbortingAdapter(token)
        service = ExportService(adapters=[adapter])

        result = service.export(PLAN_RECORDS, plan_config(), 'alice', cancel_token=token)

        assert result.status == ExportStatus.CANCELLED
        assert result.reason == 'Stopped by user'
        assert adapter.sink.files == {}

    def test_abort_between_redaction_batches(self):
        token = CancelToken()
        events = []

        def on_progress(progress):
            events.append(progress)
            if progress.percent == 5:
                token.abort()

        records = [{'_id': str(i), 'plan': 'p'} for i in range(2000)]
        result = ExportService(sink=MemorySink()).export(
            records, plan_config(), 'alice', on_progress=on_progress, cancel_token=token
        )

        assert result.status == ExportStatus.CANCELLED
        assert [e.percent for e in events] == [5]


class TestErrors:
    """Tests for error results."""

    def test_validation_failure(self):
        result = ExportService(sink=MemorySink()).export(
            PLAN_RECORDS, plan_config(selected_fields=[]), 'alice'
        )

        assert result.status == ExportStatus.ERROR
        assert result.error.startswith('Validation failed: ')
        assert 'config.selected_fields' in result.error

    def test_unregistered_format(self):
        service = ExportService(adapters=[XlsxAdapter(MemorySink())])
        result = service.export(PLAN_RECORDS, plan_config(format=ExportFormat.PDF), 'alice')

        assert result.status == ExportStatus.ERROR
        assert result.error == 'No adapter registered for format: pdf'

    def test_unknown_module(self):
        result = ExportService(sink=MemorySink()).export(
            PLAN_RECORDS, plan_config(module='payroll'), 'alice'
        )

        assert result.status == ExportStatus.ERROR
        assert 'payroll' in result.error

    def test_adapter_exception_becomes_error(self):
        service = ExportService(adapters=[FailingAdapter(MemorySink())])
        result = service.export(PLAN_RECORDS, plan_config(format=ExportFormat.PDF), 'alice')

        assert result.status == ExportStatus.ERROR
        assert 'disk on fire' in result.error

    def test_warnings_are_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger='export_core.service'):
            result = ExportService(sink=MemorySink()).export([], plan_config(), 'alice')

        assert result.ok
        assert 'Export contains no data rows' in caplog.text


class TestPreview:
    """Tests for preview()."""

    def test_idempotent_except_identity(self):
        service = ExportService(sink=MemorySink())
        first = service.preview(PLAN_RECORDS, plan_config(), 'alice')
        second = service.preview(PLAN_RECORDS, plan_config(), 'alice')

        assert first.columns == second.columns
        assert first.rows == second.rows
        assert first.metadata.data_checksum == second.metadata.data_checksum
        assert first.metadata.export_id != second.metadata.export_id

    def test_does_not_deliver(self):
        sink = MemorySink()
        ExportService(sink=sink).preview(PLAN_RECORDS, plan_config(), 'alice')
        assert sink.files == {}

    def test_raises_on_invalid_payload(self):
        with pytest.raises(PayloadValidationError):
            ExportService(sink=MemorySink()).preview(
                PLAN_RECORDS, plan_config(selected_fields=[]), 'alice'
            )

    def test_raises_on_unknown_module(self):
        with pytest.raises(UnsupportedModuleError):
            ExportService(sink=MemorySink()).preview(PLAN_RECORDS, plan_config(module='payroll'), 'alice')

    def test_payload_to_dict(self):
        payload = ExportService(sink=MemorySink()).preview(PLAN_RECORDS, plan_config(), 'alice')
        data = payload.to_dict()

        assert data['format'] == 'xlsx'
        assert data['module'] == 'plan-configuration'
        assert len(data['rows']) == 3
        assert data['metadata']['record_count'] == 3


class TestAdapterRegistry:
    """Tests for adapter registration."""

    def test_default_formats(self):
        assert ExportService(sink=MemorySink()).registered_formats() == ['pdf', 'xlsx']

    def test_register_replaces_adapter(self):
        service = ExportService(sink=MemorySink())
        adapter = RecordingAdapter()
        service.register_adapter(adapter)

        result = service.export(PLAN_RECORDS, plan_config(), 'alice')

        assert result.ok
        assert result.filename.endswith('.bin')
        assert len(adapter.calls) == 1
        assert service.get_adapter('xlsx') is adapter

    def test_unregister(self):
        service = ExportService(sink=MemorySink())
        removed = service.unregister_adapter(ExportFormat.PDF)

        assert isinstance(removed, PdfAdapter)
        assert service.registered_formats() == ['xlsx']
        assert service.unregister_adapter('pdf') is None
        assert service.unregister_adapter('docx') is None

    def test_registries_are_per_instance(self):
        first = ExportService(sink=MemorySink())
        second = create_export_service(sink=MemorySink())
        first.register_adapter(RecordingAdapter())

        assert isinstance(second.get_adapter(ExportFormat.XLSX), XlsxAdapter)

    def test_singleton_has_default_adapters(self):
        assert export_service.registered_formats() == ['pdf', 'xlsx']

    def test_policy_override(self):
        policy = RedactionPolicy(
            module=ExportModule.PLAN_CONFIGURATION,
            fields=[FieldConfig('plan', 'Plan', RedactionAction.MASK)],
        )
        service = ExportService(sink=MemorySink(), policies={'plan-configuration': policy})
        payload = service.preview(PLAN_RECORDS, plan_config(selected_fields=['plan']), 'alice')

        assert payload.rows[0]['plan'] == 's*****r'
        assert service.resolve_policy('plan-configuration') is policy
        assert ExportService(sink=MemorySink()).resolve_policy(
            ExportModule.PLAN_CONFIGURATION
        ) is PLAN_CONFIGURATION_POLICY


class TestActivityLog:
    """Tests for the opt-in activity trail."""

    def test_logs_start_and_completion(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            service = ExportService(sink=MemorySink(), activity_log_dir=tmpdir)
            result = service.export(PLAN_RECORDS, plan_config(), 'alice')

            entries = read_activity_log(tmpdir)
            assert [e['event_type'] for e in entries] == ['export_started', 'export_complete']
            assert entries[1]['export_id'] == result.metadata.export_id
            assert entries[1]['record_count'] == 3
            assert entries[1]['user_hash'] == hash_user_id('alice')
            assert 'alice' not in open(os.path.join(tmpdir, 'export_activity.jsonl')).read()

    def test_logs_cancellation(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            token = CancelToken()
            token.abort()
            ExportService(sink=MemorySink(), activity_log_dir=tmpdir).export(
                PLAN_RECORDS, plan_config(), 'alice', cancel_token=token
            )

            entries = read_activity_log(tmpdir)
            assert entries[-1]['event_type'] == 'export_cancelled'
            assert entries[-1]['reason'] == 'User cancelled'

    def test_disabled_by_default(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            ExportService(sink=FileSink(tmpdir)).export(PLAN_RECORDS, plan_config(), 'alice')
            assert read_activity_log(tmpdir) == []
