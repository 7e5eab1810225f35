"""
Tests for export_core/utils.py - Utility functions
"""

import pytest
import sys
import os
import json
import tempfile
import csv
from datetime import date, datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'scripts'))

from export_core.types import ExportProgress
from export_core.utils import (
    setup_argparser,
    parse_field_list,
    parse_filters,
    load_json,
    load_csv,
    load_records,
    save_json,
    ensure_output_dir,
    parse_date,
    truncate,
    print_progress,
)


class TestParseDate:
    """Tests for parse_date function."""

    def test_parses_iso_timestamp(self):
        result = parse_date('2024-05-01T12:30:00.000Z')
        assert result.year == 2024
        assert result.hour == 12
        assert result.tzinfo is not None

    def test_parses_date_only(self):
        assert parse_date('2024-05-01') == datetime(2024, 5, 1)

    def test_parses_free_form(self):
        assert parse_date('15 January 2025').date() == date(2025, 1, 15)

    def test_passes_datetime_through(self):
        value = datetime(2024, 1, 1, 8, 0)
        assert parse_date(value) is value

    def test_converts_date(self):
        assert parse_date(date(2024, 1, 2)) == datetime(2024, 1, 2)

    def test_returns_none_for_invalid(self):
        assert parse_date('not a date') is None

    def test_returns_none_for_empty(self):
        assert parse_date('') is None
        assert parse_date(None) is None
        assert parse_date(42) is None


class TestTruncate:
    """Tests for truncate function."""

    def test_short_text_unchanged(self):
        assert truncate('short', 10) == 'short'

    def test_long_text_gets_ellipsis(self):
        assert truncate('abcdefghij', 8) == 'abcde...'
        assert len(truncate('x' * 100, 28)) == 28

    def test_handles_empty(self):
        assert truncate('') == ''
        assert truncate(None) == ''


class TestArgumentParsing:
    """Tests for CLI argument helpers."""

    def test_parse_field_list(self):
        assert parse_field_list('_id, name,,email ') == ['_id', 'name', 'email']

    def test_parse_field_list_empty(self):
        assert parse_field_list('') == []
        assert parse_field_list(None) == []

    def test_parse_filters(self):
        assert parse_filters(['status=active', 'q=a=b']) == {'status': 'active', 'q': 'a=b'}

    def test_parse_filters_rejects_missing_equals(self):
        with pytest.raises(ValueError):
            parse_filters(['status'])

    def test_argparser_defaults(self):
        args = setup_argparser().parse_args(['records.json', 'plan-configuration'])
        assert args.format == 'xlsx'
        assert args.output == './output'
        assert args.full_export is False
        assert args.filter == []

    def test_argparser_options(self):
        args = setup_argparser().parse_args([
            'orgs.csv', 'organization-management', '-f', 'pdf', '--fields', 'name,email',
            '--full-export', '--confirm-full-export', '--filter', 'status=active',
            '--date-from', '2024-01-01', '--no-audit', '-u', 'alice',
        ])
        assert args.format == 'pdf'
        assert args.fields == 'name,email'
        assert args.confirm_full_export is True
        assert args.filter == ['status=active']
        assert args.date_from == '2024-01-01'
        assert args.no_audit is True
        assert args.user_id == 'alice'

    def test_argparser_rejects_unknown_format(self):
        with pytest.raises(SystemExit):
            setup_argparser().parse_args(['records.json', 'plan-configuration', '-f', 'docx'])


class TestLoadJson:
    """Tests for load_json function."""

    def test_loads_valid_json(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            json.dump({"name": "test"}, f)
            f.flush()
            result = load_json(f.name)
        os.unlink(f.name)
        assert result == {"name": "test"}

    def test_raises_on_invalid_json(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            f.write("not valid json")
            f.flush()
            with pytest.raises(json.JSONDecodeError):
                load_json(f.name)
        os.unlink(f.name)

    def test_raises_on_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_json("/nonexistent/file.json")

    def test_detects_legacy_encoding(self):
        records = [{"name": "Café Müller", "city": "Genève"} for _ in range(50)]
        with tempfile.NamedTemporaryFile(mode='wb', suffix='.json', delete=False) as f:
            f.write(json.dumps(records, ensure_ascii=False).encode('latin-1'))
            path = f.name
        result = load_json(path)
        os.unlink(path)
        assert len(result) == 50
        assert result[0]['name'].startswith('Caf')


class TestLoadCsv:
    """Tests for load_csv function."""

    def test_loads_valid_csv(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.csv', delete=False, newline='') as f:
            writer = csv.DictWriter(f, fieldnames=['name', 'email'])
            writer.writeheader()
            writer.writerow({'name': 'John', 'email': 'john@test.com'})
            f.flush()
            result = load_csv(f.name)
        os.unlink(f.name)
        assert len(result) == 1
        assert result[0]['name'] == 'John'

    def test_strips_byte_order_mark(self):
        with tempfile.NamedTemporaryFile(mode='wb', suffix='.csv', delete=False) as f:
            f.write('\ufeffname,email\nAcme,info@acme.io\n'.encode('utf-8'))
            path = f.name
        result = load_csv(path)
        os.unlink(path)
        assert result == [{'name': 'Acme', 'email': 'info@acme.io'}]

    def test_handles_empty_csv(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.csv', delete=False) as f:
            f.write("")
            f.flush()
            result = load_csv(f.name)
        os.unlink(f.name)
        assert result == []


class TestLoadRecords:
    """Tests for load_records function."""

    def _write(self, tmpdir, name, content):
        path = os.path.join(tmpdir, name)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        return path

    def test_loads_json_list(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(tmpdir, 'plans.json', '[{"plan": "team"}]')
            assert load_records(path) == [{'plan': 'team'}]

    def test_unwraps_records_key(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            for key in ('records', 'data', 'items'):
                path = self._write(tmpdir, f'{key}.json', json.dumps({key: [{'a': 1}], 'total': 1}))
                assert load_records(path) == [{'a': 1}]

    def test_loads_csv_by_extension(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(tmpdir, 'orgs.CSV', 'name,status\nAcme,active\n')
            assert load_records(path) == [{'name': 'Acme', 'status': 'active'}]

    def test_rejects_non_list(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(tmpdir, 'bad.json', '{"plan": "team"}')
            with pytest.raises(ValueError):
                load_records(path)


class TestSaveJson:
    """Tests for save_json function."""

    def test_saves_json(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            path = f.name
        save_json({"name": "test"}, path)
        with open(path) as f:
            result = json.load(f)
        os.unlink(path)
        assert result == {"name": "test"}

    def test_creates_parent_directories(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'nested', 'preview.json')
            save_json({'when': datetime(2024, 1, 1)}, path)
            with open(path) as f:
                assert json.load(f) == {'when': '2024-01-01 00:00:00'}


class TestEnsureOutputDir:
    """Tests for ensure_output_dir function."""

    def test_creates_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            new_dir = os.path.join(tmpdir, "new_subdir")
            assert ensure_output_dir(new_dir) == new_dir
            assert os.path.isdir(new_dir)

    def test_handles_existing_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            ensure_output_dir(tmpdir)


class TestPrintProgress:
    """Tests for print_progress function."""

    def test_prints_percent_and_message(self, capsys):
        print_progress(ExportProgress(5, 'Applying redaction policy...'))
        assert capsys.readouterr().out == '  [  5%] Applying redaction policy...\n'

    def test_marks_non_cancellable_steps(self, capsys):
        print_progress(ExportProgress(90, 'Preparing download...', cancellable=False))
        assert '(finalizing)' in capsys.readouterr().out
