"""
Common utilities for the export toolkit.

This module provides shared functionality for:
- Command-line argument parsing
- File I/O operations (JSON, CSV)
- Date parsing
- Text processing utilities
"""

import argparse
import csv
import json
import os
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import chardet
from dateutil import parser as date_parser


def setup_argparser() -> argparse.ArgumentParser:
    """
    Create the argument parser for the export CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description='Export records as a redacted, audited XLSX or PDF file',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python export_records.py plans.json plan-configuration -f xlsx
  python export_records.py orgs.csv organization-management -f pdf --fields name,email,status
  python export_records.py orgs.json organization-management --full-export --confirm-full-export
        """
    )
    parser.add_argument(
        'records_path',
        help='Path to the records file (JSON or CSV)'
    )
    parser.add_argument(
        'module',
        help='Exporting module (e.g. organization-management)'
    )
    parser.add_argument(
        '--format', '-f',
        default='xlsx',
        choices=['xlsx', 'pdf'],
        help='Output format (default: xlsx)'
    )
    parser.add_argument(
        '--fields',
        help='Field keys to export (comma-separated, default: policy defaults)'
    )
    parser.add_argument(
        '--user-id', '-u',
        default=os.environ.get('USER', 'anonymous'),
        help='Identifier of the initiating user (stored hashed only)'
    )
    parser.add_argument(
        '--full-export',
        action='store_true',
        help='Reveal overridable redacted fields (PII)'
    )
    parser.add_argument(
        '--confirm-full-export',
        action='store_true',
        help='Confirm a full export for modules that require it'
    )
    parser.add_argument(
        '--no-audit',
        action='store_true',
        help='Do not append the audit metadata section to PDF output'
    )
    parser.add_argument(
        '--filter',
        action='append',
        default=[],
        metavar='KEY=VALUE',
        help='Filter snapshot recorded in the audit metadata (repeatable)'
    )
    parser.add_argument(
        '--date-from',
        help='Start of the exported date range'
    )
    parser.add_argument(
        '--date-to',
        help='End of the exported date range'
    )
    parser.add_argument(
        '--preview',
        action='store_true',
        help='Write the redacted payload as JSON instead of generating a file'
    )
    parser.add_argument(
        '--output', '-o',
        default='./output',
        help='Output directory (default: ./output)'
    )
    return parser


def parse_field_list(fields_arg: str) -> List[str]:
    """
    Parse a comma-separated field list from a CLI argument.

    Args:
        fields_arg: Comma-separated string of field keys

    Returns:
        List of field keys (empty if none given)
    """
    if not fields_arg:
        return []
    return [key.strip() for key in fields_arg.split(',') if key.strip()]


def parse_filters(filter_args: List[str]) -> Dict[str, str]:
    """
    Parse repeated KEY=VALUE filter arguments.

    Raises:
        ValueError: If an argument has no '='
    """
    filters = {}
    for item in filter_args or []:
        if '=' not in item:
            raise ValueError(f"Invalid filter '{item}', expected KEY=VALUE")
        key, value = item.split('=', 1)
        filters[key.strip()] = value.strip()
    return filters


def load_json(path: str) -> Any:
    """
    Load a JSON file with automatic encoding detection.

    Args:
        path: Path to the JSON file

    Returns:
        Parsed JSON content

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If JSON is invalid
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Records file not found: {path}")

    # Try UTF-8 first (most common)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except UnicodeDecodeError:
        pass

    with open(path, 'rb') as f:
        raw = f.read()
    encoding = chardet.detect(raw).get('encoding') or 'utf-8'
    return json.loads(raw.decode(encoding))


def load_csv(path: str) -> List[Dict]:
    """
    Load a CSV file as a list of dictionaries.

    Args:
        path: Path to the CSV file

    Returns:
        List of dictionaries (one per row)

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Records file not found: {path}")

    for encoding in ('utf-8-sig', 'utf-8'):
        try:
            with open(path, 'r', encoding=encoding, newline='') as f:
                return list(csv.DictReader(f))
        except UnicodeDecodeError:
            continue

    # Fall back to chardet
    with open(path, 'rb') as f:
        raw = f.read()
    encoding = chardet.detect(raw).get('encoding') or 'latin-1'

    with open(path, 'r', encoding=encoding, newline='') as f:
        return list(csv.DictReader(f))


def load_records(path: str) -> List[Dict]:
    """
    Load raw records from a JSON or CSV file.

    JSON files may hold a list of records or an object wrapping the list
    under 'records', 'data' or 'items'.

    Raises:
        ValueError: If no record list can be found
    """
    if path.lower().endswith('.csv'):
        return load_csv(path)

    data = load_json(path)
    if isinstance(data, dict):
        for key in ('records', 'data', 'items'):
            if isinstance(data.get(key), list):
                data = data[key]
                break

    if not isinstance(data, list):
        raise ValueError(f"No list of records found in {path}")
    return data


def save_json(data: Any, path: str) -> None:
    """
    Save data as a formatted JSON file.

    Args:
        data: Data to serialize
        path: Output file path
    """
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)

    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, default=str, ensure_ascii=False)


def ensure_output_dir(output_dir: str) -> str:
    """
    Ensure an output directory exists, creating it if necessary.

    Returns:
        The same path (for chaining)
    """
    os.makedirs(output_dir, exist_ok=True)
    return output_dir


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a date or timestamp in any common format.

    Args:
        value: ISO-8601 string, free-form date string, date or datetime

    Returns:
        A datetime, or None if the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return date_parser.isoparse(text)
    except ValueError:
        pass

    try:
        return date_parser.parse(text)
    except (ValueError, OverflowError):
        return None


def truncate(text: str, max_length: int = 500) -> str:
    """
    Truncate text to a maximum length with ellipsis.

    Args:
        text: Text to truncate
        max_length: Maximum length (default 500)

    Returns:
        Truncated text with ellipsis if necessary
    """
    if not text:
        return ''
    text = str(text)
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + '...'


def print_progress(progress) -> None:
    """
    Print an ExportProgress checkpoint.

    Args:
        progress: ExportProgress emitted by the pipeline
    """
    marker = '' if progress.cancellable else ' (finalizing)'
    print(f"  [{progress.percent:3d}%] {progress.message}{marker}", flush=True)
