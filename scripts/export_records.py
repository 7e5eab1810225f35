#!/usr/bin/env python3
"""
Export records as a redacted, audited XLSX workbook or PDF report.

Loads raw records from a JSON or CSV file, applies the module's redaction
policy, and writes the generated file to the output directory. Every run
is recorded in the activity log (export_activity.jsonl) next to the output.

Usage:
    python export_records.py plans.json plan-configuration -f xlsx
    python export_records.py orgs.json organization-management -f pdf \\
        --fields _id,name,email --full-export --confirm-full-export \\
        --filter status=active --user-id alice

Exit codes:
    0  export delivered (or preview written)
    1  error
    2  cancelled (Ctrl-C)
"""

import sys
import os
import threading
from typing import List, Optional

# Add parent directory for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from export_core.cancellation import CancelToken
from export_core.errors import ExportError
from export_core.policies import get_default_policy
from export_core.service import ExportService
from export_core.delivery import FileSink
from export_core.types import (
    DateRange, ExportConfig, ExportFormat, ExportModule, ExportResult, ExportStatus,
)
from export_core.utils import (
    setup_argparser, parse_field_list, parse_filters, load_records, save_json,
    ensure_output_dir, print_progress,
)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 2


def build_config(args, selected_fields: List[str]) -> ExportConfig:
    """Map parsed CLI arguments onto an ExportConfig."""
    date_range = None
    if args.date_from or args.date_to:
        date_range = DateRange(start=args.date_from, end=args.date_to)

    return ExportConfig(
        format=ExportFormat(args.format),
        module=ExportModule(args.module),
        selected_fields=selected_fields,
        include_audit_metadata=not args.no_audit,
        full_export=args.full_export,
        date_range=date_range,
        filters=parse_filters(args.filter),
    )


def run_export(
    service: ExportService,
    records: list,
    config: ExportConfig,
    user_id: str,
    token: CancelToken
) -> ExportResult:
    """
    Run the export on a worker thread so Ctrl-C can abort it cooperatively.

    The main thread only waits; an interrupt aborts the token and the
    pipeline stops at its next checkpoint.
    """
    outcome: List[Optional[ExportResult]] = [None]

    def worker():
        outcome[0] = service.export(records, config, user_id, print_progress, token)

    thread = threading.Thread(target=worker, name='export-worker', daemon=True)
    thread.start()
    try:
        while thread.is_alive():
            thread.join(timeout=0.2)
    except KeyboardInterrupt:
        print("\nCancelling export...")
        token.abort('User cancelled')
        thread.join()

    return outcome[0] or ExportResult.failure('Export did not complete')


def main(argv: Optional[List[str]] = None) -> int:
    parser = setup_argparser()
    args = parser.parse_args(argv)

    try:
        policy = get_default_policy(args.module)
        selected_fields = parse_field_list(args.fields) or policy.default_selection()

        unknown = [key for key in selected_fields if policy.get_field(key) is None]
        if unknown:
            print(
                f"Warning: ignoring fields not in the {policy.module.display_name} "
                f"policy: {', '.join(unknown)}"
            )

        if args.full_export and policy.requires_full_export_confirmation and not args.confirm_full_export:
            print(
                f"Error: full export of {policy.module.display_name} reveals personal data; "
                "re-run with --confirm-full-export"
            )
            return EXIT_ERROR

        config = build_config(args, selected_fields)

        print(f"Loading records from {args.records_path}...")
        records = load_records(args.records_path)
        print(f"  Loaded {len(records):,} records")

        ensure_output_dir(args.output)
        service = ExportService(sink=FileSink(args.output), activity_log_dir=args.output)

        if args.preview:
            payload = service.preview(records, config, args.user_id)
            preview_path = os.path.join(
                args.output, f"{config.module.value}-preview-{payload.metadata.export_id}.json"
            )
            save_json(payload.to_dict(), preview_path)
            print(f"\n✓ Preview: {payload.metadata.record_count:,} records")
            print(f"  → {preview_path}")
            return EXIT_OK

        print(f"Exporting {config.module.display_name} as {config.format.value.upper()}...")
        result = run_export(service, records, config, args.user_id, CancelToken())

    except (ExportError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    if result.ok:
        print("\n" + "=" * 60)
        print("EXPORT COMPLETED SUCCESSFULLY")
        print("=" * 60)
        print(f"\nExport ID: {result.metadata.export_id}")
        print(f"Records: {result.metadata.record_count:,}")
        print(f"Checksum: {result.metadata.data_checksum}")
        if result.metadata.redacted_fields:
            print(f"Redacted Fields: {', '.join(result.metadata.redacted_fields)}")
        print(f"\nFile: {os.path.join(args.output, result.filename)}")
        print("=" * 60)
        return EXIT_OK

    if result.status == ExportStatus.CANCELLED:
        print(f"Export cancelled: {result.reason}")
        return EXIT_CANCELLED

    print(f"Error: {result.error}")
    return EXIT_ERROR


if __name__ == '__main__':
    sys.exit(main())
