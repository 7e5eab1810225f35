"""
Activity logging for export runs.

Provides an append-only audit trail of every export attempt
(started, completed, cancelled, failed). Entries carry the hashed user
id from the export metadata, never the raw identity.

Log Format: JSON Lines (one JSON object per line)
Location: <output_dir>/export_activity.jsonl
"""

import logging
import json
import os
import threading
from datetime import datetime, timezone
from typing import Dict, List, Any


LOG_FILENAME = 'export_activity.jsonl'

# Module-level logger cache and lock for thread safety
_loggers: Dict[str, logging.Logger] = {}
_logger_lock = threading.Lock()


def _get_logger(output_dir: str = './output') -> logging.Logger:
    """
    Get or create the activity logger for a specific output directory.

    Args:
        output_dir: Directory for the log file

    Returns:
        Configured logger instance
    """
    log_path = os.path.abspath(os.path.join(output_dir, LOG_FILENAME))

    if log_path in _loggers:
        return _loggers[log_path]

    with _logger_lock:
        # Double-check after acquiring lock
        if log_path in _loggers:
            return _loggers[log_path]

        os.makedirs(output_dir, exist_ok=True)

        logger = logging.getLogger(f'export_activity_{hash(log_path)}')
        logger.setLevel(logging.INFO)

        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

        # Append mode: the trail is never rewritten
        handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        handler.setFormatter(logging.Formatter('%(message)s'))
        logger.addHandler(handler)
        logger.propagate = False

        _loggers[log_path] = logger
        return logger


def log_event(event_type: str, output_dir: str = './output', **kwargs) -> None:
    """
    Log an export activity event.

    Args:
        event_type: Type of event (e.g., 'export_started', 'export_complete')
        output_dir: Output directory for the log file
        **kwargs: Additional event data

    Event Types:
        - export_started: Pipeline begins for a module/format
        - export_complete: File delivered
        - export_cancelled: Cancel token observed
        - export_failed: Validation, adapter or delivery error
    """
    try:
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'event_type': event_type,
            **kwargs
        }

        logger = _get_logger(output_dir)
        logger.info(json.dumps(entry, default=str))
    except Exception:
        # Never let logging failures crash an export
        logging.getLogger(__name__).debug("Activity log write failed", exc_info=True)


def get_activity_log_path(output_dir: str = './output') -> str:
    """
    Get the path to the activity log file.

    Args:
        output_dir: Output directory

    Returns:
        Full path to the activity log file
    """
    return os.path.join(output_dir, LOG_FILENAME)


def read_activity_log(output_dir: str = './output') -> List[Dict]:
    """
    Read all entries from the activity log.

    Args:
        output_dir: Output directory containing the log

    Returns:
        List of log entry dictionaries
    """
    log_path = get_activity_log_path(output_dir)
    entries = []

    if not os.path.exists(log_path):
        return entries

    try:
        with open(log_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line:
                    try:
                        entries.append(json.loads(line))
                    except json.JSONDecodeError:
                        continue
    except IOError:
        pass

    return entries


def get_activity_summary(
    module: str,
    output_dir: str = './output'
) -> Dict[str, Any]:
    """
    Summarize export activity for one module.

    Args:
        module: Module value (e.g. 'organization-management')
        output_dir: Output directory containing the log

    Returns:
        Summary dictionary with export statistics
    """
    module = getattr(module, 'value', module)
    module_entries = [
        e for e in read_activity_log(output_dir)
        if e.get('module') == module
    ]

    completions = [e for e in module_entries if e.get('event_type') == 'export_complete']
    failures = [e for e in module_entries if e.get('event_type') == 'export_failed']
    cancellations = [e for e in module_entries if e.get('event_type') == 'export_cancelled']

    formats_used = []
    total_records = 0
    total_execution_time = 0.0

    for entry in completions:
        export_format = entry.get('format')
        if export_format and export_format not in formats_used:
            formats_used.append(export_format)

        records = entry.get('record_count', 0)
        if isinstance(records, int):
            total_records += records

        exec_time = entry.get('execution_time_seconds', 0)
        if isinstance(exec_time, (int, float)):
            total_execution_time += exec_time

    last_export_date = None
    if completions:
        last_ts = completions[-1].get('timestamp', '')
        if last_ts:
            last_export_date = last_ts[:10]  # YYYY-MM-DD

    return {
        'module': module,
        'exports_completed': len(completions),
        'exports_failed': len(failures),
        'exports_cancelled': len(cancellations),
        'formats_used': sorted(formats_used),
        'total_records': total_records,
        'total_execution_time_seconds': round(total_execution_time, 2),
        'last_export_date': last_export_date,
        'all_successful': len(failures) == 0,
    }


def clear_activity_log(output_dir: str = './output') -> None:
    """
    Clear the activity log file.

    Use with caution - this removes the audit trail.

    Args:
        output_dir: Output directory containing the log
    """
    log_path = os.path.abspath(os.path.join(output_dir, LOG_FILENAME))

    with _logger_lock:
        if log_path in _loggers:
            logger = _loggers[log_path]
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)
            del _loggers[log_path]

    if os.path.exists(log_path):
        os.remove(log_path)
