"""
Format adapter contract.

One adapter per ExportFormat. An adapter turns a validated ExportPayload
into the bytes of one file and hands them to its delivery sink. The
orchestrator only ever talks to this interface, so the from-scratch
encoders can be swapped for library-backed ones via
ExportService.register_adapter() without touching any caller.
"""

from typing import Callable, Optional

from ..cancellation import CancelToken, check_cancelled
from ..delivery import DeliverySink, FileSink
from ..errors import AdapterError, ExportError
from ..types import ExportFormat, ExportPayload, ExportProgress
from ..utils import parse_date
from ..validation import assert_valid_payload

ProgressCallback = Callable[[ExportProgress], None]


def build_filename(payload: ExportPayload, extension: str) -> str:
    """
    Build the deterministic export filename.

    Format: <module>-export-<YYYYMMDD>-<export_id>.<ext>, dated by the
    metadata timestamp.
    """
    module = getattr(payload.config.module, 'value', payload.config.module)
    stamp = parse_date(payload.metadata.timestamp)
    day = stamp.strftime('%Y%m%d') if stamp else '00000000'
    return f"{module}-export-{day}-{payload.metadata.export_id}.{extension}"


def emit(on_progress: Optional[ProgressCallback], percent: int, message: str,
         cancellable: bool = True) -> None:
    if on_progress is not None:
        on_progress(ExportProgress(percent, message, cancellable))


class ExportAdapter:
    """
    Base class for format adapters.

    Subclasses set `format`, `extension` and `mime_type` and implement
    encode(); generate() wraps it with validation, cancellation checks and
    delivery.
    """

    format: ExportFormat
    extension: str = ''
    mime_type: str = 'application/octet-stream'

    def __init__(self, sink: Optional[DeliverySink] = None):
        self.sink = sink or FileSink()

    def encode(
        self,
        payload: ExportPayload,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None
    ) -> bytes:
        """Produce the complete file content for a payload."""
        raise NotImplementedError

    def generate(
        self,
        payload: ExportPayload,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None
    ) -> str:
        """
        Validate, encode and deliver a payload.

        Args:
            payload: The assembled export payload
            on_progress: Optional progress callback
            cancel_token: Optional cancel token, checked between sections

        Returns:
            The delivered filename

        Raises:
            PayloadValidationError: If the payload fails validation
            ExportCancelledError: If the token is aborted before delivery
            AdapterError: If encoding fails
        """
        assert_valid_payload(payload)
        check_cancelled(cancel_token)

        try:
            data = self.encode(payload, on_progress, cancel_token)
        except ExportError:
            raise
        except Exception as e:
            raise AdapterError(f"{self.format.value} encoding failed: {e}") from e

        # Last point at which cancelling still prevents delivery
        check_cancelled(cancel_token)
        emit(on_progress, 90, 'Preparing download...', cancellable=False)

        filename = self.sink.deliver(build_filename(payload, self.extension), data, self.mime_type)

        emit(on_progress, 100, 'Download ready', cancellable=False)
        return filename
