"""
Error taxonomy for rendering and exporting presentations.

Every error carries a ``kind`` so callers can tell a bad template from bad
content from an export engine failure, and a ``retryable`` flag telling them
whether trying again can help.
"""
from typing import Any, Dict, Optional


class DeckExportError(Exception):
    """Base class for all errors raised by :mod:`deck_export`."""

    kind = "internal"
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "error": self.kind,
            "type": type(self).__name__,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class TemplateCompileError(DeckExportError):
    """Malformed template markup. Raised before any output is produced."""

    kind = "template"

    def __init__(self, message: str, *, construct: Optional[str] = None, lineno: Optional[int] = None):
        super().__init__(message, construct=construct, lineno=lineno)
        self.construct = construct
        self.lineno = lineno


class TemplateRenderError(DeckExportError):
    """The template compiled but failed as a whole while rendering."""

    kind = "template"


class RenderFieldError(DeckExportError):
    """A template reference that could not be resolved.

    Never raised out of a render: it is recorded, logged and the reference is
    substituted by an empty string.
    """

    kind = "template"

    def __init__(self, field: str, hint: Optional[str] = None):
        message = hint or f"'{field}' is undefined"
        super().__init__(message, field=field)
        self.field = field


class ContentValidationError(DeckExportError):
    """The content model is structurally invalid or does not fit the template."""

    kind = "content"

    def __init__(self, message: str, *, problems=None):
        problems = list(problems or [])
        super().__init__(message, problems=problems)
        self.problems = problems


class ExportSandboxError(DeckExportError):
    """The headless rendering engine timed out or crashed."""

    kind = "export_engine"
    retryable = True


class SlideSerializationError(DeckExportError):
    """The native slide deck could not be built or serialized."""

    kind = "export_engine"


class PersistenceError(DeckExportError):
    """Storing the exported bytes or writing the reference failed.

    ``object_url`` is set when the bytes already reached object storage, so a
    retry (which writes to the same key) can link them without regenerating.
    """

    kind = "persistence"
    retryable = True

    def __init__(self, message: str, *, object_url: Optional[str] = None):
        super().__init__(message, object_url=object_url)
        self.object_url = object_url


class VersionConflictError(PersistenceError):
    """The record changed since it was read (optimistic concurrency guard)."""

    def __init__(self, record_id: str, expected: int, actual: int):
        super().__init__(
            f"Record '{record_id}' is at version {actual}, expected {expected}"
        )
        self.record_id = record_id
        self.expected = expected
        self.actual = actual


class NotFoundError(DeckExportError):
    """A presentation, template or template markup does not exist."""

    kind = "not_found"


class UnsupportedFormatError(DeckExportError):
    """The requested export format is not one of the supported literals."""

    kind = "request"


def error_payload(exc: BaseException) -> Dict[str, Any]:
    """Return a structured, JSON-serializable description of *exc*."""
    if isinstance(exc, DeckExportError):
        return exc.to_dict()
    return {
        "error": "internal",
        "type": type(exc).__name__,
        "message": str(exc),
        "retryable": False,
    }
