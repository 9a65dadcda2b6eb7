"""
Deck Export Package

Renders presentation content through markup templates and exports it as a
paginated PDF or a native PowerPoint deck.

Every sub-module logs through ``logging.getLogger(__name__)``; the package
logger honours the ``DECK_EXPORT_LOG_LEVEL`` environment variable.
"""

import logging
import os

_level = os.getenv("DECK_EXPORT_LOG_LEVEL")
if _level:
    logging.getLogger(__name__).setLevel(_level.upper())

from .document import wrap_document  # noqa: E402  (import after logger)
from .errors import (  # noqa: E402
    ContentValidationError,
    DeckExportError,
    ExportSandboxError,
    NotFoundError,
    PersistenceError,
    RenderFieldError,
    SlideSerializationError,
    TemplateCompileError,
    TemplateRenderError,
    UnsupportedFormatError,
    VersionConflictError,
)
from .exporter import ExportResult, ExportService  # noqa: E402
from .models import Content, ExportFormat, OutputType, Presentation, Section, Template  # noqa: E402
from .outline import OutlineEntry, build_outline, order_sections  # noqa: E402
from .pdf_exporter import PaginatedExporter, PdfOptions, PyppeteerBackend, RenderingBackend  # noqa: E402
from .pptx_renderer import SlideDeckRenderer, export_slides  # noqa: E402
from .settings import ExportSettings  # noqa: E402
from .template_engine import (  # noqa: E402
    CompiledTemplate,
    HelperRegistry,
    TemplateCompiler,
    compile_template,
    render,
    render_template,
)

__all__ = [
    "CompiledTemplate",
    "Content",
    "ContentValidationError",
    "DeckExportError",
    "ExportFormat",
    "ExportResult",
    "ExportSandboxError",
    "ExportService",
    "ExportSettings",
    "HelperRegistry",
    "NotFoundError",
    "OutlineEntry",
    "OutputType",
    "PaginatedExporter",
    "PdfOptions",
    "PersistenceError",
    "Presentation",
    "PyppeteerBackend",
    "RenderFieldError",
    "RenderingBackend",
    "Section",
    "SlideDeckRenderer",
    "SlideSerializationError",
    "Template",
    "TemplateCompileError",
    "TemplateCompiler",
    "TemplateRenderError",
    "UnsupportedFormatError",
    "VersionConflictError",
    "build_outline",
    "compile_template",
    "export_slides",
    "order_sections",
    "render",
    "render_template",
    "wrap_document",
]
