#!/usr/bin/env python3
"""
Export orchestrator that ties together the renderer, the wrapper and the
two exporters, and writes results back through the storage collaborators.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .document import wrap_document
from .errors import (
    ContentValidationError,
    DeckExportError,
    NotFoundError,
    PersistenceError,
    VersionConflictError,
)
from .models import Content, ExportFormat, Template
from .outline import check_template_fit
from .paths import object_key
from .pdf_exporter import PaginatedExporter
from .pptx_renderer import SlideDeckRenderer
from .settings import ExportSettings
from .storage import DocumentStore, ObjectStore, TemplateBlobStore
from .template_engine import DEFAULT_TEMPLATE_MARKUP, HelperRegistry, TemplateCompiler

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Terminal outcome of a successful export."""
    presentation_id: str
    format: ExportFormat
    reference: str
    size: int


class ExportService:
    """
    Main entry point for rendering and exporting presentations.

    Every call is independent: the only shared mutable state is the persisted
    export reference map, which is updated one key at a time under an
    optimistic concurrency guard.
    """

    def __init__(
        self,
        documents: DocumentStore,
        template_blobs: TemplateBlobStore,
        objects: ObjectStore,
        *,
        settings: Optional[ExportSettings] = None,
        compiler: Optional[TemplateCompiler] = None,
        paginated_exporter: Optional[PaginatedExporter] = None,
        slide_renderer: Optional[SlideDeckRenderer] = None,
    ):
        """Create a new :class:`ExportService`.

        Parameters
        ----------
        documents
            Presentation and template records.
        template_blobs
            Template markup keyed by template id and version.
        objects
            Where exported bytes are written.
        settings
            Theme, timeouts and concurrency limits. Defaults to
            :class:`ExportSettings` defaults.
        compiler, paginated_exporter, slide_renderer
            Override the components built from *settings* (tests pass fakes).
        """
        self.documents = documents
        self.template_blobs = template_blobs
        self.objects = objects
        self.settings = settings or ExportSettings()
        self.compiler = compiler or TemplateCompiler(HelperRegistry(), max_size=self.settings.template_cache_size)
        self.paginated_exporter = paginated_exporter or PaginatedExporter.from_settings(self.settings)
        self.slide_renderer = slide_renderer or SlideDeckRenderer(theme=self.settings.theme,
                                                                  debug=self.settings.debug)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, template: Template, content: Content) -> str:
        """Render *content* through *template* into a markup fragment."""
        content.validate()
        problems = check_template_fit(template, content)
        if problems:
            raise ContentValidationError(
                f"Content does not fit template '{template.id}': " + "; ".join(problems),
                problems=problems,
            )
        return self.compiler.render(template, content)

    def render_document(self, template: Template, content: Content) -> str:
        """Render and wrap into a complete printable document."""
        fragment = self.render(template, content)
        return wrap_document(fragment, title=content.title, theme=self.settings.theme)

    async def load_template(self, template_id: str) -> Template:
        """Template record with its markup fetched from blob storage."""
        template = await self.documents.get_template(template_id)
        template.markup = await self.template_blobs.get_markup(template.id, template.version)
        return template

    async def render_presentation(self, presentation_id: str) -> str:
        """Wrapped display document for a stored presentation."""
        presentation = await self.documents.get_presentation(presentation_id)
        template = await self.load_template(presentation.template_id)
        return self.render_document(template, presentation.content)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_bytes(self, fmt, content: Content, template: Optional[Template] = None) -> bytes:
        """
        Produce the exported file for *content* without persisting it.

        ``paginated`` renders *template* and prints it; ``slides`` builds the
        deck from the content alone and ignores *template*.
        """
        fmt = ExportFormat.parse(fmt)
        if fmt is ExportFormat.SLIDES:
            return await asyncio.to_thread(self.slide_renderer.render, content)

        if template is None:
            raise NotFoundError("A template is required for paginated export")
        document = self.render_document(template, content)
        return await self.paginated_exporter.export(document)

    async def apply_export(self, presentation_id: str, fmt, data: bytes) -> str:
        """
        Store *data* and link it from the presentation's reference map.

        The object key is deterministic, so calling this again after a
        failure overwrites the same object. Only the *fmt* key of the map is
        written; a concurrent writer makes us re-read and try again.
        """
        fmt = ExportFormat.parse(fmt)
        try:
            key = object_key(presentation_id, fmt.extension)
            url = await self.objects.put(self.settings.presentations_container, key, data, fmt.content_type)
        except DeckExportError:
            raise
        except Exception as exc:
            raise PersistenceError(f"Failed to store {fmt.value} export of '{presentation_id}': {exc}") from exc

        attempts = self.settings.reference_write_attempts
        for attempt in range(1, attempts + 1):
            presentation = await self.documents.get_presentation(presentation_id)
            try:
                await self.documents.set_export_reference(presentation_id, fmt.value, url, presentation.version)
            except VersionConflictError as exc:
                logger.info("Reference write for %s/%s conflicted (attempt %d/%d): %s",
                            presentation_id, fmt.value, attempt, attempts, exc)
                continue
            except NotFoundError:
                raise
            except Exception as exc:
                raise PersistenceError(
                    f"Stored {key} but could not link it from presentation '{presentation_id}': {exc}",
                    object_url=url,
                ) from exc
            return url

        raise PersistenceError(
            f"Stored {key} but the reference write kept conflicting after {attempts} attempts",
            object_url=url,
        )

    async def export(self, presentation_id: str, fmt) -> ExportResult:
        """Run the whole pipeline for one stored presentation."""
        fmt = ExportFormat.parse(fmt)
        presentation = await self.documents.get_presentation(presentation_id)

        template = None
        if fmt is ExportFormat.PAGINATED:
            template = await self.load_template(presentation.template_id)

        data = await self.export_bytes(fmt, presentation.content, template)
        reference = await self.apply_export(presentation_id, fmt, data)
        logger.info("✅ Exported %s as %s -> %s", presentation_id, fmt.value, reference)
        return ExportResult(presentation_id=presentation_id, format=fmt, reference=reference, size=len(data))


def main(argv=None):
    """Command-line entry point for exporting a content file."""
    import argparse

    from .errors import error_payload
    from .storage import InMemoryDocumentStore, InMemoryObjectStore, InMemoryTemplateBlobStore

    def _build_parser() -> argparse.ArgumentParser:
        p = argparse.ArgumentParser(prog="deck-export", description="Export presentation content to PDF or PPTX.")
        p.add_argument("content", type=Path, help="JSON file with the presentation content")
        p.add_argument("--format", "-f", choices=[f.value for f in ExportFormat], default=ExportFormat.SLIDES.value,
                       help="Export format (default: slides)")
        p.add_argument("--template", "-T", type=Path, help="Template markup file (paginated/--html only)")
        p.add_argument("--output", "-o", type=Path, help="Destination file (default: next to the content file)")
        p.add_argument("--theme", "-t", help="CSS theme to use (default, dark, …)")
        p.add_argument("--timeout", type=int, help="Navigation timeout for the headless browser in ms")
        p.add_argument("--html", action="store_true", help="Write the wrapped display document instead of exporting")
        p.add_argument("--debug", action="store_true", help="Enable verbose logging")
        return p

    async def _run(args) -> Path:
        overrides = {"debug": args.debug}
        if args.theme:
            overrides["theme"] = args.theme
        if args.timeout:
            overrides["navigation_timeout_ms"] = args.timeout
        settings = ExportSettings.from_env(**overrides)

        content = Content.from_dict(json.loads(args.content.read_text(encoding="utf-8")))
        if args.template:
            template = Template(id=args.template.stem, markup=args.template.read_text(encoding="utf-8"))
        else:
            template = Template(id="default", markup=DEFAULT_TEMPLATE_MARKUP)

        service = ExportService(InMemoryDocumentStore(), InMemoryTemplateBlobStore(), InMemoryObjectStore(),
                                settings=settings)
        fmt = ExportFormat(args.format)
        suffix = ".html" if args.html else f".{fmt.extension}"
        output = args.output or args.content.with_suffix(suffix)
        output.parent.mkdir(parents=True, exist_ok=True)

        if args.html:
            output.write_text(service.render_document(template, content), encoding="utf-8")
        else:
            output.write_bytes(await service.export_bytes(fmt, content, template))
        return output

    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format="%(levelname)s  %(message)s")

    if not args.content.exists():
        logger.error(f"Content file '{args.content}' not found")
        return 1

    try:
        output = asyncio.run(_run(args))
    except json.JSONDecodeError as exc:
        logger.error(f"Content file '{args.content}' is not valid JSON: {exc}")
        return 1
    except DeckExportError as exc:
        logger.error(json.dumps(error_payload(exc)))
        return 1
    except ValueError as exc:
        logger.error(f"Invalid settings: {exc}")
        return 1

    logger.info("✅ Written to %s", output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
