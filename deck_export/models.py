"""
Data models for presentation content, templates and export formats.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .errors import ContentValidationError, UnsupportedFormatError


class OutputType(str, Enum):
    SINGLE_SLIDE = "single_slide"
    MULTI_SLIDE = "multi_slide"
    ONE_PAGER = "one_pager"
    NARRATIVE = "narrative"


class ExportFormat(str, Enum):
    """Formats a presentation can be exported to."""

    PAGINATED = "paginated"
    SLIDES = "slides"

    @property
    def extension(self) -> str:
        return "pdf" if self is ExportFormat.PAGINATED else "pptx"

    @property
    def content_type(self) -> str:
        if self is ExportFormat.PAGINATED:
            return "application/pdf"
        return "application/vnd.openxmlformats-officedocument.presentationml.presentation"

    @classmethod
    def parse(cls, value) -> "ExportFormat":
        """Return the format for *value*, raising :class:`UnsupportedFormatError`."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(f'"{f.value}"' for f in cls)
            raise UnsupportedFormatError(
                f"Invalid format {value!r}. Use one of {allowed}", format=value
            ) from None


def _require(data, key: str, kind: str) -> None:
    if not isinstance(data, dict):
        raise ContentValidationError(f"{kind} must be an object, got {type(data).__name__}")
    if data.get(key) is None:
        raise ContentValidationError(f"{kind} is missing required field '{key}'", problems=[f"{key} is required"])


def _pick(data: Dict[str, Any], *keys: str, default=None):
    """Return the first key present in *data* (snake_case or camelCase)."""
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass
class Section:
    """
    One semantic content unit; one slide or one printed page in every format.
    """
    id: str
    heading: str
    bullets: Optional[List[str]] = None
    content: Optional[str] = None  # free text, ignored when bullets exist
    notes: Optional[str] = None  # speaker notes
    order: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_bullets(self) -> bool:
        """Bullets win over free text; an empty list counts as no bullets."""
        return bool(self.bullets)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Section":
        if not isinstance(data, dict):
            raise ContentValidationError(f"Section must be an object, got {type(data).__name__}")
        bullets = data.get("bullets")
        if bullets is not None:
            if isinstance(bullets, str) or not isinstance(bullets, (list, tuple)):
                raise ContentValidationError(
                    f"Section '{data.get('id')}' bullets must be a list of strings"
                )
            bullets = [str(b) for b in bullets]
        order = data.get("order")
        if order is not None and (isinstance(order, bool) or not isinstance(order, (int, float))):
            raise ContentValidationError(f"Section '{data.get('id')}' order must be a number")
        return cls(
            id=str(data.get("id", "")),
            heading=data.get("heading", ""),
            bullets=bullets,
            content=data.get("content"),
            notes=data.get("notes"),
            order=order,
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "heading": self.heading}
        for name in ("bullets", "content", "notes", "order"):
            value = getattr(self, name)
            if value is not None:
                data[name] = list(value) if name == "bullets" else value
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


@dataclass
class Content:
    """
    Format-independent description of a presentation.
    """
    title: str
    sections: List[Section] = field(default_factory=list)
    subtitle: Optional[str] = None
    audience: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> "Content":
        """Check structural invariants, raising :class:`ContentValidationError`.

        Returns ``self`` so calls can be chained.
        """
        problems = []
        if not isinstance(self.title, str) or not self.title.strip():
            problems.append("title is required and must be non-empty")

        seen: Set[str] = set()
        for position, section in enumerate(self.sections):
            label = section.id or f"#{position}"
            if not section.id:
                problems.append(f"section {label} has no id")
            elif section.id in seen:
                problems.append(f"duplicate section id '{section.id}'")
            seen.add(section.id)
            if not isinstance(section.heading, str) or not section.heading.strip():
                problems.append(f"section {label} has no heading")

        if problems:
            raise ContentValidationError(
                "Invalid presentation content: " + "; ".join(problems), problems=problems
            )
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Content":
        """Build and validate a :class:`Content` from a JSON-like mapping."""
        if not isinstance(data, dict):
            raise ContentValidationError(f"Content must be an object, got {type(data).__name__}")
        sections = data.get("sections") or []
        if not isinstance(sections, (list, tuple)):
            raise ContentValidationError("sections must be a list")
        content = cls(
            title=data.get("title", ""),
            sections=[Section.from_dict(s) for s in sections],
            subtitle=data.get("subtitle"),
            audience=data.get("audience"),
            metadata=dict(data.get("metadata") or {}),
        )
        return content.validate()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "sections": [s.to_dict() for s in self.sections],
        }
        if self.subtitle is not None:
            data["subtitle"] = self.subtitle
        if self.audience is not None:
            data["audience"] = self.audience
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


@dataclass
class Template:
    """
    A markup template. ``markup`` is opaque text owned by an external store.
    """
    id: str
    markup: str = ""
    output_type: OutputType = OutputType.MULTI_SLIDE
    version: int = 1
    name: Optional[str] = None
    required_fields: Set[str] = field(default_factory=set)
    allowed_section_ids: Optional[Set[str]] = None

    @property
    def cache_key(self):
        return (self.id, self.version)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Template":
        _require(data, "id", "Template")
        output_type = _pick(data, "output_type", "outputType", default=OutputType.MULTI_SLIDE.value)
        try:
            output_type = OutputType(output_type)
        except ValueError:
            raise ContentValidationError(f"Unknown template output type {output_type!r}") from None
        allowed = _pick(data, "allowed_section_ids", "allowedSectionIds", "allowed_sections")
        return cls(
            id=str(data["id"]),
            markup=_pick(data, "markup", "html_content", default="") or "",
            output_type=output_type,
            version=int(data.get("version", 1)),
            name=data.get("name"),
            required_fields=set(_pick(data, "required_fields", "requiredFields", default=()) or ()),
            allowed_section_ids=set(allowed) if allowed is not None else None,
        )


@dataclass
class Presentation:
    """
    A persisted presentation record as read from the document store.
    """
    id: str
    content: Content
    template_id: str
    export_references: Dict[str, str] = field(default_factory=dict)
    version: int = 1
    title: Optional[str] = None
    status: str = "draft"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Presentation":
        _require(data, "id", "Presentation")
        _require(data, "content", "Presentation")
        content = data["content"]
        if not isinstance(content, Content):
            content = Content.from_dict(content)
        return cls(
            id=str(data["id"]),
            content=content,
            template_id=str(_pick(data, "template_id", "templateId", default="")),
            export_references=dict(
                _pick(data, "export_references", "exportReferences", "export_urls", default=None) or {}
            ),
            version=int(data.get("version", 1)),
            title=data.get("title"),
            status=data.get("status", "draft"),
        )
