"""
Ordered outline shared by every output format.

The template renderer and the native slide exporter both consume the list
returned by :func:`build_outline`, so section ordering and the bullets-vs-text
choice are decided in exactly one place.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .models import Content, Section, Template


@dataclass(frozen=True)
class OutlineEntry:
    """
    One section resolved for output: at most one of ``bullets``/``text`` is set.
    """
    id: str
    heading: str
    bullets: Optional[List[str]] = None
    text: Optional[str] = None
    notes: Optional[str] = None
    order: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    index: int = 0
    is_first: bool = False
    is_last: bool = False

    def to_context(self) -> Dict[str, Any]:
        """Mapping exposed to templates.

        ``content`` mirrors ``text`` so templates written against the raw
        section shape keep working, but it is empty whenever bullets exist.
        """
        return {
            "id": self.id,
            "heading": self.heading,
            "bullets": list(self.bullets) if self.bullets is not None else None,
            "content": self.text,
            "text": self.text,
            "notes": self.notes,
            "order": self.order,
            "metadata": dict(self.metadata),
            "index": self.index,
            "is_first": self.is_first,
            "is_last": self.is_last,
        }


def order_key(item) -> float:
    """Sort key for sections or section mappings; a missing order sorts as 0."""
    if isinstance(item, dict):
        value = item.get("order")
    else:
        value = getattr(item, "order", None)
    if value is None or isinstance(value, bool):
        return 0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def order_sections(sections: Iterable) -> list:
    """Stable sort by ascending ``order``; ties keep their original position."""
    # sorted() is stable, equal keys stay in input order
    return sorted(sections, key=order_key)


def _resolve(section: Section, index: int, total: int) -> OutlineEntry:
    if section.has_bullets:
        bullets, text = list(section.bullets), None
    else:
        bullets, text = None, (section.content or None)
    return OutlineEntry(
        id=section.id,
        heading=section.heading,
        bullets=bullets,
        text=text,
        notes=section.notes,
        order=section.order,
        metadata=dict(section.metadata),
        index=index,
        is_first=index == 0,
        is_last=index == total - 1,
    )


def build_outline(content: Content) -> List[OutlineEntry]:
    """Return the ordered, format-independent outline of *content*."""
    ordered = order_sections(content.sections)
    return [_resolve(section, i, len(ordered)) for i, section in enumerate(ordered)]


def check_template_fit(template: Template, content: Content) -> List[str]:
    """Return the ways *content* violates *template*'s declared requirements."""
    problems = []
    for name in sorted(template.required_fields):
        if name == "sections":
            if not content.sections:
                problems.append("template requires at least one section")
        elif name in ("title", "subtitle", "audience"):
            if not getattr(content, name):
                problems.append(f"template requires '{name}'")
        elif name not in content.metadata:
            problems.append(f"template requires metadata field '{name}'")

    if template.allowed_section_ids is not None:
        for section in content.sections:
            if section.id not in template.allowed_section_ids:
                problems.append(f"section '{section.id}' is not allowed by template '{template.id}'")
    return problems
