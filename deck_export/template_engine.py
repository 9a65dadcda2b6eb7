#!/usr/bin/env python3
"""
Template compiler and renderer.

Templates are Jinja2 markup compiled against an explicit
:class:`HelperRegistry`. Nothing is registered process-wide, so concurrent
renders of different templates (or template versions) cannot see each
other's helpers.

The environment is an immutable sandbox: templates come from an external
store and may not reach Python internals or mutate the content they render.

Rendering degrades per field: an unresolved reference becomes an empty string
and is recorded as a :class:`~deck_export.errors.RenderFieldError` instead of
aborting the document. Structural problems (unbalanced blocks, unknown tags or
filters, escaping bypasses) fail at compile time with
:class:`~deck_export.errors.TemplateCompileError`.
"""

import hashlib
import logging
import re
import threading
from collections import OrderedDict
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from jinja2 import ChainableUndefined, TemplateError, TemplateSyntaxError, Undefined, nodes
from jinja2.exceptions import SecurityError
from jinja2.sandbox import ImmutableSandboxedEnvironment
from markupsafe import Markup

from .errors import RenderFieldError, TemplateCompileError, TemplateRenderError
from .models import Content, Template
from .outline import build_outline, order_key

logger = logging.getLogger(__name__)

# Field errors of the render currently running in this context
_field_errors: ContextVar[Optional[List[RenderFieldError]]] = ContextVar("_field_errors", default=None)


class FieldUndefined(ChainableUndefined):
    """Undefined value that renders as ``""`` and records the miss."""

    __slots__ = ()

    def _record(self):
        name = self._undefined_name or "<unknown>"
        error = RenderFieldError(name, self._undefined_message)
        errors = _field_errors.get()
        if errors is not None:
            errors.append(error)
        logger.warning("Unresolved template reference %s: %s", name, error.message)

    def __str__(self) -> str:
        self._record()
        return ""

    def __iter__(self):
        self._record()
        return iter(())

    # comparisons with a missing value are false, arithmetic stays missing
    def _compare(self, other):
        self._record()
        return False

    __lt__ = __le__ = __gt__ = __ge__ = _compare

    def _propagate(self, *args):
        self._record()
        return self

    __add__ = __radd__ = __sub__ = __rsub__ = _propagate
    __mul__ = __rmul__ = __truediv__ = __rtruediv__ = _propagate
    __floordiv__ = __rfloordiv__ = __mod__ = __rmod__ = _propagate
    __pow__ = __rpow__ = __pos__ = __neg__ = _propagate


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _defined(value) -> bool:
    return value is not None and not isinstance(value, Undefined)


def _missing(*values) -> bool:
    """True if any value is unresolved; unresolved template references are recorded."""
    missing = False
    for value in values:
        if isinstance(value, FieldUndefined):
            value._record()
        if not _defined(value):
            missing = True
    return missing


def eq(a, b) -> bool:
    return a == b


def ne(a, b) -> bool:
    return a != b


def gt(a, b) -> bool:
    if _missing(a, b):
        return False
    try:
        return bool(a > b)
    except TypeError:
        return False


def lt(a, b) -> bool:
    if _missing(a, b):
        return False
    try:
        return bool(a < b)
    except TypeError:
        return False


def and_(a, b):
    return a and b


def or_(a, b):
    return a or b


def not_(a) -> bool:
    return not a


def render_bullets(bullets) -> Markup:
    """Render each bullet as an escaped ``<li>``."""
    if not _defined(bullets) or not bullets:
        return Markup("")
    if isinstance(bullets, str):
        bullets = [bullets]
    return Markup("").join(Markup('<li class="bullet">{}</li>').format(b) for b in bullets)


def each_section(sections):
    """Stable-sort *sections* by ``order`` and add position flags.

    Yields one mapping per section with the section's own fields plus
    ``index``, ``is_first`` and ``is_last``.
    """
    if not _defined(sections):
        return []
    ordered = sorted(list(sections), key=order_key)
    last = len(ordered) - 1
    items = []
    for index, section in enumerate(ordered):
        item = dict(section) if isinstance(section, dict) else dict(vars(section))
        item.update(index=index, is_first=index == 0, is_last=index == last)
        items.append(item)
    return items


def _demote_markup(func: Callable) -> Callable:
    """Wrap a user helper so it can never return pre-escaped markup."""

    def wrapper(*args, **kwargs):
        result = func(*args, **kwargs)
        if isinstance(result, Markup):
            return str(result)
        return result

    wrapper.__name__ = getattr(func, "__name__", "helper")
    wrapper.__doc__ = func.__doc__
    return wrapper


DEFAULT_HELPERS = {
    "eq": eq,
    "ne": ne,
    "gt": gt,
    "lt": lt,
    "and_": and_,
    "or_": or_,
    "not_": not_,
    "render_bullets": render_bullets,
    "each_section": each_section,
}

# Used when a caller asks for a display document without supplying a template
DEFAULT_TEMPLATE_MARKUP = """\
<section class="slide title-slide">
  <h1>{{ title }}</h1>
  {% if subtitle %}<h3 class="subtitle">{{ subtitle }}</h3>{% endif %}
</section>
{% for section in each_section(sections) %}
<section class="slide" id="{{ section.id }}" data-index="{{ section.index }}">
  <h2>{{ section.heading }}</h2>
  {% if section.bullets %}<ul>{{ render_bullets(section.bullets) }}</ul>
  {% elif section.content %}<p>{{ section.content }}</p>{% endif %}
</section>
{% endfor %}
"""

# Filters that would let template text skip autoescaping
_BYPASS_FILTERS = ("safe",)


def _blank_none(value):
    return "" if value is None else value


class HelperRegistry:
    """
    Explicit set of helpers available to templates.

    Each registry owns its own Jinja2 environment. Pass the same registry to
    :func:`compile_template` and :func:`render` (or let the compiled template
    carry it).
    """

    def __init__(self, helpers: Optional[Dict[str, Callable]] = None):
        self._helpers: Dict[str, Callable] = dict(DEFAULT_HELPERS)
        self._env: Optional[ImmutableSandboxedEnvironment] = None
        self._lock = threading.Lock()
        for name, func in (helpers or {}).items():
            self.register(name, func)

    def register(self, name: str, func: Callable) -> None:
        """Add a helper. Its results are always escaped on output."""
        if not name.isidentifier():
            raise ValueError(f"Invalid helper name: {name!r}")
        if name in DEFAULT_HELPERS:
            raise ValueError(f"Helper '{name}' is built in and cannot be replaced")
        if self._env is not None:
            raise RuntimeError("Helpers must be registered before the first compile")
        self._helpers[name] = _demote_markup(func)

    @property
    def names(self) -> List[str]:
        return sorted(self._helpers)

    def helpers(self) -> Dict[str, Callable]:
        return dict(self._helpers)

    @property
    def environment(self) -> ImmutableSandboxedEnvironment:
        with self._lock:
            if self._env is None:
                env = ImmutableSandboxedEnvironment(
                    autoescape=True,
                    undefined=FieldUndefined,
                    keep_trailing_newline=True,
                    finalize=_blank_none,
                )
                for name in _BYPASS_FILTERS:
                    env.filters.pop(name, None)
                env.filters["render_bullets"] = render_bullets
                self._env = env
            return self._env


@dataclass
class CompiledTemplate:
    """A template compiled once and rendered many times."""
    template: Any  # jinja2.Template
    registry: HelperRegistry
    fingerprint: str
    name: Optional[str] = None


@dataclass
class RenderResult:
    markup: str
    field_errors: List[RenderFieldError] = field(default_factory=list)


_CONSTRUCT_PATTERNS = (
    re.compile(r"innermost block that needs to be closed is '(\w+)'"),
    re.compile(r"unknown tag '(\w+)'"),
    re.compile(r"No (?:filter|test) named '(\w+)'"),
    re.compile(r"tag '(\w+)'"),
)


def _offending_construct(message: str) -> Optional[str]:
    for pattern in _CONSTRUCT_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


def _reject_escape_bypass(ast) -> None:
    for node in ast.find_all(nodes.Filter):
        if node.name in _BYPASS_FILTERS:
            raise TemplateCompileError(
                f"Malformed template at line {node.lineno}: "
                f"filter '{node.name}' is not allowed, all output is escaped",
                construct=node.name,
                lineno=node.lineno,
            )
    for node in ast.find_all((nodes.ScopedEvalContextModifier, nodes.EvalContextModifier)):
        for keyword in node.options:
            if keyword.key == "autoescape":
                raise TemplateCompileError(
                    f"Malformed template at line {node.lineno}: "
                    "'autoescape' blocks are not allowed, all output is escaped",
                    construct="autoescape",
                    lineno=node.lineno,
                )


def compile_template(markup: str, registry: Optional[HelperRegistry] = None,
                     name: Optional[str] = None) -> CompiledTemplate:
    """
    Compile *markup* into a :class:`CompiledTemplate`.

    Raises:
        TemplateCompileError: on malformed block structure, unknown tags or
            filters, or constructs that would bypass escaping.
    """
    if not isinstance(markup, str):
        raise TemplateCompileError(f"Template markup must be a string, got {type(markup).__name__}")
    registry = registry or HelperRegistry()
    env = registry.environment
    try:
        ast = env.parse(markup, name=name)
        _reject_escape_bypass(ast)
        template = env.from_string(markup)
    except TemplateSyntaxError as exc:
        construct = _offending_construct(exc.message or "")
        raise TemplateCompileError(
            f"Malformed template at line {exc.lineno}: {exc.message}",
            construct=construct,
            lineno=exc.lineno,
        ) from exc

    fingerprint = hashlib.sha256(markup.encode("utf-8")).hexdigest()[:16]
    logger.debug("Compiled template %s (%s)", name or "<string>", fingerprint)
    return CompiledTemplate(template=template, registry=registry, fingerprint=fingerprint, name=name)


def build_context(content: Content) -> Dict[str, Any]:
    """Template variables for *content*, sections already ordered and resolved."""
    sections = [entry.to_context() for entry in build_outline(content)]
    return {
        "title": content.title,
        "subtitle": content.subtitle,
        "audience": content.audience,
        "metadata": dict(content.metadata),
        "sections": sections,
        "section_count": len(sections),
    }


def render_with_diagnostics(compiled: CompiledTemplate, content: Content,
                            registry: Optional[HelperRegistry] = None) -> RenderResult:
    """Render and also return the field-level errors that were absorbed."""
    registry = registry or compiled.registry
    variables = build_context(content)
    variables.update(registry.helpers())

    errors: List[RenderFieldError] = []
    token = _field_errors.set(errors)
    try:
        markup = compiled.template.render(variables)
    except SecurityError as exc:
        raise TemplateRenderError(
            f"Template {compiled.name or compiled.fingerprint} attempted an unsafe operation: {exc}"
        ) from exc
    except TemplateError as exc:
        raise TemplateRenderError(
            f"Failed to render template {compiled.name or compiled.fingerprint}: {exc}"
        ) from exc
    finally:
        _field_errors.reset(token)

    if errors:
        logger.info("Rendered %s with %d unresolved reference(s)",
                    compiled.name or compiled.fingerprint, len(errors))
    return RenderResult(markup=markup, field_errors=errors)


def render(compiled: CompiledTemplate, content: Content,
           registry: Optional[HelperRegistry] = None) -> str:
    """Render *compiled* against *content* and return the markup string."""
    return render_with_diagnostics(compiled, content, registry).markup


class TemplateCompiler:
    """
    Compiles templates once per ``(id, version)`` and renders them.

    The cache is bounded (least recently used entries are evicted) and safe to
    share between threads.
    """

    def __init__(self, registry: Optional[HelperRegistry] = None, max_size: int = 64):
        self.registry = registry or HelperRegistry()
        self.max_size = max_size
        self._cache: "OrderedDict[tuple, CompiledTemplate]" = OrderedDict()
        self._lock = threading.Lock()

    def compile(self, template: Template) -> CompiledTemplate:
        key = template.cache_key
        with self._lock:
            compiled = self._cache.get(key)
            if compiled is not None:
                self._cache.move_to_end(key)
                return compiled

        compiled = compile_template(template.markup, self.registry, name=f"{template.id}@v{template.version}")

        with self._lock:
            self._cache[key] = compiled
            self._cache.move_to_end(key)
            while len(self._cache) > self.max_size:
                self._cache.popitem(last=False)
        return compiled

    def render(self, template: Template, content: Content) -> str:
        return render(self.compile(template), content, self.registry)

    def render_with_diagnostics(self, template: Template, content: Content) -> RenderResult:
        return render_with_diagnostics(self.compile(template), content, self.registry)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


def render_template(template: Template, content: Content,
                    registry: Optional[HelperRegistry] = None) -> str:
    """Compile and render in one step, without caching."""
    return render(compile_template(template.markup, registry, name=template.id), content)
