"""
Runtime configuration for rendering and export.
"""
import os
from dataclasses import dataclass, field, fields
from typing import List, Mapping, Optional

from .theme_loader import list_available_themes, validate_theme

ENV_PREFIX = "DECK_EXPORT_"

DEFAULT_BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ExportSettings:
    """
    Settings shared by the exporters and the orchestrator.

    Parameters
    ----------
    theme
        CSS theme used by both the wrapped document and the native deck.
    page_format, margin, print_background
        Passed to the headless browser when printing.
    navigation_timeout_ms
        Upper bound for loading the document and letting resources settle.
    max_concurrent_renders
        Number of headless browsers allowed to run at the same time.
    presentations_container
        Object storage container exported files are written to.
    """
    theme: str = "default"
    page_format: str = "A4"
    margin: str = "0.5in"
    print_background: bool = True
    navigation_timeout_ms: int = 30000
    max_concurrent_renders: int = 2
    presentations_container: str = "presentations"
    template_cache_size: int = 64
    reference_write_attempts: int = 3
    browser_args: List[str] = field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))
    executable_path: Optional[str] = None
    debug: bool = False

    def __post_init__(self):
        if self.navigation_timeout_ms <= 0:
            raise ValueError("navigation_timeout_ms must be positive")
        if self.max_concurrent_renders < 1:
            raise ValueError("max_concurrent_renders must be at least 1")
        if self.reference_write_attempts < 1:
            raise ValueError("reference_write_attempts must be at least 1")
        if not validate_theme(self.theme):
            raise ValueError(f"Unknown theme '{self.theme}'. Available themes: {list_available_themes()}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "ExportSettings":
        """Build settings from ``DECK_EXPORT_*`` environment variables.

        ``DECK_EXPORT_NAVIGATION_TIMEOUT_MS=60000`` sets
        ``navigation_timeout_ms`` and so on; list values are comma separated.
        Keyword *overrides* win over the environment.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.type in (bool, "bool"):
                values[f.name] = _as_bool(raw)
            elif f.type in (int, "int"):
                values[f.name] = int(raw)
            elif f.name == "browser_args":
                values[f.name] = [a.strip() for a in raw.split(",") if a.strip()]
            else:
                values[f.name] = raw
        values.update(overrides)
        return cls(**values)
