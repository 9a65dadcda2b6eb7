"""Packaged CSS themes shared by the printable document and the slide deck."""
import re
from pathlib import Path
from typing import List

THEMES_DIR = Path(__file__).parent / "themes"

# Plain names only, so a theme can never resolve outside THEMES_DIR
_THEME_NAME = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]*$')


def _theme_path(theme: str) -> Path:
    if not isinstance(theme, str) or not _THEME_NAME.match(theme):
        raise ValueError(f"Invalid theme name: {theme!r}")
    return THEMES_DIR / f"{theme}.css"


def get_css(theme: str = "default") -> str:
    """
    Return the stylesheet of *theme*.

    The same file feeds the inlined ``<style>`` of the wrapped document and
    the ``:root`` variables the slide deck renderer reads its font and
    colours from.

    Raises:
        ValueError: the name is not a plain theme name
        FileNotFoundError: no such theme is packaged
    """
    path = _theme_path(theme)
    if not path.is_file():
        raise FileNotFoundError(
            f"Theme '{theme}' not found. Available themes: {list_available_themes()}"
        )
    return path.read_text(encoding="utf-8")


def list_available_themes() -> List[str]:
    return sorted(f.stem for f in THEMES_DIR.glob("*.css") if f.is_file())


def validate_theme(theme: str) -> bool:
    """True if *theme* names a packaged stylesheet."""
    try:
        return _theme_path(theme).is_file()
    except ValueError:
        return False
