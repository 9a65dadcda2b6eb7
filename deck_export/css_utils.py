"""
CSS utilities shared by the document wrapper and the slide deck renderer.

Both outputs take their colours and font family from the same theme file, so
a theme change affects the printed document and the native deck alike.
"""
import re
from typing import Dict, Optional, Tuple

from .theme_loader import get_css


class CSSParser:
    """
    Reads ``:root`` custom properties out of a theme stylesheet.
    """

    def __init__(self, theme: str = "default"):
        self.theme = theme
        self.css_content = get_css(theme)
        self._css_vars = None

    def get_css_variables(self) -> Dict[str, str]:
        """Extract all CSS variables from :root section. Cached for performance."""
        if self._css_vars is not None:
            return self._css_vars

        root_match = re.search(r':root\s*\{([^}]+)\}', self.css_content, re.DOTALL)
        if not root_match:
            raise ValueError(f"No :root section found in theme '{self.theme}'")

        variable_pattern = r'--([^:]+):\s*([^;]+);'
        css_vars = re.findall(variable_pattern, root_match.group(1))
        self._css_vars = {name.strip(): value.strip() for name, value in css_vars}

        return self._css_vars

    def get_raw_value(self, variable_name: str) -> str:
        """Get the raw string value of a CSS variable."""
        value = self.get_css_variables().get(variable_name)
        if value is None:
            raise ValueError(f"CSS variable '--{variable_name}' not found in theme '{self.theme}'")
        return value

    def get_px_value(self, variable_name: str) -> int:
        """Get pixel value from CSS variable."""
        value = self.get_raw_value(variable_name)
        px_match = re.search(r'(\d+)px', value)
        if not px_match:
            raise ValueError(f"CSS variable '--{variable_name}' is not a pixel value: {value}")
        return int(px_match.group(1))

    def get_font_family(self) -> str:
        """Font family from ``--slide-font-family`` without its quotes."""
        return self.get_raw_value('slide-font-family').strip('\'"')

    def get_color(self, name: str) -> Optional[Tuple[int, int, int]]:
        """RGB tuple for ``--<name>-color``, or None if unset or not hex."""
        value = self.get_css_variables().get(f"{name}-color")
        if not value:
            return None
        return hex_to_rgb(value)

    def get_colors(self) -> Dict[str, Tuple[int, int, int]]:
        """All ``--*-color`` variables as RGB tuples keyed by their prefix."""
        colors = {}
        for name, value in self.get_css_variables().items():
            if name.endswith('-color'):
                rgb = hex_to_rgb(value)
                if rgb is not None:
                    colors[name[:-len('-color')]] = rgb
        return colors


def hex_to_rgb(value: str) -> Optional[Tuple[int, int, int]]:
    """Convert ``#rgb`` or ``#rrggbb`` to an RGB tuple."""
    value = value.strip()
    if not value.startswith('#'):
        return None
    hex_color = value[1:]
    if len(hex_color) == 3:
        hex_color = ''.join(c * 2 for c in hex_color)
    if len(hex_color) != 6 or not re.fullmatch(r'[0-9a-fA-F]{6}', hex_color):
        return None
    return tuple(int(hex_color[i:i + 2], 16) for i in (0, 2, 4))
