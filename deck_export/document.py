#!/usr/bin/env python3
"""
Document wrapper: turns a rendered fragment into a complete printable page.
"""

from html import escape
from typing import Iterable

from .theme_loader import get_css

# Print rules that hold for every theme. Each logical slide fills exactly one
# printed page and is never split across a page boundary.
PRINT_CSS = """
@page {
    size: A4;
    margin: 0;
}

@media print {
    html, body { -webkit-print-color-adjust: exact; print-color-adjust: exact; }
    .slide, section, .page {
        break-after: page;
        page-break-after: always;
        break-inside: avoid;
        page-break-inside: avoid;
    }
    .slide:last-child, section:last-child, .page:last-child {
        break-after: auto;
        page-break-after: auto;
    }
}
"""

DOCUMENT_SHELL = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{title}</title>
{links}<style>
{theme_css}
{print_css}
</style>
</head>
<body>
{fragment}
</body>
</html>
"""


def wrap_document(fragment: str, *, title: str = "Presentation", theme: str = "default",
                  stylesheets: Iterable[str] = ()) -> str:
    """
    Wrap a rendered fragment into a full HTML document.

    The result depends only on the arguments: no I/O beyond reading the
    packaged theme file, no timestamps.

    Args:
        fragment: Markup produced by the template renderer (already escaped)
        title: Document title, escaped here
        theme: CSS theme inlined into the document
        stylesheets: Extra stylesheet URLs linked before the inline styles

    Returns:
        Complete HTML document as string
    """
    links = "".join(
        f'<link rel="stylesheet" href="{escape(href, quote=True)}">\n' for href in stylesheets
    )
    return DOCUMENT_SHELL.format(
        title=escape(title or "Presentation"),
        links=links,
        theme_css=get_css(theme).strip(),
        print_css=PRINT_CSS.strip(),
        fragment=fragment,
    )
