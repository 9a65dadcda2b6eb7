#!/usr/bin/env python3
"""
Native slide deck renderer.

Builds a PowerPoint deck straight from the content outline, without going
through the template: one title slide, then one slide per section.
"""

import io
import logging
import re
from typing import Dict, List, Optional

from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.oxml import parse_xml
from pptx.oxml.ns import nsdecls
from pptx.util import Emu, Inches, Pt

from .css_utils import CSSParser
from .errors import DeckExportError, SlideSerializationError
from .models import Content
from .outline import OutlineEntry, build_outline

logger = logging.getLogger(__name__)

SLIDE_WIDTH_IN = 10
SLIDE_HEIGHT_IN = 5.625
BLANK_LAYOUT = 6

# Position, size and font per element role, in inches and points. Layout never
# depends on the content.
SLIDE_LAYOUT: Dict[str, Dict] = {
    'title': {'x': 0.5, 'y': 1.6, 'w': 9.0, 'h': 1.5, 'size': 44, 'bold': True,
              'align': PP_ALIGN.CENTER, 'color': 'heading'},
    'subtitle': {'x': 0.5, 'y': 3.2, 'w': 9.0, 'h': 0.8, 'size': 24, 'bold': False,
                 'align': PP_ALIGN.CENTER, 'color': 'muted'},
    'heading': {'x': 0.5, 'y': 0.4, 'w': 9.0, 'h': 0.8, 'size': 32, 'bold': True,
                'align': PP_ALIGN.LEFT, 'color': 'heading'},
    'body': {'x': 0.7, 'y': 1.5, 'w': 8.6, 'h': 3.6, 'size': 18, 'bold': False,
             'align': PP_ALIGN.LEFT, 'color': 'text'},
}

BULLET_CHAR = "•"
BULLET_INDENT = Inches(0.3)
BODY_SPACE_AFTER = Pt(10)

# lxml refuses these in text nodes
_XML_ILLEGAL = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f]')


def _clean_text(text) -> str:
    return _XML_ILLEGAL.sub('', str(text))


class SlideDeckRenderer:
    """
    Renderer for converting presentation content to PowerPoint slides.
    """

    def __init__(self, theme: str = "default", debug: bool = False,
                 author: Optional[str] = None):
        self.theme = theme
        self.debug = debug
        self.author = author
        css = CSSParser(theme)
        self.font_family = css.get_font_family()
        self.colors = css.get_colors()

    def _color(self, role: str) -> Optional[RGBColor]:
        rgb = self.colors.get(role)
        return RGBColor(*rgb) if rgb else None

    def _style_runs(self, paragraph, box: Dict):
        paragraph.alignment = box['align']
        color = self._color(box['color'])
        for run in paragraph.runs:
            run.font.size = Pt(box['size'])
            run.font.bold = box['bold']
            run.font.name = self.font_family
            if color is not None:
                run.font.color.rgb = color

    def _add_textbox(self, slide, role: str, text: str):
        box = SLIDE_LAYOUT[role]
        shape = slide.shapes.add_textbox(Inches(box['x']), Inches(box['y']),
                                         Inches(box['w']), Inches(box['h']))
        shape.name = role
        frame = shape.text_frame
        frame.word_wrap = True
        if role in ('title', 'subtitle'):
            frame.vertical_anchor = MSO_ANCHOR.MIDDLE
        paragraph = frame.paragraphs[0]
        paragraph.text = _clean_text(text)
        self._style_runs(paragraph, box)
        return shape

    def _add_bullets(self, slide, bullets: List[str]):
        box = SLIDE_LAYOUT['body']
        shape = slide.shapes.add_textbox(Inches(box['x']), Inches(box['y']),
                                         Inches(box['w']), Inches(box['h']))
        shape.name = 'bullets'
        frame = shape.text_frame
        frame.word_wrap = True
        for i, bullet in enumerate(bullets):
            paragraph = frame.paragraphs[0] if i == 0 else frame.add_paragraph()
            paragraph.text = _clean_text(bullet)
            paragraph.space_after = BODY_SPACE_AFTER
            self._style_runs(paragraph, box)
            self._make_bullet(paragraph)
        return shape

    def _make_bullet(self, paragraph):
        """Turn *paragraph* into a real PowerPoint bullet (not a text prefix)."""
        pPr = paragraph._p.get_or_add_pPr()
        pPr.set('marL', str(Emu(BULLET_INDENT)))
        pPr.set('indent', str(-Emu(BULLET_INDENT)))
        pPr.append(parse_xml(f'<a:buChar {nsdecls("a")} char="{BULLET_CHAR}"/>'))

    def _add_paragraph_block(self, slide, text: str):
        box = SLIDE_LAYOUT['body']
        shape = slide.shapes.add_textbox(Inches(box['x']), Inches(box['y']),
                                         Inches(box['w']), Inches(box['h']))
        shape.name = 'text'
        frame = shape.text_frame
        frame.word_wrap = True
        paragraph = frame.paragraphs[0]
        paragraph.text = _clean_text(text)
        self._style_runs(paragraph, box)
        return shape

    def _new_slide(self, prs):
        slide = prs.slides.add_slide(prs.slide_layouts[BLANK_LAYOUT])
        background = self.colors.get('background')
        if background and background != (255, 255, 255):
            fill = slide.background.fill
            fill.solid()
            fill.fore_color.rgb = RGBColor(*background)
        return slide

    def _add_section_slide(self, prs, entry: OutlineEntry):
        slide = self._new_slide(prs)
        self._add_textbox(slide, 'heading', entry.heading)
        if entry.bullets is not None:
            self._add_bullets(slide, entry.bullets)
        elif entry.text is not None:
            self._add_paragraph_block(slide, entry.text)
        if entry.notes:
            slide.notes_slide.notes_text_frame.text = _clean_text(entry.notes)
        return slide

    def build(self, content: Content):
        """Build and return the ``pptx.Presentation`` object for *content*."""
        content.validate()
        outline = build_outline(content)

        prs = Presentation()
        prs.slide_width = Inches(SLIDE_WIDTH_IN)
        prs.slide_height = Inches(SLIDE_HEIGHT_IN)

        props = prs.core_properties
        props.title = _clean_text(content.title)
        props.subject = _clean_text(content.subtitle or '')
        if self.author:
            props.author = self.author

        title_slide = self._new_slide(prs)
        self._add_textbox(title_slide, 'title', content.title)
        if content.subtitle:
            self._add_textbox(title_slide, 'subtitle', content.subtitle)

        for entry in outline:
            self._add_section_slide(prs, entry)
            if self.debug:
                logger.debug("Slide %d: %s", entry.index + 2, entry.heading)

        expected = len(content.sections) + 1
        if len(prs.slides) != expected:
            raise SlideSerializationError(
                f"Built {len(prs.slides)} slides, expected {expected}"
            )
        return prs

    def render(self, content: Content) -> bytes:
        """Return the deck for *content* as PPTX bytes.

        Raises:
            ContentValidationError: content breaks a structural invariant.
            SlideSerializationError: the deck could not be built or saved.
        """
        try:
            prs = self.build(content)
            buffer = io.BytesIO()
            prs.save(buffer)
        except DeckExportError:
            raise
        except Exception as exc:
            raise SlideSerializationError(f"Failed to build slide deck: {exc}") from exc

        data = buffer.getvalue()
        logger.info("Built slide deck '%s' with %d slides (%d bytes)",
                    content.title, len(content.sections) + 1, len(data))
        return data


def export_slides(content: Content, theme: str = "default") -> bytes:
    """Build the native slide deck for *content*."""
    return SlideDeckRenderer(theme=theme).render(content)
