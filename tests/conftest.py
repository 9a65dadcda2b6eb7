import asyncio
import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import deck_export` works
project_root = Path(__file__).resolve().parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from deck_export.models import Content, Presentation, Template  # noqa: E402
from deck_export.pdf_exporter import RenderingBackend  # noqa: E402
from deck_export.storage import (  # noqa: E402
    InMemoryDocumentStore,
    InMemoryObjectStore,
    InMemoryTemplateBlobStore,
)

FAKE_PDF = b"%PDF-1.4\n% fake document\n%%EOF\n"

SECTION_TEMPLATE = (
    "{% for s in each_section(sections) %}<h2>{{ s.heading }}</h2>{% endfor %}"
)


class FakeBackend(RenderingBackend):
    """Rendering backend double that records documents and concurrency."""

    def __init__(self, delay: float = 0, error: Exception = None, data: bytes = FAKE_PDF):
        self.delay = delay
        self.error = error
        self.data = data
        self.documents = []
        self.active = 0
        self.max_active = 0
        self.released = 0

    async def render(self, document, options):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.documents.append(document)
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.data
        finally:
            self.active -= 1
            self.released += 1


@pytest.fixture
def q1_data():
    return {
        "title": "Q1 Review",
        "sections": [
            {"id": "s1", "heading": "Revenue", "bullets": ["Up 10%", "Up 12% YoY"], "order": 1},
            {"id": "s2", "heading": "Risks", "content": "Macro headwinds", "order": 2},
        ],
    }


@pytest.fixture
def q1_content(q1_data):
    return Content.from_dict(q1_data)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def stores(q1_content):
    documents = InMemoryDocumentStore()
    blobs = InMemoryTemplateBlobStore()
    objects = InMemoryObjectStore()

    template = Template(id="tpl-1", version=2)
    documents.add_template(template)
    blobs.add("tpl-1", 2, SECTION_TEMPLATE)
    documents.add_presentation(Presentation(id="p1", content=q1_content, template_id="tpl-1"))
    return documents, blobs, objects
