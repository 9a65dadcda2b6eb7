"""Test the storage collaborators and storage key helpers."""

import asyncio

import pytest

from deck_export.errors import NotFoundError, PersistenceError, VersionConflictError
from deck_export.models import Presentation
from deck_export.paths import object_key, safe_object_path
from deck_export.storage import InMemoryDocumentStore, InMemoryObjectStore, InMemoryTemplateBlobStore, LocalObjectStore


def test_object_key_is_deterministic():
    assert object_key("p1", "pdf") == "p1/presentation.pdf"
    assert object_key("p1", "pptx") == "p1/presentation.pptx"


@pytest.mark.parametrize("bad_id", ["", "../p1", "a/b", ".hidden"])
def test_object_key_rejects_unsafe_ids(bad_id):
    with pytest.raises(ValueError):
        object_key(bad_id, "pdf")


def test_safe_object_path_stays_under_root(tmp_path):
    assert safe_object_path(tmp_path, "presentations", "p1/presentation.pdf") == (
        tmp_path / "presentations" / "p1" / "presentation.pdf").resolve()
    with pytest.raises(ValueError):
        safe_object_path(tmp_path, "presentations", "../../etc/passwd")


@pytest.mark.asyncio
async def test_document_store_copies_records(q1_content):
    store = InMemoryDocumentStore()
    store.add_presentation(Presentation(id="p1", content=q1_content, template_id="t"))

    first = await store.get_presentation("p1")
    first.export_references["paginated"] = "tampered"

    assert (await store.get_presentation("p1")).export_references == {}


@pytest.mark.asyncio
async def test_set_export_reference_only_touches_its_key(q1_content):
    store = InMemoryDocumentStore()
    store.add_presentation(Presentation(id="p1", content=q1_content, template_id="t",
                                        export_references={"slides": "old-slides"}))

    updated = await store.set_export_reference("p1", "paginated", "new-pdf", expected_version=1)

    assert updated.export_references == {"slides": "old-slides", "paginated": "new-pdf"}
    assert updated.version == 2


@pytest.mark.asyncio
async def test_stale_version_conflicts(q1_content):
    store = InMemoryDocumentStore()
    store.add_presentation(Presentation(id="p1", content=q1_content, template_id="t"))
    await store.set_export_reference("p1", "slides", "a", expected_version=1)

    with pytest.raises(VersionConflictError) as excinfo:
        await store.set_export_reference("p1", "paginated", "b", expected_version=1)
    assert (excinfo.value.expected, excinfo.value.actual) == (1, 2)
    assert excinfo.value.retryable is True


@pytest.mark.asyncio
async def test_missing_records():
    store = InMemoryDocumentStore()
    with pytest.raises(NotFoundError):
        await store.get_presentation("nope")
    with pytest.raises(NotFoundError):
        await store.get_template("nope")
    with pytest.raises(NotFoundError):
        await store.set_export_reference("nope", "slides", "u", expected_version=1)
    with pytest.raises(NotFoundError):
        await InMemoryTemplateBlobStore().get_markup("nope", 1)


@pytest.mark.asyncio
async def test_blob_store_is_keyed_by_version():
    blobs = InMemoryTemplateBlobStore({("t", 1): "one"})
    blobs.add("t", 2, "two")
    assert await blobs.get_markup("t", 1) == "one"
    assert await blobs.get_markup("t", 2) == "two"


@pytest.mark.asyncio
async def test_in_memory_object_store_overwrites():
    objects = InMemoryObjectStore()
    url = await objects.put("presentations", "p1/presentation.pdf", b"one", "application/pdf")
    again = await objects.put("presentations", "p1/presentation.pdf", b"two", "application/pdf")

    assert url == again == "memory://objects/presentations/p1/presentation.pdf"
    assert objects.objects[("presentations", "p1/presentation.pdf")] == (b"two", "application/pdf")


@pytest.mark.asyncio
async def test_local_object_store(tmp_path):
    store = LocalObjectStore(tmp_path / "out")
    url = await store.put("presentations", "p1/presentation.pptx", b"deck", "application/octet-stream")

    path = tmp_path / "out" / "presentations" / "p1" / "presentation.pptx"
    assert path.read_bytes() == b"deck"
    assert url == path.resolve().as_uri()
    assert not path.with_name("presentation.pptx.part").exists()


@pytest.mark.asyncio
async def test_local_object_store_rejects_escape(tmp_path):
    with pytest.raises(PersistenceError):
        await LocalObjectStore(tmp_path).put("presentations", "../x", b"", "text/plain")


@pytest.mark.asyncio
async def test_concurrent_reference_writes_serialize(q1_content):
    store = InMemoryDocumentStore()
    store.add_presentation(Presentation(id="p1", content=q1_content, template_id="t"))

    results = await asyncio.gather(
        store.set_export_reference("p1", "slides", "a", expected_version=1),
        store.set_export_reference("p1", "paginated", "b", expected_version=1),
        return_exceptions=True,
    )
    assert sum(isinstance(r, VersionConflictError) for r in results) == 1
