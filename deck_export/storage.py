"""
Collaborator interfaces for persistence, plus reference implementations.

The export pipeline only talks to these abstract classes. The in-memory and
local-filesystem implementations back the CLI and the tests.
"""
import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from .errors import NotFoundError, PersistenceError, VersionConflictError
from .models import Presentation, Template
from .paths import prepare_workspace, safe_object_path

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Presentation and template records, read and written by id."""

    @abstractmethod
    async def get_presentation(self, presentation_id: str) -> Presentation:
        """Raise :class:`NotFoundError` if missing."""

    @abstractmethod
    async def get_template(self, template_id: str) -> Template:
        """Template metadata; the markup lives in a :class:`TemplateBlobStore`."""

    @abstractmethod
    async def set_export_reference(self, presentation_id: str, fmt: str, url: str,
                                   expected_version: int) -> Presentation:
        """Set one key of the export reference map.

        Must leave every other key untouched and raise
        :class:`VersionConflictError` if the record is no longer at
        *expected_version*. Returns the updated record.
        """


class TemplateBlobStore(ABC):
    """Template markup keyed by ``(template_id, version)``."""

    @abstractmethod
    async def get_markup(self, template_id: str, version: int) -> str:
        """Raise :class:`NotFoundError` if missing."""


class ObjectStore(ABC):
    """Binary object storage that hands back a retrievable URL."""

    @abstractmethod
    async def put(self, container: str, key: str, data: bytes, content_type: str) -> str:
        """Store *data* (overwriting *key*) and return its URL."""


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed document store with a per-record version counter.

    Records are copied on the way in and out, so callers never share mutable
    state with the store.
    """

    def __init__(self):
        self._presentations: Dict[str, Presentation] = {}
        self._templates: Dict[str, Template] = {}
        self._lock = asyncio.Lock()

    def add_presentation(self, presentation: Presentation) -> None:
        self._presentations[presentation.id] = copy.deepcopy(presentation)

    def add_template(self, template: Template) -> None:
        self._templates[template.id] = copy.deepcopy(template)

    async def get_presentation(self, presentation_id: str) -> Presentation:
        try:
            return copy.deepcopy(self._presentations[presentation_id])
        except KeyError:
            raise NotFoundError(f"Presentation '{presentation_id}' not found") from None

    async def get_template(self, template_id: str) -> Template:
        try:
            return copy.deepcopy(self._templates[template_id])
        except KeyError:
            raise NotFoundError(f"Template '{template_id}' not found") from None

    async def set_export_reference(self, presentation_id: str, fmt: str, url: str,
                                   expected_version: int) -> Presentation:
        async with self._lock:
            current = self._presentations.get(presentation_id)
            if current is None:
                raise NotFoundError(f"Presentation '{presentation_id}' not found")
            if current.version != expected_version:
                raise VersionConflictError(presentation_id, expected_version, current.version)
            current.export_references[fmt] = url
            current.version += 1
            return copy.deepcopy(current)


class InMemoryTemplateBlobStore(TemplateBlobStore):

    def __init__(self, markup: Optional[Dict[Tuple[str, int], str]] = None):
        self._markup: Dict[Tuple[str, int], str] = dict(markup or {})

    def add(self, template_id: str, version: int, markup: str) -> None:
        self._markup[(template_id, version)] = markup

    async def get_markup(self, template_id: str, version: int) -> str:
        try:
            return self._markup[(template_id, version)]
        except KeyError:
            raise NotFoundError(
                f"Markup for template '{template_id}' v{version} not found"
            ) from None


class InMemoryObjectStore(ObjectStore):

    def __init__(self, base_url: str = "memory://objects"):
        self.base_url = base_url.rstrip("/")
        self.objects: Dict[Tuple[str, str], Tuple[bytes, str]] = {}

    async def put(self, container: str, key: str, data: bytes, content_type: str) -> str:
        self.objects[(container, key)] = (bytes(data), content_type)
        return f"{self.base_url}/{container}/{key}"


class LocalObjectStore(ObjectStore):
    """
    Writes objects below a workspace directory and returns ``file://`` URLs.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = prepare_workspace(root)

    async def put(self, container: str, key: str, data: bytes, content_type: str) -> str:
        try:
            path = safe_object_path(self.root, container, key)
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".part")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Could not store {container}/{key}: {exc}") from exc
        logger.debug("Stored %s (%s, %d bytes)", path, content_type, len(data))
        return path.as_uri()
