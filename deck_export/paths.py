#!/usr/bin/env python3
"""Utility helpers for resolving output directories and object keys.

Exported files are stored under a deterministic key per presentation and
format, so re-running an export (or retrying a failed reference write)
overwrites the same object instead of leaving orphans behind.
"""
from __future__ import annotations

import re
from pathlib import Path


__all__ = ["prepare_workspace", "object_key", "safe_object_path"]

_KEY_PART = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')


def prepare_workspace(output_dir: str | Path) -> Path:
    """Resolve *output_dir* to an absolute path and create it if needed."""
    out_path = Path(output_dir).expanduser().resolve()
    out_path.mkdir(parents=True, exist_ok=True)
    return out_path


def object_key(presentation_id: str, extension: str) -> str:
    """Storage key for a presentation's exported file, e.g. ``p1/presentation.pdf``."""
    if not _KEY_PART.match(presentation_id):
        raise ValueError(f"Invalid presentation id for storage key: {presentation_id!r}")
    return f"{presentation_id}/presentation.{extension}"


def safe_object_path(root: Path, container: str, key: str) -> Path:
    """Return ``root/container/key``, refusing anything that escapes *root*.

    Rules
    -----
    1. *container* and every ``/``-separated part of *key* must be plain
       names (no ``..``, no leading dot, no absolute paths).
    2. The resolved path must still live under *root*.
    """
    parts = [container, *key.split("/")]
    for part in parts:
        if not _KEY_PART.match(part):
            raise ValueError(f"Invalid storage path component: {part!r}")

    path = root.joinpath(*parts).resolve()
    if root.resolve() not in path.parents:
        raise ValueError(f"Storage path escapes workspace: {container}/{key}")
    return path
