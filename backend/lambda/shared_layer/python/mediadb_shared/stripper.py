"""mediadb_shared.stripper — Reduce a document for unauthenticated readers.

Inline image payloads are removed from every entity collection while record
ids, names and URLs stay in place, so the admin UI can render placeholders
and the merger can re-associate records on a later write. The input is never
mutated; untouched subtrees are shared with the result.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from .schema import DEFAULT_SCHEMA, DocumentSchema

__all__ = [
    "is_inline_image",
    "is_remote_url",
    "strip_document",
    "strip_entity",
]

_URL_PREFIXES = ("http://", "https://")
_INLINE_PREFIX = "data:"


def is_remote_url(value: Any) -> bool:
    return isinstance(value, str) and value.lower().startswith(_URL_PREFIXES)


def is_inline_image(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(_INLINE_PREFIX)


def _strip_images(images: List[Any]) -> List[Any]:
    out: List[Any] = []
    cover_kept = False
    for record in images:
        if not isinstance(record, dict):
            out.append(record)
            continue
        if record.get("iscover") and not cover_kept:
            cover_kept = True
            out.append(record)
            continue
        if "data" in record:
            record = {k: v for k, v in record.items() if k != "data"}
        out.append(record)
    return out


def strip_entity(entity: Any) -> Any:
    """Return `entity` without inline image payloads (cover image excepted)."""
    if not isinstance(entity, dict):
        return entity
    out = dict(entity)
    if isinstance(out.get("images"), list):
        out["images"] = _strip_images(out["images"])
    image = out.get("image")
    if image is not None and not is_remote_url(image):
        out["image"] = None
    return out


def strip_document(
    document: Mapping[str, Any],
    schema: DocumentSchema = DEFAULT_SCHEMA,
) -> Dict[str, Any]:
    """Strip every entity collection of `document`; other keys pass through."""
    out = dict(document)
    for key in schema.collection_keys:
        items = out.get(key)
        if isinstance(items, list):
            out[key] = [strip_entity(item) for item in items]
    return out
