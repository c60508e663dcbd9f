"""mediadb_shared.merger — Smart merge of an incoming admin write.

An admin usually edits a document that was served stripped, so the incoming
entities may lack image payloads that still exist server-side. The merge
treats each incoming entity collection as the authoritative list of
entities (order, additions, removals) and restores image fields that the
client could not have sent back.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .schema import DEFAULT_SCHEMA, DocumentSchema

__all__ = [
    "is_stripped_record",
    "merge_collection",
    "merge_documents",
    "merge_entity",
    "overlay_documents",
]


def is_stripped_record(record: Any) -> bool:
    """A record counts as stripped when it carries no `data` value.

    URL-only records count as stripped too, so a list made only of them gets
    the stored images back. Replacing images with URL-only records needs a
    purge write (`bypass_merge`).
    """
    return isinstance(record, dict) and not record.get("data")


def _record_identity(record: Any) -> Optional[Any]:
    if not isinstance(record, dict):
        return None
    ident = record.get("id")
    if ident is None:
        ident = record.get("name")
    return ident


def _merge_images(current_images: Any, incoming_images: Any) -> Any:
    if not isinstance(current_images, list) or not current_images:
        return incoming_images
    if not incoming_images:
        return current_images
    if not isinstance(incoming_images, list):
        return incoming_images

    stripped = [is_stripped_record(r) for r in incoming_images]
    if all(stripped):
        return current_images
    if not any(stripped):
        return incoming_images

    # Mixed list (cover kept its payload, the rest were stripped): put the
    # payload back on each stripped record that still exists server-side.
    by_identity: Dict[Any, Dict[str, Any]] = {}
    for record in current_images:
        ident = _record_identity(record)
        if ident is not None and record.get("data"):
            by_identity.setdefault(ident, record)

    out: List[Any] = []
    for record, was_stripped in zip(incoming_images, stripped):
        match = by_identity.get(_record_identity(record)) if was_stripped else None
        if match is None:
            out.append(record)
        else:
            out.append({**record, "data": match["data"]})
    return out


def merge_entity(current: Mapping[str, Any], incoming: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge one incoming entity with the stored entity of the same id."""
    out = dict(incoming)

    images = _merge_images(current.get("images"), incoming.get("images"))
    if images is not incoming.get("images"):
        out["images"] = images

    if incoming.get("image") is None and current.get("image") is not None:
        out["image"] = current["image"]
    return out


def merge_collection(current_items: Any, incoming_items: List[Any]) -> List[Any]:
    """Replace the collection with `incoming_items`, restoring images by entity id."""
    by_id: Dict[Any, Mapping[str, Any]] = {}
    if isinstance(current_items, list):
        for item in current_items:
            if isinstance(item, dict) and item.get("id") is not None:
                by_id.setdefault(item["id"], item)

    merged: List[Any] = []
    for item in incoming_items:
        if not isinstance(item, dict) or item.get("id") is None:
            merged.append(item)
            continue
        existing = by_id.get(item["id"])
        merged.append(item if existing is None else merge_entity(existing, item))
    return merged


def merge_documents(
    current: Mapping[str, Any],
    incoming: Mapping[str, Any],
    schema: DocumentSchema = DEFAULT_SCHEMA,
) -> Dict[str, Any]:
    """Combine the stored document with an incoming (partial) document.

    Keys absent from `incoming` are kept as stored. Entity collections are
    replaced with restore; every other key is overwritten wholesale.
    """
    merged = dict(current)
    for key, value in incoming.items():
        if schema.is_collection(key) and isinstance(value, list) and isinstance(current.get(key), list):
            merged[key] = merge_collection(current[key], value)
        else:
            merged[key] = value
    return merged


def overlay_documents(current: Mapping[str, Any], incoming: Mapping[str, Any]) -> Dict[str, Any]:
    """Purge-mode write: incoming keys replace stored keys verbatim."""
    return {**current, **incoming}
