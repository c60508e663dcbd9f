"""mediadb_shared.cleanup — Remove inline base64 image blobs from the database.

Maintenance job: every `data:` payload in an entity collection is dropped
(URL images are untouched) and the cleaned collections are written back in
purge mode so the merger cannot restore the blobs. Safe to run repeatedly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .stripper import is_inline_image
from .sync import DocumentSync

logger = logging.getLogger(__name__)

__all__ = [
    "CleanupReport",
    "count_inline_blobs",
    "purge_entity",
    "run_cleanup",
]


@dataclass
class CleanupReport:
    counts: Dict[str, int] = field(default_factory=dict)
    sizes: Dict[str, int] = field(default_factory=dict)
    written: bool = False
    lines: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def count_inline_blobs(items: Any) -> int:
    if not isinstance(items, list):
        return 0
    n = 0
    for item in items:
        if not isinstance(item, dict):
            continue
        if is_inline_image(item.get("image")):
            n += 1
        for record in item.get("images") or []:
            if isinstance(record, dict) and is_inline_image(record.get("data")):
                n += 1
    return n


def purge_entity(entity: Any) -> Any:
    """Return `entity` without inline payloads; URL images and all other fields stay."""
    if not isinstance(entity, dict):
        return entity
    out = dict(entity)
    if isinstance(out.get("images"), list):
        out["images"] = [
            {k: v for k, v in record.items() if k != "data"}
            if isinstance(record, dict) and is_inline_image(record.get("data"))
            else record
            for record in out["images"]
        ]
    if is_inline_image(out.get("image")):
        out["image"] = None
    return out


def run_cleanup(
    sync: DocumentSync,
    write: bool = False,
    log: Optional[Callable[[str], None]] = None,
) -> CleanupReport:
    """Count inline blobs and, when `write` is set, persist the cleaned collections."""
    report = CleanupReport()

    def out(msg: str) -> None:
        report.lines.append(msg)
        logger.info(msg)
        if log is not None:
            log(msg)

    out("Reading database...")
    document = sync.read(privileged=True, allow_stale=False)
    collection_keys = sync.schema.collection_keys

    for key in collection_keys:
        items = document.get(key) or []
        report.sizes[key] = len(items) if isinstance(items, list) else 0
        report.counts[key] = count_inline_blobs(items)

    out("Found: " + ", ".join(f"{report.sizes[k]} {k}" for k in collection_keys))
    out("Base64 blobs: " + ", ".join(f"{report.counts[k]} in {k}" for k in collection_keys))
    out(f"Total to remove: {report.total}")

    if report.total == 0:
        out("Nothing to clean up.")
        return report
    if not write:
        out("Dry run: nothing written. Re-run with write enabled to apply.")
        return report

    out("Stripping blobs...")
    cleaned = {
        key: [purge_entity(item) for item in document[key]]
        for key in collection_keys
        if report.counts[key]
    }
    sync.write(cleaned, privileged=True, bypass_merge=True)
    report.written = True
    out(f"Saved: {', '.join(cleaned)}.")
    out(f"Done. Removed {report.total} base64 blob(s); titles, descriptions, ratings and URL images are untouched.")
    return report
