"""mediadb_shared.sync — One read or write cycle against a document store.

    read(privileged, allow_stale)           store -> defaults -> [strip] -> document
    write(incoming, privileged, bypass)     store -> merge|overlay -> store

Nothing is kept between calls except what the store adapter itself caches.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from .errors import InvalidPayload, Unauthorized
from .merger import merge_documents, overlay_documents
from .schema import DEFAULT_SCHEMA, DocumentSchema
from .stores import DocumentStore
from .stripper import strip_document

logger = logging.getLogger(__name__)

__all__ = ["DocumentSync"]


class DocumentSync:
    def __init__(self, store: DocumentStore, schema: DocumentSchema = DEFAULT_SCHEMA):
        self.store = store
        self.schema = schema

    def read(self, privileged: bool = False, allow_stale: bool = True) -> Dict[str, Any]:
        """Return the stored document, stripped of image payloads unless privileged.

        `allow_stale=False` for reads whose result is written back.
        """
        snapshot = self.store.read_all(allow_stale=allow_stale)
        document = self.schema.with_defaults(snapshot.data)
        if privileged:
            return document
        return strip_document(document, self.schema)

    def write(self, incoming: Any, privileged: bool = False, bypass_merge: bool = False) -> Dict[str, Any]:
        """Merge `incoming` into the stored document and persist the touched keys.

        Raises:
            InvalidPayload: `incoming` is not a JSON object.
            Unauthorized: a protected key (or bypass mode) without privilege.
            StoreUnavailable / StoreWriteConflict: from the store adapter.
        """
        if not isinstance(incoming, dict):
            raise InvalidPayload("JSON body must be an object")

        keys = list(incoming.keys())
        if not privileged:
            if bypass_merge:
                raise Unauthorized("Purge mode requires the admin credential.")
            protected = self.schema.protected_in(keys)
            if protected:
                raise Unauthorized(
                    f"Admin credential required to write: {', '.join(sorted(protected))}",
                    keys=protected,
                )
        if not keys:
            return {"success": True, "keys": []}

        snapshot = self.store.read_all()
        if bypass_merge:
            merged = overlay_documents(snapshot.data, incoming)
        else:
            merged = merge_documents(snapshot.data, incoming, self.schema)

        self.store.write(merged, keys, snapshot.version)
        logger.info(
            "document write: backend=%s keys=%s bypass_merge=%s",
            self.store.backend, keys, bypass_merge,
        )
        return {"success": True, "keys": keys}
