"""memory_store.py — In-memory row store shared by the layer and Lambda tests.

Rows carry a version counter like the DynamoDB table, so stale tokens raise
StoreWriteConflict. Set `fail_on` to a key to make its write fail, with
`fail_with` as the raised error (default: a conflict).
"""

from __future__ import annotations

import copy

from mediadb_shared.errors import StoreWriteConflict
from mediadb_shared.stores import RowTableStore, StoreSnapshot


class MemoryStore(RowTableStore):
    backend = "memory"

    def __init__(self, rows=None, **kwargs):
        super().__init__(**kwargs)
        self.rows = dict(rows or {})
        self.versions = {k: 1 for k in self.rows}
        self.fail_on = None
        self.fail_with = None
        self.fetches = 0

    def _fetch_all(self):
        self.fetches += 1
        return StoreSnapshot(copy.deepcopy(self.rows), dict(self.versions))

    def _put_row(self, key, value, versions):
        if key == self.fail_on:
            raise self.fail_with or StoreWriteConflict("stale", key=key, status=409)
        if versions is not None and versions.get(key) != self.versions.get(key):
            raise StoreWriteConflict("stale", key=key, status=409)
        self.rows[key] = copy.deepcopy(value)
        self.versions[key] = self.versions.get(key, 0) + 1
        return self.versions[key]

    def _delete_row(self, key, versions):
        self.rows.pop(key, None)
        self.versions.pop(key, None)
