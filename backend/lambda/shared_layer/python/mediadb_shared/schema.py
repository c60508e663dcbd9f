"""mediadb_shared.schema — Top-level document layout.

Names the keys that hold entity collections, the settings keys, the default
value of every expected key, and the keys that only an admin may write.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Tuple

__all__ = [
    "ALL_KEYS",
    "DEFAULT_SCHEMA",
    "DocumentSchema",
]

ALL_KEYS = "*"


@dataclass(frozen=True)
class DocumentSchema:
    collection_keys: Tuple[str, ...] = ("series", "characters", "episodes")
    settings_keys: Tuple[str, ...] = ("settings",)
    protected_keys: FrozenSet[str] = field(default_factory=lambda: frozenset({ALL_KEYS}))

    @classmethod
    def from_lists(
        cls,
        collection_keys: Iterable[str],
        settings_keys: Iterable[str],
        protected_keys: Iterable[str],
    ) -> "DocumentSchema":
        return cls(
            collection_keys=tuple(k for k in collection_keys if k),
            settings_keys=tuple(k for k in settings_keys if k),
            protected_keys=frozenset(k for k in protected_keys if k),
        )

    @property
    def defaults(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {key: [] for key in self.collection_keys}
        out.update({key: {} for key in self.settings_keys})
        return out

    def is_collection(self, key: str) -> bool:
        return key in self.collection_keys

    def is_protected(self, key: str) -> bool:
        return ALL_KEYS in self.protected_keys or key in self.protected_keys

    def protected_in(self, keys: Iterable[str]) -> list[str]:
        return [key for key in keys if self.is_protected(key)]

    def with_defaults(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        """Return a copy of `document` with every expected-but-absent key filled in."""
        out = dict(document)
        for key, default in self.defaults.items():
            if out.get(key) is None:
                out[key] = copy.copy(default)
        return out


DEFAULT_SCHEMA = DocumentSchema()
