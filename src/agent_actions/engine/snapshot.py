"""Immutable working copy of a record threaded through an action run."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class RecordSnapshot:
    """Record data as seen by the next step.

    ``merge`` returns a new snapshot; nothing is written to storage until the
    run commits, so a failed run leaves the stored record untouched.
    """

    original: Mapping[str, Any]
    data: Mapping[str, Any]
    written: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def start(cls, data: Mapping[str, Any]) -> "RecordSnapshot":
        frozen = MappingProxyType(copy.deepcopy(dict(data)))
        return cls(original=frozen, data=frozen)

    def merge(self, outputs: Mapping[str, Any]) -> "RecordSnapshot":
        merged = dict(self.data)
        merged.update(copy.deepcopy(dict(outputs)))
        return RecordSnapshot(
            original=self.original,
            data=MappingProxyType(merged),
            written=self.written | frozenset(outputs),
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def as_dict(self) -> dict[str, Any]:
        return copy.deepcopy(dict(self.data))

    def changes(self) -> dict[str, Any]:
        """Fields written by steps whose value differs from the stored record."""

        return {
            key: copy.deepcopy(self.data[key])
            for key in sorted(self.written)
            if key not in self.original or self.original[key] != self.data[key]
        }


__all__ = ["RecordSnapshot"]
