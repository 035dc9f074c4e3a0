"""Foreign handle for values owned by an embedded runtime.

ForeignHandle is an opaque reference to a value living in the embedded
runtime. It carries the owning runtime's identifier and the value's identity
inside that runtime; two handles are equal when they name the same embedded
value, regardless of which crossing produced them.
"""
from __future__ import annotations

from typing import Any


class ForeignHandle:
    """Handle to a value in an embedded runtime.

    Attributes:
        runtime_id: Identifier of the runtime that issued the handle.
        identity: Embedded-runtime identity of the value, or None for null.
        type_name: The embedded type name (for debugging/logging).
    """

    __slots__ = ("runtime_id", "identity", "type_name", "_payload")

    def __init__(
        self,
        runtime_id: str,
        identity: int | None,
        type_name: str,
        payload: Any = None,
    ) -> None:
        self.runtime_id = runtime_id
        self.identity = identity
        self.type_name = type_name
        # Runtime-private; only the issuing runtime reads it.
        self._payload = payload

    @classmethod
    def null(cls, runtime_id: str) -> ForeignHandle:
        return cls(runtime_id, None, "null")

    def is_null(self) -> bool:
        return self.identity is None

    @property
    def key(self) -> tuple[str, int | None]:
        """Stable identity usable as a cache key."""
        return (self.runtime_id, self.identity)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ForeignHandle):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        if self.is_null():
            return f"<ForeignHandle runtime={self.runtime_id} null>"
        return f"<ForeignHandle runtime={self.runtime_id} id={self.identity} type={self.type_name}>"
