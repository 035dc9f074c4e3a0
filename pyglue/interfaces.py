"""Public boundary protocols for pyglue.

These interfaces define the contract between the pyglue core and the embedded
runtime that actually owns the objects. They use structural typing so a runtime
can be implemented without inheriting from concrete base classes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

from ._internal.foreign_handle import ForeignHandle


@runtime_checkable
class EmbeddedRuntime(Protocol):
    """Capabilities the core requires from an embedded runtime."""

    @property
    def identifier(self) -> str:
        """Unique runtime identifier, copied into every handle it issues."""

    def resolve_export(self, module: str, name: str) -> ForeignHandle:
        """Resolve an exported class by module and (possibly dotted) name.

        Raises:
            LookupError: If the module or the exported name does not exist.
        """

    def construct(self, descriptor: ForeignHandle, args: Sequence[Any]) -> Any:
        """Construct a new embedded instance; returns a handle or a failure signal."""

    def invoke(self, handle: ForeignHandle, name: str, args: Sequence[Any]) -> Any:
        """Invoke a named operation; returns a handle or a failure signal."""

    def is_failure(self, value: Any) -> bool:
        """Return True if *value* is a failure signal."""

    def failure_message(self, value: Any) -> str:
        """Return the raw ``"Kind: message"`` payload of a failure signal."""

    def failure_handle(self, value: Any) -> ForeignHandle | None:
        """Return a handle to the raised embedded object, or None if the runtime keeps none."""

    def is_null(self, handle: ForeignHandle) -> bool:
        """Return True if *handle* refers to the embedded null value."""

    def as_bool(self, handle: ForeignHandle) -> bool:
        """Coerce a boolean value. Raises TypeError on any other kind."""

    def as_int(self, handle: ForeignHandle) -> int:
        """Coerce an integer value. Raises TypeError on any other kind."""

    def as_str(self, handle: ForeignHandle) -> str:
        """Coerce a string value. Raises TypeError on any other kind."""

    def as_sequence(self, handle: ForeignHandle) -> list[ForeignHandle]:
        """Return the elements of an ordered container, in order."""

    def as_mapping(self, handle: ForeignHandle) -> list[tuple[str, ForeignHandle]]:
        """Return the entries of a keyed container, in iteration order."""

    def close(self) -> None:
        """Tear down the runtime context. Handles become invalid."""


@runtime_checkable
class SignalKindRegistryProtocol(Protocol):
    """Interface for registering domain-specific failure kinds."""

    def register(self, kind: str, factory: Callable[[Any], BaseException]) -> None:
        """Map a kind tag to a host exception factory."""

    def get_factory(self, kind: str) -> Callable[[Any], BaseException] | None:
        """Return the factory registered for *kind*, or None."""
