"""Error taxonomy surfaced by the pyglue boundary.

Callers only ever see these kinds (plus Python's own ``StopIteration`` for
end-of-sequence); the embedded runtime's native signal shape never leaks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ._internal.error_translator import ErrorSignal


class GlueError(Exception):
    """Base class for all pyglue errors."""


class InvalidArgumentError(GlueError, ValueError):
    """A crossing reported that a supplied argument was malformed."""


class ForeignIOError(GlueError, OSError):
    """A resource operation (e.g. ``close``) failed inside the embedded runtime."""

    def __init__(self, signal: ErrorSignal) -> None:
        self.signal = signal
        super().__init__(f"Embedded resource operation failed: {signal.kind}: {signal.message}")


class ForeignRuntimeError(GlueError, RuntimeError):
    """An embedded failure whose kind tag is not in the recognized table."""

    def __init__(self, signal: ErrorSignal) -> None:
        self.signal = signal
        super().__init__(f"Embedded runtime raised {signal.kind}: {signal.message}")


class DescriptorResolutionError(GlueError):
    """A foreign class could not be resolved. Indicates a deployment defect."""

    def __init__(self, module: str, name: str, reason: str) -> None:
        self.module = module
        self.name = name
        super().__init__(f"Cannot resolve foreign class {module}:{name}: {reason}")


class SignalFormatError(GlueError):
    """A raw failure signal could not be parsed into kind and message."""


class MarshalingError(GlueError, TypeError):
    """A value does not fit the shape declared for it at the boundary."""


class NullHandleError(GlueError):
    """A proxy was about to be bound to a null foreign handle."""


class RuntimeNotInstalledError(GlueError):
    """No embedded runtime is active in this process."""
