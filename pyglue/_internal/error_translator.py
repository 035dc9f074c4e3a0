"""Translation of embedded failure signals into host errors.

A failed crossing hands back a raw payload of the form ``"Kind: message"``.
The translator splits it exactly once on the delimiter, looks the kind tag up
in a closed table and builds the corresponding host exception. Payloads
without the delimiter are translator defects and escalate as
SignalFormatError instead of being guessed at.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..errors import (
    ForeignIOError,
    ForeignRuntimeError,
    InvalidArgumentError,
    SignalFormatError,
)
from .foreign_handle import ForeignHandle

if TYPE_CHECKING:
    from ..interfaces import SignalKindRegistryProtocol

logger = logging.getLogger(__name__)

SIGNAL_DELIMITER = ": "

END_OF_SEQUENCE_KIND = "StopIteration"


@dataclass(frozen=True)
class FailureSignal:
    """Raw failure payload returned by a runtime instead of a value.

    ``error`` is the raised embedded object, when the runtime keeps it.
    """

    raw: str
    error: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ErrorSignal:
    """Parsed failure: classification tag plus original message.

    ``handle`` refers to the raised embedded object when the runtime exposes
    it; it never takes part in comparisons.
    """

    kind: str
    message: str
    handle: ForeignHandle | None = field(default=None, compare=False, repr=False)

    @property
    def is_end_of_sequence(self) -> bool:
        return self.kind == END_OF_SEQUENCE_KIND


SignalFactory = Callable[[ErrorSignal], BaseException]

_RECOGNIZED_KINDS: dict[str, SignalFactory] = {
    "ValueError": lambda signal: InvalidArgumentError(signal.message),
    END_OF_SEQUENCE_KIND: lambda signal: StopIteration(signal.message),
    "OSError": ForeignIOError,
    "IOError": ForeignIOError,
}


class SignalKindRegistry:
    """Singleton registry for domain-specific kind tags.

    Host API modules register the failures their embedded classes raise
    (e.g. a parse exception) so they surface as the matching host type.
    Built-in kinds cannot be overridden.
    """

    _instance: SignalKindRegistry | None = None

    def __init__(self) -> None:
        self._factories: dict[str, SignalFactory] = {}

    @classmethod
    def get_instance(cls) -> SignalKindRegistry:
        """Return the singleton instance, creating it if necessary."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def register(self, kind: str, factory: SignalFactory) -> None:
        """Register a host exception factory for *kind*."""
        if not kind or SIGNAL_DELIMITER in kind:
            raise ValueError(f"Invalid kind tag: {kind!r}")
        if kind in _RECOGNIZED_KINDS:
            raise ValueError(f"Kind tag {kind!r} is built in and cannot be overridden")
        if kind in self._factories:
            logger.debug("Overwriting existing signal factory for %s", kind)
        self._factories[kind] = factory
        logger.debug("Registered signal factory for kind: %s", kind)

    def get_factory(self, kind: str) -> SignalFactory | None:
        """Return factory for *kind*, or None if not registered."""
        return self._factories.get(kind)

    def unregister(self, kind: str) -> None:
        self._factories.pop(kind, None)

    def kinds(self) -> list[str]:
        return list(self._factories)


class ErrorTranslator:
    """Maps raw failure signals onto the host error taxonomy."""

    def __init__(self, registry: SignalKindRegistryProtocol | None = None) -> None:
        self._registry = registry if registry is not None else SignalKindRegistry.get_instance()

    @staticmethod
    def parse(raw: str) -> ErrorSignal:
        """Split *raw* once on the delimiter into ``(kind, message)``."""
        kind, sep, message = raw.partition(SIGNAL_DELIMITER)
        if not sep or not kind or kind != kind.strip():
            raise SignalFormatError(f"Malformed failure signal from embedded runtime: {raw!r}")
        return ErrorSignal(kind, message)

    def translate(self, signal: ErrorSignal, *, resource: bool = False) -> BaseException:
        """Build (but do not raise) the host exception for *signal*.

        ``resource=True`` marks resource operations, whose every failure
        surfaces as ForeignIOError carrying the original signal.
        """
        if resource:
            return ForeignIOError(signal)
        factory = _RECOGNIZED_KINDS.get(signal.kind) or self._registry.get_factory(signal.kind)
        if factory is None:
            logger.debug("Unrecognized failure kind %r: %s", signal.kind, signal.message)
            return ForeignRuntimeError(signal)
        return factory(signal)

    def translate_raw(self, raw: str, *, resource: bool = False) -> BaseException:
        return self.translate(self.parse(raw), resource=resource)


def recognized_kinds() -> list[str]:
    """Return the built-in kind tags, in table order."""
    return list(_RECOGNIZED_KINDS)
